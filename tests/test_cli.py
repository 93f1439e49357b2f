from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import ProgrammingError

from idxmaint import cli
from idxmaint.errors import ObjectNotFoundError, PermissionDeniedError
from idxmaint.models import MaintenanceReport

from _fakes import FakeClock, FakeDatabase, db_error, record


@pytest.fixture
def cli_db(monkeypatch: pytest.MonkeyPatch, fake_db: FakeDatabase) -> FakeDatabase:
    """
    Route the CLI's engine through the fake database.
    """
    monkeypatch.setattr(cli, "create_engine", MagicMock(name="create_engine"))
    original = cli.FragmentationRemediator

    def _remediator(engine, config):
        return original(engine, config, session_factory=fake_db.session_factory)

    monkeypatch.setattr(cli, "FragmentationRemediator", _remediator)
    monkeypatch.delenv(cli.DB_URL_ENV, raising=False)
    return fake_db


BASE_ARGS = ["--db-url", "mssql+pyodbc://example", "--schema", "dbo", "--table", "Orders"]


def test_parser_defaults() -> None:
    args = cli.build_parser().parse_args(["--schema", "dbo", "--table", "Orders"])
    assert args.threshold == 30
    assert args.scan_mode == "LIMITED"
    assert args.dry_run is False
    assert args.no_app_lock is False


def test_run_prints_report(cli_db: FakeDatabase, capsys: pytest.CaptureFixture) -> None:
    cli_db.records = [record("IX_A", 12.0, 5000), record("IX_B", 45.0, 2000), record("IX_C", 8.0, 500)]

    rc = cli.main(BASE_ARGS)

    out = capsys.readouterr().out
    assert rc == 0
    assert "REORGANIZE SUCCEEDED IX_A" in out
    assert "REBUILD    SUCCEEDED IX_B" in out
    assert len(cli_db.executed) == 2


def test_threshold_and_rebuild_options(cli_db: FakeDatabase) -> None:
    cli_db.records = [record("IX_B", 45.0, 2000)]

    cli.main(BASE_ARGS + ["--threshold", "40", "--online", "--maxdop", "2", "--no-app-lock"])

    assert cli_db.executed == ["ALTER INDEX [IX_B] ON [dbo].[Orders] REBUILD WITH (ONLINE = ON, MAXDOP = 2)"]
    assert cli_db.applock_calls == []


def test_dry_run_executes_nothing(cli_db: FakeDatabase, capsys: pytest.CaptureFixture) -> None:
    cli_db.records = [record("IX_B", 45.0, 2000)]

    rc = cli.main(BASE_ARGS + ["--dry-run"])

    assert rc == 0
    assert cli_db.executed == []
    assert "ALTER INDEX [IX_B] ON [dbo].[Orders] REBUILD" in capsys.readouterr().out


def test_nothing_to_do(cli_db: FakeDatabase, capsys: pytest.CaptureFixture) -> None:
    rc = cli.main(BASE_ARGS)

    assert rc == 0
    assert "No action taken." in capsys.readouterr().out


def test_failed_statement_exit_code(cli_db: FakeDatabase) -> None:
    cli_db.records = [record("IX_B", 45.0, 2000)]
    cli_db.ddl_errors["IX_B"] = db_error(1222, "Lock request time out period exceeded.")

    assert cli.main(BASE_ARGS) == 1


def test_unmapped_statistics_error_exit_code(cli_db: FakeDatabase) -> None:
    cli_db.records = [record("IX_B", 45.0, 2000)]
    cli_db.stats_errors = [db_error(102, "Incorrect syntax", cls=ProgrammingError)]

    assert cli.main(BASE_ARGS) == 2
    assert cli_db.executed == []


def test_batch_timeout_exit_code(
    cli_db: FakeDatabase, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    clock = FakeClock()
    monkeypatch.setattr("idxmaint.remediator.time", clock)

    def advance(sql: str) -> None:
        clock.now += 10.0

    cli_db.on_ddl = advance
    cli_db.records = [record("IX_1", 50.0, 5000), record("IX_2", 50.0, 5000)]

    rc = cli.main(BASE_ARGS + ["--timeout", "5"])

    out = capsys.readouterr().out
    assert rc == 1
    assert len(cli_db.executed) == 1
    assert "timed out: 1" in out


def test_connection_error_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    remediator = MagicMock()
    remediator.run.side_effect = db_error(18456, "Login failed for user")
    monkeypatch.setattr(cli, "create_engine", MagicMock())
    monkeypatch.setattr(cli, "FragmentationRemediator", MagicMock(return_value=remediator))

    assert cli.main(BASE_ARGS) == 2


def test_unknown_table_exit_code(cli_db: FakeDatabase) -> None:
    assert cli.main(BASE_ARGS[:-1] + ["Missing"]) == 2


def test_permission_error_prints_partial_report(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    partial = MaintenanceReport(schema_name="dbo", table_name="Orders", threshold=30)
    remediator = MagicMock()
    remediator.run.side_effect = PermissionDeniedError("denied", report=partial)
    monkeypatch.setattr(cli, "create_engine", MagicMock())
    monkeypatch.setattr(cli, "FragmentationRemediator", MagicMock(return_value=remediator))

    assert cli.main(BASE_ARGS) == 2
    assert "Index maintenance for dbo.Orders" in capsys.readouterr().out


def test_missing_db_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(cli.DB_URL_ENV, raising=False)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--schema", "dbo", "--table", "Orders"])
    assert excinfo.value.code == 2


def test_invalid_threshold_is_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(SystemExit):
        cli.main(BASE_ARGS + ["--threshold", "2"])


def test_engine_disposed(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = MagicMock()
    remediator = MagicMock()
    remediator.run.side_effect = ObjectNotFoundError("missing")
    monkeypatch.setattr(cli, "create_engine", MagicMock(return_value=engine))
    monkeypatch.setattr(cli, "FragmentationRemediator", MagicMock(return_value=remediator))

    cli.main(BASE_ARGS)

    engine.dispose.assert_called_once()
