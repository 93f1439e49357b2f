from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import nullcontext
from typing import Any, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError

from .config import MaintenanceConfig
from .db.catalog import fetch_fragmentation, has_alter_permission, resolve_table
from .db.helpers import (
    OBJECT_NOT_FOUND_ERRORS,
    PERMISSION_ERRORS,
    TRANSIENT_ERRORS,
    qualified_table_name,
    sql_error_message,
    sql_error_number,
)
from .db.locking import AppLock, maintenance_lock_resource
from .db.metrics import observe_fragmentation_scan, observe_index_maintenance
from .db.session import DbSession
from .errors import (
    CatalogError,
    ConfigurationError,
    ObjectNotFoundError,
    PermissionDeniedError,
    StatementExecutionError,
    StatisticsUnavailableError,
)
from .models import (
    IndexFragmentationRecord,
    MaintenanceReport,
    MaintenanceStatement,
    StatementOutcome,
    StatementStatus,
)
from .planner import plan as plan_statements

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., Any]


class FragmentationRemediator:
    """
    Detects and remediates index fragmentation on a single table.

    One run is a single linear pass:
    - resolve the table and check ALTER permission (before any statistics query)
    - sample sys.dm_db_index_physical_stats
    - classify every index into exactly one action
    - issue one ALTER INDEX per actionable index, sequentially

    Each statement runs in its own autocommit session. A failing statement
    is logged with its index name, recorded in the report, and the batch
    moves on; a permission error stops the batch immediately. An empty
    batch never opens a DDL session.

    Usage:
        remediator = FragmentationRemediator(engine, MaintenanceConfig(online_rebuild=True))
        report = remediator.run("dbo", "Orders", threshold=30)
        print(format_report(report))
    """

    def __init__(
        self,
        engine: Optional[Engine],
        config: Optional[MaintenanceConfig] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        """
        Args:
            engine: SQLAlchemy Engine for the target database
            config: Maintenance configuration (defaults: threshold 30, 5%, 1000 pages)
            session_factory: Callable accepting ``autocommit`` and
                ``lock_timeout_ms`` keywords and returning a DbSession-like
                context manager. Defaults to DbSession over ``engine``.
        """
        if engine is None and session_factory is None:
            raise ValueError("Either engine or session_factory is required")
        self.engine = engine
        self.config = config or MaintenanceConfig()
        self._session_factory = session_factory or self._default_session

    def _default_session(self, autocommit: bool = False, lock_timeout_ms: int | None = None) -> DbSession:
        return DbSession(self.engine, autocommit=autocommit, lock_timeout_ms=lock_timeout_ms)

    # -- public API -------------------------------------------------------

    def scan(
        self,
        schema: str,
        table: str,
        config: Optional[MaintenanceConfig] = None,
    ) -> list[IndexFragmentationRecord]:
        """
        Resolve the target, check permissions and sample fragmentation.

        Raises:
            ConfigurationError: Invalid identifiers
            ObjectNotFoundError: schema/table does not name a user table
            PermissionDeniedError: Caller lacks ALTER on the table
            StatisticsUnavailableError: Statistics could not be sampled after retries
            CatalogError: Any other database error while resolving or sampling
        """
        config = config or self.config
        qualified = self._validate_target(schema, table)

        try:
            with self._session_factory() as session:
                object_id = resolve_table(session, schema, table)
                if not has_alter_permission(session, schema, table):
                    raise PermissionDeniedError(f"ALTER permission denied on {qualified}")
        except DBAPIError as exc:
            number = sql_error_number(exc)
            if number in PERMISSION_ERRORS:
                raise PermissionDeniedError(
                    f"Permission denied resolving {qualified}: {sql_error_message(exc)}"
                ) from exc
            if number in OBJECT_NOT_FOUND_ERRORS:
                raise ObjectNotFoundError(
                    f"Table {qualified} does not exist: {sql_error_message(exc)}"
                ) from exc
            raise CatalogError(
                f"Could not resolve {qualified} (error {number}): {sql_error_message(exc)}"
            ) from exc

        return self._sample(object_id, qualified, config)

    def plan(self, schema: str, table: str, threshold: float | None = None) -> MaintenanceReport:
        """
        Dry run: scan and classify, build every statement, execute nothing.
        """
        config = self._run_config(threshold)
        records = self.scan(schema, table, config)
        statements, skipped = plan_statements(records, config)

        report = MaintenanceReport(
            schema_name=schema,
            table_name=table,
            threshold=config.threshold,
            dry_run=True,
            skipped=skipped,
        )
        for stmt in statements:
            report.outcomes.append(StatementOutcome(statement=stmt, status=StatementStatus.SKIPPED))
        return report

    def run(self, schema: str, table: str, threshold: float | None = None) -> MaintenanceReport:
        """
        Scan, classify and remediate every index on ``schema.table``.

        Raises:
            ConfigurationError, ObjectNotFoundError, PermissionDeniedError,
            CatalogError, StatisticsUnavailableError, LockTimeoutError
        """
        config = self._run_config(threshold)
        self._validate_target(schema, table)
        deadline = (
            time.monotonic() + config.batch_timeout_s
            if config.batch_timeout_s is not None
            else None
        )

        lock_session = (
            self._session_factory(autocommit=True) if config.use_app_lock else nullcontext()
        )
        with lock_session as session:
            lock = (
                AppLock(session, maintenance_lock_resource(schema, table), config.app_lock_timeout_ms)
                if config.use_app_lock
                else nullcontext()
            )
            with lock:
                return self._run_locked(schema, table, config, deadline)

    # -- internals --------------------------------------------------------

    def _run_config(self, threshold: float | None) -> MaintenanceConfig:
        try:
            return self.config.with_threshold(threshold)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @staticmethod
    def _validate_target(schema: str, table: str) -> str:
        try:
            return qualified_table_name(schema, table)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc

    def _run_locked(
        self,
        schema: str,
        table: str,
        config: MaintenanceConfig,
        deadline: float | None,
    ) -> MaintenanceReport:
        records = self.scan(schema, table, config)
        statements, skipped = plan_statements(records, config)

        report = MaintenanceReport(
            schema_name=schema,
            table_name=table,
            threshold=config.threshold,
            skipped=skipped,
        )
        for record in skipped:
            logger.debug(
                "Skipping %s (%.1f%% fragmented, %d pages)",
                record.qualified_name,
                record.fragmentation_percent,
                record.page_count,
            )

        if not statements:
            logger.info("No index on %s.%s qualifies for maintenance; no action taken", schema, table)
            return report

        for stmt in statements:
            report.outcomes.append(self._execute(stmt, config, deadline, report))

        logger.info(
            "Maintenance of %s.%s finished: %d reorganized, %d rebuilt, %d failed, %d timed out, %d skipped",
            schema,
            table,
            len(report.reorganized),
            len(report.rebuilt),
            len(report.failed),
            len(report.timed_out),
            len(report.skipped),
        )
        return report

    def _sample(
        self,
        object_id: int,
        qualified: str,
        config: MaintenanceConfig,
    ) -> list[IndexFragmentationRecord]:
        """
        Sample index statistics, retrying transient failures
        (deadlocks, lock timeouts, concurrent schema changes).
        """
        last_exc: DBAPIError | None = None
        for attempt in range(1, config.stats_retry_attempts + 1):
            start = time.monotonic()
            try:
                with self._session_factory() as session:
                    records = fetch_fragmentation(session, object_id, config.scan_mode)
            except DBAPIError as exc:
                observe_fragmentation_scan("error", time.monotonic() - start)
                number = sql_error_number(exc)
                if number in PERMISSION_ERRORS:
                    raise PermissionDeniedError(
                        f"Permission denied reading index statistics for {qualified}: "
                        f"{sql_error_message(exc)}"
                    ) from exc
                if number not in TRANSIENT_ERRORS:
                    raise CatalogError(
                        f"Could not read index statistics for {qualified} "
                        f"(error {number}): {sql_error_message(exc)}"
                    ) from exc
                last_exc = exc
                logger.warning(
                    "Index statistics for %s unavailable (attempt %d/%d, error %s)",
                    qualified,
                    attempt,
                    config.stats_retry_attempts,
                    number,
                )
                if attempt < config.stats_retry_attempts:
                    time.sleep(config.stats_retry_backoff_s * attempt)
                continue

            observe_fragmentation_scan("success", time.monotonic() - start)
            return records

        raise StatisticsUnavailableError(
            f"Index statistics for {qualified} could not be sampled after "
            f"{config.stats_retry_attempts} attempt(s)"
        ) from last_exc

    @staticmethod
    def _lock_timeout_ms(config: MaintenanceConfig, remaining_s: float | None) -> int | None:
        if remaining_s is None:
            return config.lock_timeout_ms
        remaining_ms = max(int(remaining_s * 1000), 0)
        if config.lock_timeout_ms is None:
            return remaining_ms
        return min(config.lock_timeout_ms, remaining_ms)

    def _execute(
        self,
        stmt: MaintenanceStatement,
        config: MaintenanceConfig,
        deadline: float | None,
        report: MaintenanceReport,
    ) -> StatementOutcome:
        action = stmt.action.value
        index = stmt.record.qualified_name

        remaining = None
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Batch timeout reached; not issuing %s on %s", action, index)
                observe_index_maintenance(action, StatementStatus.SKIPPED.value, 0.0)
                return StatementOutcome(
                    statement=stmt,
                    status=StatementStatus.SKIPPED,
                    error=f"batch timeout of {config.batch_timeout_s:g}s elapsed before this statement",
                )

        logger.info("Issuing %s on %s: %s", action, index, stmt.sql)
        start = time.monotonic()
        try:
            with self._session_factory(
                autocommit=True,
                lock_timeout_ms=self._lock_timeout_ms(config, remaining),
            ) as session:
                session.execute_ddl(stmt.sql)
        except DBAPIError as exc:
            duration = time.monotonic() - start
            error = StatementExecutionError(
                stmt.record.index_name, sql_error_message(exc), sql_error_number(exc)
            )
            observe_index_maintenance(action, StatementStatus.FAILED.value, duration)
            outcome = StatementOutcome(
                statement=stmt,
                status=StatementStatus.FAILED,
                error=str(error),
                duration_s=duration,
            )
            if error.error_number in PERMISSION_ERRORS:
                report.outcomes.append(outcome)
                raise PermissionDeniedError(
                    f"ALTER permission denied on {index}", report=report
                ) from exc
            logger.warning("%s failed on %s (error %s): %s", action, index, error.error_number, exc)
            return outcome

        duration = time.monotonic() - start
        observe_index_maintenance(action, StatementStatus.SUCCEEDED.value, duration)
        logger.info("%s on %s completed in %.2fs", action, index, duration)
        return StatementOutcome(
            statement=stmt,
            status=StatementStatus.SUCCEEDED,
            duration_s=duration,
        )
