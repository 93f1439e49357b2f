"""
Command-line entry point: remediate index fragmentation on one table.

    python -m idxmaint --db-url "mssql+pyodbc://..." --schema dbo --table Orders --threshold 30
"""
from __future__ import annotations

import argparse
import logging
import os
import sys

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError

from .config import DEFAULT_THRESHOLD, SCAN_MODES, MaintenanceConfig
from .errors import IdxMaintError
from .remediator import FragmentationRemediator
from .report import format_report

logger = logging.getLogger(__name__)

DB_URL_ENV = "IDXMAINT_DB_URL"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idxmaint",
        description="Reorganize or rebuild fragmented indexes on a SQL Server table",
    )
    parser.add_argument(
        "--db-url",
        type=str,
        default=os.environ.get(DB_URL_ENV),
        help=f"SQLAlchemy database URL (default: ${DB_URL_ENV})",
    )
    parser.add_argument("--schema", type=str, required=True, help="Schema of the target table")
    parser.add_argument("--table", type=str, required=True, help="Target table")
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Fragmentation percent above which indexes are rebuilt (default 30)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the statements that would be issued without executing them",
    )
    parser.add_argument("--online", action="store_true", help="Rebuild with ONLINE = ON")
    parser.add_argument("--maxdop", type=int, default=None, help="MAXDOP for rebuilds")
    parser.add_argument(
        "--scan-mode",
        type=str,
        choices=SCAN_MODES,
        default="LIMITED",
        help="sys.dm_db_index_physical_stats scan mode",
    )
    parser.add_argument(
        "--lock-timeout-ms",
        type=int,
        default=None,
        help="SET LOCK_TIMEOUT applied to each statement",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds around the whole batch",
    )
    parser.add_argument(
        "--no-app-lock",
        action="store_true",
        help="Do not serialize concurrent runs on the same table with sp_getapplock",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Returns:
        0 when every statement succeeded (or nothing needed doing),
        1 when at least one statement failed or was cut off by the batch timeout,
        2 on configuration, permission, catalog, statistics, lock or
        connection errors.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.db_url:
        parser.error(f"--db-url is required when ${DB_URL_ENV} is not set")

    try:
        config = MaintenanceConfig(
            threshold=args.threshold,
            online_rebuild=args.online,
            maxdop=args.maxdop,
            scan_mode=args.scan_mode,
            lock_timeout_ms=args.lock_timeout_ms,
            batch_timeout_s=args.timeout,
            use_app_lock=not args.no_app_lock,
        )
    except ValueError as exc:
        parser.error(str(exc))

    engine = create_engine(args.db_url, pool_pre_ping=True)
    try:
        remediator = FragmentationRemediator(engine, config)
        if args.dry_run:
            report = remediator.plan(args.schema, args.table)
        else:
            report = remediator.run(args.schema, args.table)
    except IdxMaintError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        partial = getattr(exc, "report", None)
        if partial is not None:
            print(format_report(partial))
        return 2
    except DBAPIError as exc:
        logger.error("Database error: %s", exc)
        return 2
    finally:
        engine.dispose()

    print(format_report(report))
    return 0 if report.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
