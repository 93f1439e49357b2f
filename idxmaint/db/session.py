from __future__ import annotations

import logging
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Engine, Connection
from sqlalchemy.sql import TextClause

logger = logging.getLogger(__name__)


class DbSession:
    """
    Wrapper around a SQLAlchemy Engine connection for catalog reads and index DDL.

    Transactional by default (commit on success, rollback on error). With
    ``autocommit=True`` the connection runs under SQL Server's autocommit so
    ALTER INDEX statements are never wrapped in a user transaction.

    Use as:
        with DbSession(engine) as session:
            row = session.fetch_one(...)

        with DbSession(engine, autocommit=True, lock_timeout_ms=5000) as session:
            session.execute_ddl("ALTER INDEX [ix] ON [dbo].[t] REORGANIZE")
    """

    def __init__(
        self,
        engine: Engine,
        autocommit: bool = False,
        lock_timeout_ms: int | None = None,
    ) -> None:
        self.engine = engine
        self.autocommit = autocommit
        self.lock_timeout_ms = lock_timeout_ms
        self._conn: Connection | None = None
        self._tx = None

    def __enter__(self) -> "DbSession":
        if self._conn is not None:
            raise RuntimeError("DbSession is already active; nested sessions are not allowed")
        conn = self.engine.connect()
        try:
            if self.autocommit:
                conn = conn.execution_options(isolation_level="AUTOCOMMIT")
            else:
                self._tx = conn.begin()
            if self.lock_timeout_ms is not None:
                conn.exec_driver_sql(f"SET LOCK_TIMEOUT {int(self.lock_timeout_ms)}")
        except Exception:
            conn.close()
            self._tx = None
            raise
        self._conn = conn
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._tx is not None:
                if exc_type:
                    self._tx.rollback()
                else:
                    self._tx.commit()
        finally:
            if self._conn is not None:
                try:
                    self._reset_lock_timeout(self._conn)
                finally:
                    self._conn.close()

            self._conn = None
            self._tx = None

        # propagate exceptions (if any)
        return False

    def _reset_lock_timeout(self, conn: Connection) -> None:
        """
        Restore the server default (wait forever) before the connection goes
        back to the pool. A connection that cannot be reset is invalidated
        so no later session inherits the timeout.
        """
        if self.lock_timeout_ms is None:
            return
        try:
            conn.exec_driver_sql("SET LOCK_TIMEOUT -1")
        except Exception:
            logger.warning("Could not reset LOCK_TIMEOUT; discarding connection", exc_info=True)
            conn.invalidate()

    def _connection(self) -> Connection:
        if self._conn is None:
            raise RuntimeError("DbSession is not active; use within a context manager")
        return self._conn

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return the driver's row count
        (-1 when the driver does not report one).
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            return -1 if result.rowcount is None else int(result.rowcount)
        finally:
            result.close()

    def execute_ddl(self, sql: str) -> None:
        """
        Execute a DDL statement verbatim.

        Bypasses SQLAlchemy's bind-parameter parsing, so quoted identifiers
        containing ``:`` are sent as written. Never pass user input here
        that has not gone through quote_identifier().
        """
        conn = self._connection()
        result = conn.exec_driver_sql(sql)
        result.close()

    def execute_scalar(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """
        Execute a statement expected to return a single scalar value.
        Intended for catalog functions and control primitives (e.g., sp_getapplock).
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            return result.scalar_one_or_none()
        finally:
            result.close()

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a SELECT expected to return 0 or 1 row. Raises if more than one row.
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        row = result.mappings().one_or_none()
        if row is None:
            return None
        return dict(row)

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a SELECT expected to return multiple rows.
        """
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        return [dict(row) for row in result.mappings()]
