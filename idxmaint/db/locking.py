from __future__ import annotations

import hashlib
import logging
import time

from sqlalchemy import text

from ..errors import LockTimeoutError
from .helpers import qualified_table_name
from .metrics import observe_app_lock
from .session import DbSession

logger = logging.getLogger(__name__)

MAX_RESOURCE_LENGTH = 255

_GET_APPLOCK = text(
    """
    SET NOCOUNT ON;
    DECLARE @result INT;
    EXEC @result = sp_getapplock
        @Resource = :resource,
        @LockMode = 'Exclusive',
        @LockOwner = 'Session',
        @LockTimeout = :timeout_ms;
    SELECT @result AS result;
    """
)

_RELEASE_APPLOCK = text(
    """
    SET NOCOUNT ON;
    DECLARE @result INT;
    EXEC @result = sp_releaseapplock @Resource = :resource, @LockOwner = 'Session';
    SELECT @result AS result;
    """
)


def maintenance_lock_resource(schema: str, table: str) -> str:
    """
    App lock resource for one table, built from the bracket-quoted name so
    distinct tables never share a lock. Names too long for sp_getapplock
    are replaced by their SHA-256 digest.
    """
    resource = f"idxmaint:{qualified_table_name(schema, table)}"
    if len(resource) <= MAX_RESOURCE_LENGTH:
        return resource
    digest = hashlib.sha256(resource.encode("utf-8")).hexdigest()
    return f"idxmaint:sha256:{digest}"


class AppLock:
    """
    Mutex over one maintenance target using SQL Server application locks.

    The lock is owned by the session's connection and released on context
    exit, so two maintenance runs never issue ALTER INDEX against the same
    table at the same time. Does not own the connection - must be used
    within a DbSession that stays open for the whole run.

    Usage:
        with DbSession(engine, autocommit=True) as lock_session:
            with AppLock(lock_session, maintenance_lock_resource("dbo", "Orders")):
                # ALTER INDEX statements on their own sessions
                ...
    """

    def __init__(self, session: DbSession, resource: str, timeout_ms: int = 10_000) -> None:
        """
        Initialize an application lock.

        Args:
            session: Active DbSession instance
            resource: Lock resource name (at most 255 characters)

        Raises:
            ValueError: If the resource name is longer than sp_getapplock accepts
            timeout_ms: Maximum milliseconds to wait for lock acquisition
        """
        self.session = session
        if len(resource) > MAX_RESOURCE_LENGTH:
            raise ValueError(f"Lock resource exceeds {MAX_RESOURCE_LENGTH} characters")
        self.resource = resource
        self.timeout_ms = timeout_ms
        self._acquired = False

    def __enter__(self) -> "AppLock":
        """
        Acquire the application lock.

        sp_getapplock returns 0 (granted) or 1 (granted after waiting);
        negative values mean timeout, cancellation or deadlock.

        Raises:
            LockTimeoutError: If lock cannot be acquired within timeout
        """
        start = time.monotonic()
        res = self.session.execute_scalar(
            _GET_APPLOCK, {"resource": self.resource, "timeout_ms": self.timeout_ms}
        )
        acquired = res is not None and int(res) >= 0
        observe_app_lock(acquired, time.monotonic() - start)

        if not acquired:
            raise LockTimeoutError(
                f"Failed to acquire maintenance lock '{self.resource}' "
                f"within {self.timeout_ms} ms (sp_getapplock returned {res})"
            )

        self._acquired = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        """
        Release the application lock.

        Lock is released regardless of whether an exception occurred. A
        failed release is logged, never raised over the body's exception;
        the session-owned lock still goes away when the connection closes.
        """
        if not self._acquired:
            return False
        try:
            # sp_releaseapplock returns a status; we ignore the result
            self.session.execute_scalar(_RELEASE_APPLOCK, {"resource": self.resource})
        except Exception:
            if exc_type is None:
                raise
            logger.warning(
                "Failed to release maintenance lock '%s' while handling %s",
                self.resource,
                exc_type.__name__,
                exc_info=True,
            )
        finally:
            self._acquired = False

        # Propagate exceptions
        return False
