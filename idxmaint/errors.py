from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import MaintenanceReport


class IdxMaintError(Exception):
    """Base exception for idxmaint errors."""


class ConfigurationError(IdxMaintError):
    """The maintenance target or its parameters are invalid."""


class ObjectNotFoundError(ConfigurationError):
    """The schema/table pair does not resolve to a user table."""


class PermissionDeniedError(IdxMaintError):
    """The caller lacks ALTER permission on the target. Not retryable."""

    def __init__(self, message: str, report: "MaintenanceReport | None" = None) -> None:
        super().__init__(message)
        self.report = report


class CatalogError(IdxMaintError):
    """A catalog or statistics query failed with a non-retryable database error."""


class StatisticsUnavailableError(IdxMaintError):
    """The index statistics view could not be sampled. Transient, retryable."""


class StatementExecutionError(IdxMaintError):
    """A single ALTER INDEX statement failed."""

    def __init__(self, index_name: str, message: str, error_number: int | None = None) -> None:
        super().__init__(f"{index_name}: {message}")
        self.index_name = index_name
        self.error_number = error_number


class LockTimeoutError(IdxMaintError):
    """Failed to acquire the maintenance lock within the timeout period."""
