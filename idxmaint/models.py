from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class MaintenanceAction(str, Enum):
    REORGANIZE = "reorganize"
    REBUILD = "rebuild"
    NONE = "none"


class StatementStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class IndexFragmentationRecord:
    """
    Physical fragmentation of one index, as sampled for a single run.
    """
    schema_name: str
    table_name: str
    index_name: str
    fragmentation_percent: float
    page_count: int

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}.{self.index_name}"


@dataclass(frozen=True)
class MaintenanceStatement:
    record: IndexFragmentationRecord
    action: MaintenanceAction
    sql: str


@dataclass
class StatementOutcome:
    statement: MaintenanceStatement
    status: StatementStatus
    error: Optional[str] = None
    duration_s: float = 0.0

    @property
    def index_name(self) -> str:
        return self.statement.record.index_name


@dataclass
class MaintenanceReport:
    """
    Result of one maintenance pass over a table.

    Every sampled index appears exactly once: in ``skipped`` when it needed
    no action, otherwise in ``outcomes``.
    """
    schema_name: str
    table_name: str
    threshold: float
    dry_run: bool = False
    skipped: list[IndexFragmentationRecord] = field(default_factory=list)
    outcomes: list[StatementOutcome] = field(default_factory=list)

    def _with(self, action: MaintenanceAction, status: StatementStatus) -> list[StatementOutcome]:
        return [
            o for o in self.outcomes
            if o.statement.action == action and o.status == status
        ]

    @property
    def reorganized(self) -> list[StatementOutcome]:
        return self._with(MaintenanceAction.REORGANIZE, StatementStatus.SUCCEEDED)

    @property
    def rebuilt(self) -> list[StatementOutcome]:
        return self._with(MaintenanceAction.REBUILD, StatementStatus.SUCCEEDED)

    @property
    def failed(self) -> list[StatementOutcome]:
        return [o for o in self.outcomes if o.status == StatementStatus.FAILED]

    @property
    def timed_out(self) -> list[StatementOutcome]:
        """Statements never issued because the batch timeout ran out."""
        if self.dry_run:
            return []
        return [o for o in self.outcomes if o.status == StatementStatus.SKIPPED]

    @property
    def no_action_taken(self) -> bool:
        return not self.outcomes

    @property
    def succeeded(self) -> bool:
        return not self.failed and not self.timed_out
