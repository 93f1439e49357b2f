from __future__ import annotations

from collections.abc import Iterable

from .config import MaintenanceConfig
from .db.helpers import qualified_index_target
from .models import IndexFragmentationRecord, MaintenanceAction, MaintenanceStatement


def classify(record: IndexFragmentationRecord, config: MaintenanceConfig) -> MaintenanceAction:
    """
    Pick the maintenance action for one index.

    - page_count <= min_page_count          -> NONE (too small to benefit)
    - fragmentation <= min_fragmentation    -> NONE (not worth remediating)
    - fragmentation <= threshold            -> REORGANIZE
    - fragmentation >  threshold            -> REBUILD
    """
    if record.page_count <= config.min_page_count:
        return MaintenanceAction.NONE
    if record.fragmentation_percent <= config.min_fragmentation:
        return MaintenanceAction.NONE
    if record.fragmentation_percent <= config.threshold:
        return MaintenanceAction.REORGANIZE
    return MaintenanceAction.REBUILD


def _rebuild_options(config: MaintenanceConfig) -> str:
    options = []
    if config.online_rebuild:
        options.append("ONLINE = ON")
    if config.maxdop is not None:
        options.append(f"MAXDOP = {int(config.maxdop)}")
    if not options:
        return ""
    return f" WITH ({', '.join(options)})"


def build_statement(
    record: IndexFragmentationRecord,
    action: MaintenanceAction,
    config: MaintenanceConfig,
) -> MaintenanceStatement:
    """
    Build the ALTER INDEX statement for one classified index.

    Raises:
        ValueError: If action is NONE or an identifier is invalid
    """
    target = qualified_index_target(record.schema_name, record.table_name, record.index_name)

    if action == MaintenanceAction.REORGANIZE:
        sql = f"ALTER INDEX {target} REORGANIZE"
    elif action == MaintenanceAction.REBUILD:
        sql = f"ALTER INDEX {target} REBUILD{_rebuild_options(config)}"
    else:
        raise ValueError(f"No statement for action {action.value!r} on {record.qualified_name}")

    return MaintenanceStatement(record=record, action=action, sql=sql)


def plan(
    records: Iterable[IndexFragmentationRecord],
    config: MaintenanceConfig,
) -> tuple[list[MaintenanceStatement], list[IndexFragmentationRecord]]:
    """
    Classify every record once, in order.

    Returns:
        (statements to issue, records that need no action)
    """
    statements: list[MaintenanceStatement] = []
    skipped: list[IndexFragmentationRecord] = []
    for record in records:
        action = classify(record, config)
        if action == MaintenanceAction.NONE:
            skipped.append(record)
        else:
            statements.append(build_statement(record, action, config))
    return statements, skipped
