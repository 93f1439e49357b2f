from __future__ import annotations

import logging

from sqlalchemy import text

from ..models import IndexFragmentationRecord
from ..errors import ObjectNotFoundError
from .helpers import qualified_table_name
from .session import DbSession

logger = logging.getLogger(__name__)


_RESOLVE_TABLE = text("SELECT OBJECT_ID(:qualified_name, 'U') AS object_id")

_ALTER_PERMISSION = text(
    "SELECT HAS_PERMS_BY_NAME(:qualified_name, 'OBJECT', 'ALTER') AS has_perm"
)

# One row per index: heaps (index_id 0) cannot be targeted by ALTER INDEX,
# and partitions are folded into the worst fragmentation and the total size.
_INDEX_FRAGMENTATION = text(
    """
    SELECT
        s.name AS schema_name,
        t.name AS table_name,
        i.name AS index_name,
        MAX(ps.avg_fragmentation_in_percent) AS fragmentation_percent,
        SUM(ps.page_count) AS page_count
    FROM sys.dm_db_index_physical_stats(DB_ID(), :object_id, NULL, NULL, :scan_mode) AS ps
    INNER JOIN sys.indexes AS i
        ON i.object_id = ps.object_id AND i.index_id = ps.index_id
    INNER JOIN sys.tables AS t ON t.object_id = i.object_id
    INNER JOIN sys.schemas AS s ON s.schema_id = t.schema_id
    WHERE ps.index_id > 0
        AND ps.index_level = 0
        AND ps.alloc_unit_type_desc = 'IN_ROW_DATA'
        AND i.name IS NOT NULL
    GROUP BY s.name, t.name, i.name
    ORDER BY i.name
    """
)


def resolve_table(session: DbSession, schema: str, table: str) -> int:
    """
    Resolve a schema/table pair to its object_id.

    The name is bracket quoted and bound as a parameter; it is never
    concatenated into the query text.

    Raises:
        ObjectNotFoundError: If the pair does not name a user table
    """
    qualified = qualified_table_name(schema, table)
    object_id = session.execute_scalar(_RESOLVE_TABLE, {"qualified_name": qualified})
    if object_id is None:
        raise ObjectNotFoundError(f"Table {qualified} does not exist or is not visible")
    return int(object_id)


def has_alter_permission(session: DbSession, schema: str, table: str) -> bool:
    qualified = qualified_table_name(schema, table)
    result = session.execute_scalar(_ALTER_PERMISSION, {"qualified_name": qualified})
    return bool(result)


def fetch_fragmentation(
    session: DbSession,
    object_id: int,
    scan_mode: str = "LIMITED",
) -> list[IndexFragmentationRecord]:
    """
    Sample current fragmentation and size for every index on a table.
    """
    rows = session.fetch_all(
        _INDEX_FRAGMENTATION,
        {"object_id": object_id, "scan_mode": scan_mode},
    )
    records = [
        IndexFragmentationRecord(
            schema_name=row["schema_name"],
            table_name=row["table_name"],
            index_name=row["index_name"],
            fragmentation_percent=float(row["fragmentation_percent"] or 0.0),
            page_count=int(row["page_count"] or 0),
        )
        for row in rows
    ]
    logger.debug("Sampled %d index(es) for object_id=%s", len(records), object_id)
    return records
