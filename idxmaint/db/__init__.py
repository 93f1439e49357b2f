from .catalog import fetch_fragmentation, has_alter_permission, resolve_table
from .helpers import quote_identifier, qualified_table_name
from .locking import AppLock
from .session import DbSession

__all__ = [
    "DbSession",
    "AppLock",
    "resolve_table",
    "has_alter_permission",
    "fetch_fragmentation",
    "quote_identifier",
    "qualified_table_name",
]
