from __future__ import annotations

import re

# SQL Server sysname is nvarchar(128)
MAX_IDENTIFIER_LENGTH = 128

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_NATIVE_ERROR = re.compile(r"\((\d{3,6})\)")


def validate_identifier(name: str, identifier_type: str = "identifier") -> str:
    """
    Validate that an identifier (schema/table/index name) can be bracket quoted.

    Index and table names read back from the catalog may legally contain
    spaces, dots or brackets, so unlike a bare-word check this only rejects
    what SQL Server itself would reject: empty names, control characters and
    names longer than sysname.

    ⚠️ SECURITY CONTRACT ⚠️
    Identifiers cannot be bound as parameters inside DDL. They are always
    interpolated through quote_identifier(), never concatenated raw.

    Args:
        name: The identifier to validate
        identifier_type: Description of the identifier (for error messages)

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        TypeError: If identifier is not a string
        ValueError: If identifier is empty, too long or contains control characters

    Example:
        >>> validate_identifier("IX_Orders_CustomerId", "index")
        'IX_Orders_CustomerId'
        >>> validate_identifier("", "table")
        ValueError: table cannot be empty
    """
    if not isinstance(name, str):
        raise TypeError(f"{identifier_type} must be a string, got {type(name).__name__}")

    if not name:
        raise ValueError(f"{identifier_type} cannot be empty")

    if _CONTROL_CHARS.search(name):
        raise ValueError(f"Invalid {identifier_type} {name!r}: contains control characters")

    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"{identifier_type} {name!r} exceeds SQL Server's "
            f"{MAX_IDENTIFIER_LENGTH}-character limit"
        )

    return name


def quote_identifier(name: str, identifier_type: str = "identifier") -> str:
    """Bracket-quote an identifier, doubling any closing bracket (same as QUOTENAME)."""
    name = validate_identifier(name, identifier_type)
    return "[" + name.replace("]", "]]") + "]"


def qualified_table_name(schema: str, table: str) -> str:
    return f"{quote_identifier(schema, 'schema')}.{quote_identifier(table, 'table')}"


def qualified_index_target(schema: str, table: str, index: str) -> str:
    """Render ``[index] ON [schema].[table]`` for ALTER INDEX."""
    return f"{quote_identifier(index, 'index')} ON {qualified_table_name(schema, table)}"


def sql_error_number(exc: BaseException) -> int | None:
    """
    Extract the SQL Server native error number from a DBAPI error.

    pyodbc reports it inside the message, e.g. ``"... exceeded. (1222) (SQLExecDirectW)"``;
    pymssql puts it in ``args[0]``. SQLAlchemy wraps both in ``exc.orig``.
    """
    orig = getattr(exc, "orig", None) or exc
    args = getattr(orig, "args", ()) or ()

    if args and isinstance(args[0], int):
        return args[0]

    for arg in args:
        if isinstance(arg, bytes):
            arg = arg.decode("utf-8", errors="replace")
        if isinstance(arg, str):
            match = _NATIVE_ERROR.search(arg)
            if match:
                return int(match.group(1))

    match = _NATIVE_ERROR.search(str(orig))
    if match:
        return int(match.group(1))
    return None


def sql_error_message(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None) or exc
    return str(orig)


# Permission denied on object, schema or database.
PERMISSION_ERRORS = frozenset({229, 230, 262, 297, 300, 15247})

# Invalid object name / cannot find the object.
OBJECT_NOT_FOUND_ERRORS = frozenset({208, 1088, 15151})

# Deadlock victim, lock timeout, scan aborted by data movement, and the
# Azure SQL transient connectivity set.
TRANSIENT_ERRORS = frozenset({
    601, 1205, 1222,
    4060, 4221, 40197, 40501, 40613, 49918, 49919, 49920,
})
