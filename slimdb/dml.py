"""Handlers for statements that read and change table rows."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .mutations import delete_where, update_where
from .queries import render, select_join, select_where_expression
from .schema import DatabaseError
from .table import Table

if TYPE_CHECKING:
    from .context import Context

_FLAGS = re.IGNORECASE | re.ASCII
_WHITESPACE = " \t\n\r\f\v"

_INSERT = re.compile(r"INSERT\s+INTO\s+(\w+)\s+VALUES\s*\(\s*([^)]+)\s*\);?", _FLAGS)
_SELECT_ALL = re.compile(r"FIND\s+\*\s+FROM\s+(\w+)\s*;?\s*", _FLAGS)
_SELECT_WHERE = re.compile(r"FIND\s+\*\s+FROM\s+(\w+)\s+WHERE\s+(.+?);?\s*", _FLAGS)
_SELECT_JOIN = re.compile(
    r"FIND\s+\*\s+FROM\s+(\w+)\s+JOIN\s+(\w+)\s+ON\s+(\w+)\.(\w+)\s*=\s*(\w+)\.(\w+)\s*;?\s*",
    _FLAGS,
)
_UPDATE = re.compile(
    r'UPDATE\s+(\w+)\s+SET\s+(\w+)\s*=\s*"?([^"]+?)"?\s+WHERE\s+(.+?);?', _FLAGS
)
_DELETE = re.compile(r"KILL\s+FROM\s+(\w+)\s+WHERE\s+(.+?);?", _FLAGS)


def _split_values(raw: str) -> list[str]:
    """Split a VALUES list on commas, dropping double quotes and outer whitespace."""
    parts = raw.split(",")
    if raw == "" or raw.endswith(","):
        parts.pop()
    return [part.replace('"', "").strip(_WHITESPACE) for part in parts]


def _open(context: "Context", table_name: str) -> Table:
    return Table.from_schema(table_name, context.current_database, context.root)


def handle_insert(context: "Context", query: str) -> str:
    """Insert one row from an INSERT INTO ... VALUES (...) statement."""
    match = _INSERT.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid INSERT syntax.")
    table_name, raw = match.groups()
    table = _open(context, table_name)
    table.insert(_split_values(raw))
    return (
        f"Inserted into '{table_name}' in database '{context.current_database}' "
        "successfully."
    )


def handle_select(context: "Context", query: str) -> str:
    """Run a FIND statement and return the rendered result."""
    match = _SELECT_JOIN.fullmatch(query)
    if match is not None:
        name1, name2, left_table, left_col, right_table, right_col = match.groups()
        condition = f"{left_table}.{left_col} = {right_table}.{right_col}"
        table1 = _open(context, name1)
        table2 = _open(context, name2)
        headers, rows = select_join(table1, table2, condition)
        return render(headers, rows)

    match = _SELECT_WHERE.fullmatch(query)
    if match is not None:
        table_name, where_clause = match.groups()
        table = _open(context, table_name)
        headers, rows = select_where_expression(table, where_clause)
        text = render(headers, rows)
        if not rows:
            text += "No records found matching the condition.\n"
        return text

    match = _SELECT_ALL.fullmatch(query)
    if match is not None:
        table = _open(context, match.group(1))
        rows = table.select_all()
        headers = [(column.name, column.size) for column in table.columns]
        text = render(headers, rows)
        if not rows:
            text += "No records found.\n"
        return text

    raise DatabaseError("Invalid FIND syntax.")


def handle_update(context: "Context", query: str) -> str:
    """Apply an UPDATE ... SET ... WHERE ... statement."""
    match = _UPDATE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid UPDATE syntax.")
    table_name, column, new_value, where_clause = match.groups()
    table = _open(context, table_name)
    update_where(table, column, new_value, where_clause)
    return f"Updated successfully in database '{context.current_database}'."


def handle_delete(context: "Context", query: str) -> str:
    """Apply a KILL FROM ... WHERE ... statement."""
    match = _DELETE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid DELETE syntax.")
    table_name, condition = match.groups()
    table = _open(context, table_name)
    delete_where(table, condition)
    return f"Deleted successfully from database '{context.current_database}'."