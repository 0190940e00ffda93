"""Routes one query line to the matching statement handler."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .ddl import (
    handle_create_database,
    handle_create_index,
    handle_create_table,
    handle_describe_table,
    handle_show_tables,
    handle_use_database,
)
from .dml import _split_values, handle_delete, handle_insert, handle_select, handle_update
from .schema import DatabaseError

if TYPE_CHECKING:
    from .context import Context

_FLAGS = re.IGNORECASE | re.ASCII
_WHITESPACE = " \t\n\r\f\v"
_CLEAR_SCREEN = "\x1b[2J\x1b[H"
_NO_DATABASE = "No database selected. Use USE <database_name> to select a database."

_CHECKPOINT_CREATE = re.compile(r"CHECKPOINT\s+CREATE\s+(\w+);?", _FLAGS)
_CHECKPOINT_ROLLBACK = re.compile(r"CHECKPOINT\s+ROLLBACK\s+TO\s+(\w+);?", _FLAGS)
_CHECKPOINT_COMMIT = re.compile(r"CHECKPOINT\s+COMMIT\s+TO\s+(\w+);?", _FLAGS)
_CHECKPOINT_LIST = re.compile(r"CHECKPOINT\s+LIST;?", _FLAGS)

_INSERT = re.compile(r"INSERT INTO (\w+)\s+VALUES\s*\((.+)\);?", _FLAGS)
_UPDATE = re.compile(
    r'UPDATE\s+(\w+)\s+SET\s+(\w+)\s*=\s*"?([^"]+?)"?\s+WHERE\s+(\w+)\s*'
    r'(=|>=|<=|>|<)\s*"?([^"]+?)"?;?',
    _FLAGS,
)
_DELETE = re.compile(
    r'KILL FROM (\w+)\s+WHERE\s+(\w+)\s*(=|>=|<=|>|<)\s*"?([^"]+?)"?;?', _FLAGS
)


def _is(upper: str, word: str) -> bool:
    return upper in (word, word + ";")


def _checkpoint(context: "Context", query: str) -> str | None:
    transaction = context.transaction
    match = _CHECKPOINT_CREATE.fullmatch(query)
    if match:
        position = len(transaction.entries)
        transaction.create_checkpoint(match.group(1))
        return f"Created checkpoint '{match.group(1)}' at position {position}"
    match = _CHECKPOINT_ROLLBACK.fullmatch(query)
    if match:
        transaction.rollback_to_checkpoint(match.group(1))
        return f"Rolled back to checkpoint '{match.group(1)}'"
    match = _CHECKPOINT_COMMIT.fullmatch(query)
    if match:
        transaction.commit_to_checkpoint(match.group(1))
        return f"Committed to checkpoint '{match.group(1)}'"
    if _CHECKPOINT_LIST.fullmatch(query):
        names = transaction.list_checkpoints()
        if not names:
            return "No checkpoints exist in the current transaction."
        lines = ["Checkpoints in current transaction:"]
        for name in names:
            suffix = " (current)" if name == transaction.current_checkpoint else ""
            lines.append(f"- {name}{suffix}")
        return "\n".join(lines)
    return None


def _data_statement(context: "Context", query: str) -> str | None:
    transaction = context.transaction
    active = transaction.in_transaction
    given = transaction.is_database_given

    match = _INSERT.fullmatch(query)
    if match:
        if active and given:
            transaction.add_insert(match.group(1), _split_values(match.group(2)))
            return "INSERT operation logged."
        if active:
            raise DatabaseError(_NO_DATABASE)
        return handle_insert(context, query)

    match = _UPDATE.fullmatch(query)
    if match:
        table_name, column, new_value, where_column, op, where_value = match.groups()
        if active and given:
            where_clause = f"{where_column} {op} {where_value}"
            transaction.add_update(table_name, [new_value], column, where_clause)
            return "UPDATE operation logged."
        if active:
            raise DatabaseError(_NO_DATABASE)
        return handle_update(context, query)

    match = _DELETE.fullmatch(query)
    if match:
        table_name, where_column, op, where_value = match.groups()
        if active and given:
            transaction.add_delete(table_name, f"{where_column} {op} {where_value}")
            return "DELETE operation logged."
        if not given and not active:
            raise DatabaseError(_NO_DATABASE)
        return handle_delete(context, query)
    return None


def handle_query(context: "Context", query: str) -> str:
    """Run one statement and return its output; failures raise DatabaseError."""
    trimmed = query.strip(_WHITESPACE)
    upper = trimmed.upper()
    transaction = context.transaction

    if _is(upper, "CLS"):
        return _CLEAR_SCREEN
    if _is(upper, "BEGIN"):
        transaction.begin()
        return "Transaction started."
    if _is(upper, "COMMIT") and transaction.in_transaction:
        transaction.commit()
        return "Transaction committed successfully."
    if _is(upper, "ROLLBACK") and transaction.in_transaction:
        transaction.rollback()
        return "Transaction rolled back completely."

    if transaction.in_transaction:
        output = _checkpoint(context, query)
        if output is not None:
            return output

    if upper.startswith("CREATE DATABASE"):
        if transaction.in_transaction:
            raise DatabaseError("CREATE DATABASE command is not allowed inside a transaction.")
        return handle_create_database(context, query)
    if upper.startswith("USE"):
        if transaction.in_transaction:
            if transaction.is_database_given:
                raise DatabaseError("Transaction on only one database is allowed")
            output = handle_use_database(context, query)
            transaction.is_database_given = True
            return output
        return handle_use_database(context, query)
    if upper.startswith("SHOW TABLES"):
        return handle_show_tables(context, query)
    if upper.startswith("DESCRIBE ") or upper.startswith("DESC "):
        return handle_describe_table(context, query)

    output = _data_statement(context, query)
    if output is not None:
        return output

    if upper.startswith("CREATE TABLE"):
        return handle_create_table(context, query)
    if upper.startswith("CREATE INDEX"):
        return handle_create_index(context, query)
    if upper.startswith("INSERT INTO"):
        return handle_insert(context, query)
    if upper.startswith("FIND * FROM"):
        return handle_select(context, query)
    if upper.startswith("UPDATE"):
        return handle_update(context, query)
    if upper.startswith("KILL FROM"):
        return handle_delete(context, query)
    raise DatabaseError("Unsupported or invalid query.")