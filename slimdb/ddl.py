"""Handlers for statements that define databases, tables and indexes."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from .schema import Column, DatabaseError
from .table import Table, database_dir

if TYPE_CHECKING:
    from .context import Context

_FLAGS = re.IGNORECASE | re.ASCII

_CREATE_DATABASE = re.compile(r"CREATE DATABASE (\w+);?", _FLAGS)
_USE_DATABASE = re.compile(r"USE (\w+);?", _FLAGS)
_DESCRIBE = re.compile(r"DESCRIBE\s+(\w+);?|DESC\s+(\w+);?", _FLAGS)
_CREATE_TABLE = re.compile(r"CREATE TABLE (\w+)\s*\((.+)\);?", _FLAGS)
_CREATE_INDEX = re.compile(r"CREATE INDEX ON (\w+)\s*\((\w+)\);?", _FLAGS)
_STRING_TYPE = re.compile(r"STRING\((\d+)\)", _FLAGS)
_REFERENCE = re.compile(r"(\w+)\((\w+)\)", re.ASCII)

_NO_DATABASE = "No database selected. Use USE <database_name> to select a database."
_INT_WIDTH = 10


def validate_foreign_key(context: "Context", ref_table: str, ref_column: str, db_name: str) -> None:
    """Raise unless ``ref_table`` exists in ``db_name`` and has ``ref_column``."""
    try:
        table = Table.from_schema(ref_table, db_name, context.root)
    except (DatabaseError, OSError) as exc:
        raise DatabaseError(
            f"Referenced table '{ref_table}' does not exist in database '{db_name}'."
        ) from exc
    if not any(column.name == ref_column for column in table.columns):
        raise DatabaseError(
            f"Referenced column '{ref_column}' does not exist in table '{ref_table}'."
        )


def _split_definitions(raw: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    in_parentheses = False
    for char in raw:
        if char == "(":
            in_parentheses = True
        elif char == ")":
            in_parentheses = False
        elif char == "," and not in_parentheses:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current))
    return parts


def _parse_definition(context: "Context", definition: str, db_name: str) -> Column:
    words = definition.split()
    name = words[0]
    type_token = words[1] if len(words) > 1 else ""
    string_match = _STRING_TYPE.fullmatch(type_token)
    if string_match:
        column = Column(name, "STRING", int(string_match.group(1)))
    elif type_token == "INT":
        column = Column(name, "INT", _INT_WIDTH)
    else:
        raise DatabaseError(f"Unknown type: {type_token}")

    tokens = words[2:]
    i = 0
    while i < len(tokens):
        token = tokens[i]
        following = tokens[i + 1] if i + 1 < len(tokens) else None
        if token in ("PRIMARY", "PRIMARY_KEY"):
            if token == "PRIMARY" and following == "KEY":
                i += 1
            column.is_primary_key = True
        elif token in ("FOREIGN", "FOREIGN_KEY"):
            column.is_foreign_key = True
            if token == "FOREIGN" and following == "KEY":
                i += 1
            if i + 1 >= len(tokens) or tokens[i + 1] != "REFERENCES":
                raise DatabaseError("Expected REFERENCES after FOREIGN KEY.")
            i += 1
            if i + 1 >= len(tokens):
                raise DatabaseError("Expected table(column) after REFERENCES.")
            i += 1
            reference = _REFERENCE.fullmatch(tokens[i])
            if reference is None:
                raise DatabaseError(
                    "Invalid FOREIGN KEY reference format. Expected table(column)."
                )
            column.ref_table, column.ref_column = reference.groups()
            validate_foreign_key(context, column.ref_table, column.ref_column, db_name)
        elif token in ("UNIQUE", "UNIQUE_KEY"):
            column.is_unique = True
        elif token in ("NOT", "NOT_NULL"):
            if token == "NOT" and following == "NULL":
                i += 1
            column.is_not_null = True
        elif token == "INDEXED":
            column.is_indexed = True
        i += 1
    return column


def parse_column_definitions(context: "Context", raw: str, db_name: str) -> list[Column]:
    """Parse the comma separated column list of a CREATE TABLE statement."""
    for char in "\n\r\t":
        raw = raw.replace(char, "")
    columns = []
    for definition in _split_definitions(raw):
        definition = definition.strip(" \t\n\r\f\v")
        if definition:
            columns.append(_parse_definition(context, definition, db_name))
    return columns


def handle_create_database(context: "Context", query: str) -> str:
    """Create a database directory with its data directory."""
    match = _CREATE_DATABASE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid CREATE DATABASE syntax.")
    db_name = match.group(1)
    db_path = database_dir(context.root, db_name)
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db_path.mkdir()
        (db_path / "data").mkdir()
    except OSError as exc:
        raise DatabaseError(
            f"Database '{db_name}' already exists or cannot be created."
        ) from exc
    return f"Database '{db_name}' created successfully."


def handle_use_database(context: "Context", query: str) -> str:
    """Switch the session to an existing database."""
    match = _USE_DATABASE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid USE syntax.")
    db_name = match.group(1)
    if not database_dir(context.root, db_name).exists():
        raise DatabaseError(f"Database '{db_name}' does not exist.")
    context.current_database = db_name
    context.transaction.is_database_given = True
    return f"Switched to database '{db_name}'."


def handle_show_tables(context: "Context", query: str) -> str:
    """List the tables of the current database."""
    db_name = context.current_database
    if not db_name:
        raise DatabaseError(_NO_DATABASE)
    data_dir = database_dir(context.root, db_name) / "data"
    if not data_dir.exists():
        raise DatabaseError("Database data directory not found.")
    tables = sorted(path.stem for path in data_dir.iterdir() if path.suffix == ".schema")
    if not tables:
        return f"No tables found in database '{db_name}'.\n"
    lines = ["Table Name".ljust(30) + "|", "-" * 30 + "-+"]
    lines.extend(name.ljust(30) + "|" for name in tables)
    return "\n".join(lines) + "\n"


def _constraints(column: Column) -> str:
    flags = [
        ("PRIMARY_KEY", column.is_primary_key),
        ("FOREIGN_KEY", column.is_foreign_key),
        ("UNIQUE", column.is_unique),
        ("NOT_NULL", column.is_not_null),
        ("INDEXED", column.is_indexed),
    ]
    names = [name for name, present in flags if present]
    return " ".join(names) if names else "NONE"


def _describe_line(name: str, type_: str, size: str, constraints: str) -> str:
    return f"{name:<20}| {type_:<15}| {size:<10}| {constraints:<15}|"


def handle_describe_table(context: "Context", query: str) -> str:
    """Describe the columns of one table."""
    match = _DESCRIBE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid DESCRIBE syntax.")
    table_name = match.group(1) or match.group(2)
    db_name = context.current_database
    if not db_name:
        raise DatabaseError(_NO_DATABASE)
    table = Table.from_schema(table_name, db_name, context.root)
    lines = [
        f"Table: {table_name}",
        _describe_line("Column Name", "Type", "Size", "Constraints"),
        "-" * 20 + "-+-" + "-" * 15 + "-+-" + "-" * 10 + "-+-" + "-" * 15 + "-+",
    ]
    for column in table.columns:
        type_ = column.type
        if column.type == "STRING":
            type_ += f"({column.size})"
        lines.append(_describe_line(column.name, type_, str(column.size), _constraints(column)))
    return "\n".join(lines) + "\n"


def handle_create_table(context: "Context", query: str) -> str:
    """Create a table from a CREATE TABLE statement."""
    match = _CREATE_TABLE.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid CREATE TABLE syntax.")
    table_name, raw = match.groups()
    db_name = context.current_database
    if not db_name:
        raise DatabaseError(_NO_DATABASE)
    if db_name == "default" and not database_dir(context.root, "default").exists():
        handle_create_database(context, "CREATE DATABASE default;")
    columns = parse_column_definitions(context, raw, db_name)
    table = Table(table_name, columns, db_name, context.root)
    return (
        f"Table '{table_name}' created successfully in database '{db_name}' "
        f"with {len(table.columns)} columns."
    )


def handle_create_index(context: "Context", query: str) -> str:
    """Create an index on one column of a table."""
    match = _CREATE_INDEX.fullmatch(query)
    if match is None:
        raise DatabaseError("Invalid CREATE INDEX syntax.")
    table_name, col_name = match.groups()
    db_name = context.current_database
    table = Table.from_schema(table_name, db_name, context.root)
    table.create_index(col_name)
    return (
        f"Index created on column '{col_name}' for table '{table_name}' "
        f"in database '{db_name}'."
    )