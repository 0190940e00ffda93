"""Row deletion and in-place update, with key and reference checks."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Sequence

from .conditions import evaluate_condition, validate_where_columns
from .schema import Column, DatabaseError, StrPath
from .table import Table, decode_rows, encode_row

logger = logging.getLogger(__name__)

_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


def _parse_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def _encode(value: str) -> bytes:
    return value.encode("utf-8", "surrogateescape")


def _decode(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def _names(table: Table) -> list[str]:
    return [column.name for column in table.columns]


def _matches(table: Table, condition: str, row: Sequence[str]) -> bool:
    try:
        return evaluate_condition(condition, row, _names(table))
    except ValueError as exc:
        raise DatabaseError(f"Invalid condition: {condition}") from exc


def _check_where(table: Table, where_clause: str) -> None:
    if not where_clause:
        raise DatabaseError("Condition is required")
    if not validate_where_columns(where_clause, _names(table)):
        raise DatabaseError(f"Invalid WHERE clause: {where_clause}")


def _target(table: Table, file_path: StrPath | None) -> Path:
    return Path(file_path) if file_path is not None else table.file_path


def _rebuild_indexes(table: Table) -> None:
    for column in table.columns:
        if column.is_indexed:
            if column.name not in table.indexes:
                table.load_index(column.name)
            table.rebuild_index(column.name)


def _column_references(dep: Table, column: Column, pk_value: str) -> bool:
    if column.name in dep.indexes:
        return bool(dep.indexes[column.name].search(pk_value))
    position = dep.columns.index(column)
    return any(row[position] == pk_value for row in dep.select_all())


def find_foreign_key_reference(table: Table, pk_value: str) -> tuple[str, str] | None:
    """Return ``(table, column)`` of a foreign key that holds ``pk_value``, if any."""
    pk = next((column for column in table.columns if column.is_primary_key), None)
    if pk is None or not table.data_dir.is_dir():
        return None
    for schema_file in sorted(table.data_dir.glob("*.schema")):
        dep_name = schema_file.stem
        if dep_name == table.name:
            continue
        try:
            dep = Table.from_schema(dep_name, table.db_name, table.root)
            for column in dep.columns:
                if (
                    column.is_foreign_key
                    and column.ref_table == table.name
                    and column.ref_column == pk.name
                    and _column_references(dep, column, pk_value)
                ):
                    return dep_name, column.name
        except (DatabaseError, OSError, RuntimeError) as exc:
            logger.debug("skipping table %s: %s", dep_name, exc)
    return None


def delete_where(table: Table, condition: str, file_path: StrPath | None = None) -> int:
    """Remove every row matching ``condition``; return how many were removed."""
    _check_where(table, condition)
    path = _target(table, file_path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DatabaseError(f"Failed to open file for reading: {path}") from exc

    rows = decode_rows(data, table.columns)
    flags = [_matches(table, condition, row) for row in rows]

    pk_position = next(
        (i for i, column in enumerate(table.columns) if column.is_primary_key), None
    )
    if pk_position is not None:
        for row, doomed in zip(rows, flags):
            if not doomed:
                continue
            pk_value = row[pk_position]
            reference = find_foreign_key_reference(table, pk_value)
            if reference is not None:
                ref_table, ref_column = reference
                raise DatabaseError(
                    f"Cannot delete primary key value '{pk_value}' from table "
                    f"'{table.name}' because it is referenced by foreign key in table "
                    f"'{ref_table}' column '{ref_column}'."
                )

    kept = [row for row, doomed in zip(rows, flags) if not doomed]
    try:
        path.write_bytes(b"".join(encode_row(row, table.columns) for row in kept))
    except OSError as exc:
        raise DatabaseError(f"Failed to open file for writing: {path}") from exc

    deleted = sum(flags)
    if deleted:
        _rebuild_indexes(table)
    return deleted


def _check_new_value(table: Table, column: Column, new_value: str) -> None:
    if column.is_not_null and not new_value:
        raise DatabaseError(f"Column '{column.name}' cannot be null.")
    if column.type == "INT":
        try:
            _parse_int(new_value)
        except ValueError as exc:
            raise DatabaseError(
                f"Invalid INT value '{new_value}' for column '{column.name}'."
            ) from exc
    elif column.type == "STRING" and len(_encode(new_value)) > column.size:
        raise DatabaseError(
            f"STRING value '{new_value}' exceeds size limit of {column.size} "
            f"for column '{column.name}'."
        )
    if column.is_primary_key or column.is_unique:
        raise DatabaseError(
            f"Cannot update primary or unique key column '{column.name}'."
        )


def _check_reference(table: Table, column: Column, new_value: str) -> None:
    ref = Table.from_schema(column.ref_table, table.db_name, table.root)
    ref_col = next((c for c in ref.columns if c.name == column.ref_column), None)
    if ref_col is None or not ref_col.is_primary_key:
        raise DatabaseError(
            f"Referenced column '{column.ref_column}' in table '{column.ref_table}' "
            "is not a primary key."
        )
    found = ref_col.name in ref.indexes and bool(ref.indexes[ref_col.name].search(new_value))
    if not found:
        position = ref.columns.index(ref_col)
        found = any(row[position] == new_value for row in ref.select_all())
    if not found:
        raise DatabaseError(
            f"Foreign key value '{new_value}' does not exist in referenced table "
            f"'{column.ref_table}' column '{column.ref_column}'."
        )


def _read_padded_rows(data: bytes, table: Table) -> list[list[str]]:
    record_size = table.row_size()
    rows = []
    for start in range(0, len(data), record_size):
        row = []
        position = start
        for column in table.columns:
            value = _decode(data[position:position + column.size])
            if column.type == "STRING":
                value = value.rstrip(" ")
            row.append(value)
            position += column.size
        rows.append(row)
    return rows


def _encode_padded_row(row: Sequence[str], table: Table) -> bytes:
    fields = []
    for value, column in zip(row, table.columns):
        pad = b" " if column.type == "STRING" else b"\0"
        fields.append(_encode(value)[: column.size].ljust(column.size, pad))
    return b"".join(fields)


def update_where(
    table: Table,
    column: str,
    new_value: str,
    where_clause: str,
    file_path: StrPath | None = None,
) -> int:
    """Set ``column`` to ``new_value`` on rows matching the clause; return the count."""
    position = next(
        (i for i, candidate in enumerate(table.columns) if candidate.name == column), None
    )
    if position is None:
        raise DatabaseError(f"Column '{column}' does not exist in table '{table.name}'.")
    target_column = table.columns[position]
    _check_new_value(table, target_column, new_value)
    if target_column.is_foreign_key:
        _check_reference(table, target_column, new_value)
    _check_where(table, where_clause)

    path = _target(table, file_path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise DatabaseError(f"Failed to open file for reading: {path}") from exc
    record_size = table.row_size()
    if len(data) % record_size:
        raise DatabaseError(
            f"Corrupted file: {path} size ({len(data)}) is not a multiple of "
            f"row size ({record_size})."
        )

    updated = 0
    rows = _read_padded_rows(data, table)
    for row in rows:
        if _matches(table, where_clause, row):
            row[position] = new_value
            updated += 1

    try:
        path.write_bytes(b"".join(_encode_padded_row(row, table) for row in rows))
    except OSError as exc:
        raise DatabaseError(f"Failed to open file for writing: {path}") from exc

    if updated:
        _rebuild_indexes(table)
    logger.debug("updated %d rows in %s", updated, table.name)
    return updated