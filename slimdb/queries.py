"""Read-only queries over tables and their tabular rendering."""

from __future__ import annotations

import logging
import operator
import re
from typing import Callable, Iterable, Sequence

from .conditions import evaluate_condition, match_condition
from .schema import DatabaseError
from .table import Table, decode_rows

logger = logging.getLogger(__name__)

Header = tuple[str, int]

_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1
_JOIN = re.compile(r"\s*(\w+)\.(\w+)\s*=\s*(\w+)\.(\w+)\s*", re.ASCII)

_COMPARE: dict[str, Callable[[object, object], bool]] = {
    "=": operator.eq,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def _parse_int(text: str) -> int:
    match = _INT_PREFIX.match(text)
    if match is None:
        raise ValueError(f"no integer in {text!r}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise ValueError(f"integer out of range: {text!r}")
    return value


def render(headers: Sequence[Header], rows: Iterable[Sequence[str]]) -> str:
    """Lay out rows under ``(label, width)`` headers as a text table."""
    lines = ["".join(label.ljust(width) + " | " for label, width in headers)]
    lines.append("".join("-" * width + "-+-" for _, width in headers))
    for row in rows:
        lines.append(
            "".join(value.ljust(width) + " | " for value, (_, width) in zip(row, headers))
        )
    return "\n".join(lines) + "\n"


def _position(table: Table, column: str) -> int | None:
    return next((i for i, c in enumerate(table.columns) if c.name == column), None)


def _read_at(table: Table, offsets: Iterable[int]) -> list[list[str]]:
    record_size = table.row_size()
    rows: list[list[str]] = []
    try:
        with open(table.file_path, "rb") as handle:
            for offset in offsets:
                handle.seek(offset)
                record = handle.read(record_size)
                if len(record) == record_size:
                    rows.extend(decode_rows(record, table.columns))
    except OSError as exc:
        raise DatabaseError(f"Failed to open file for reading: {table.file_path}") from exc
    return rows


def select_where(table: Table, column: str, op: str, value: str) -> list[list[str]]:
    """Rows whose ``column`` compares to ``value`` with ``op``; INT columns compare as numbers."""
    position = _position(table, column)
    if position is None:
        raise DatabaseError(f"Column '{column}' not found in table '{table.name}'.")

    if column in table.indexes and op == "=":
        offsets = table.indexes[column].search(value)
        if offsets:
            return _read_at(table, offsets)

    if not table.file_path.exists():
        raise DatabaseError(f"Failed to open file for reading: {table.file_path}")
    numeric = table.columns[position].type == "INT"
    wanted: object = value
    if numeric:
        try:
            wanted = _parse_int(value)
        except ValueError as exc:
            raise DatabaseError(f"Invalid INT value '{value}' for column '{column}'.") from exc

    compare = _COMPARE.get(op)
    if compare is None:
        return []
    matches = []
    for row in table.select_all():
        field: object = row[position]
        if numeric:
            try:
                field = _parse_int(row[position])
            except ValueError:
                continue
        if compare(field, wanted):
            matches.append(row)
    return matches


def select_join(
    table1: Table, table2: Table, condition: str
) -> tuple[list[Header], list[list[str]]]:
    """Equi-join two tables on ``t1.col = t2.col``; return headers and combined rows."""
    match = _JOIN.fullmatch(condition)
    if match is None:
        raise DatabaseError(f"Invalid join condition: {condition}")
    name1, col1, name2, col2 = match.groups()
    if name1 != table1.name or name2 != table2.name:
        raise DatabaseError(f"Join condition does not name the joined tables: {condition}")
    index1 = _position(table1, col1)
    index2 = _position(table2, col2)
    if index1 is None or index2 is None:
        raise DatabaseError(f"Join column not found: {condition}")

    rows2 = table2.select_all()
    result: list[list[str]] = []
    if col1 in table1.indexes:
        logger.debug("using index for join")
        tree = table1.indexes[col1]
        for row2 in rows2:
            offsets = tree.search(row2[index2])
            if offsets:
                result.extend(row1 + row2 for row1 in _read_at(table1, offsets))
    else:
        logger.debug("using nested loop join")
        result = [
            row1 + row2
            for row1 in table1.select_all()
            for row2 in rows2
            if match_condition(row1[index1], row2[index2], "=")
        ]

    headers = [(f"{table1.name}.{c.name}", c.size) for c in table1.columns]
    headers += [(f"{table2.name}.{c.name}", c.size) for c in table2.columns]
    return headers, result


def select_where_expression(
    table: Table, where_clause: str
) -> tuple[list[Header], list[list[str]]]:
    """Rows matching a full boolean WHERE expression, with the table's headers."""
    names = [column.name for column in table.columns]
    try:
        rows = [
            row for row in table.select_all() if evaluate_condition(where_clause, row, names)
        ]
    except ValueError as exc:
        raise DatabaseError(f"Invalid condition: {where_clause}") from exc
    headers = [(column.name, column.size) for column in table.columns]
    return headers, rows