"""Column definitions and the plain-text schema file format."""

from __future__ import annotations

import re
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Iterable, Union

_STRING_TYPE = re.compile(r"STRING\((\d+)\)", re.IGNORECASE | re.ASCII)
_DIGITS = re.compile(r"[0-9]+")

StrPath = Union[str, "PathLike[str]"]


class DatabaseError(Exception):
    """Raised when a schema, table or constraint operation fails."""


@dataclass
class Column:
    """One column of a table with its type, width and constraints."""

    name: str
    type: str
    size: int = 0
    is_primary_key: bool = False
    is_foreign_key: bool = False
    ref_table: str = ""
    ref_column: str = ""
    is_unique: bool = False
    is_not_null: bool = False
    is_indexed: bool = False

    def to_schema_line(self) -> str:
        """Render this column as one line of a schema file."""
        parts = [self.name]
        if self.type == "STRING":
            parts.append(f"STRING({self.size})")
        else:
            parts.extend([self.type, str(self.size)])
        if self.is_primary_key:
            parts.append("PRIMARY_KEY")
        if self.is_foreign_key:
            if not self.ref_table or not self.ref_column:
                raise DatabaseError(
                    f"Invalid FOREIGN_KEY for column '{self.name}': "
                    "refTable or refColumn is empty."
                )
            parts.extend(["FOREIGN_KEY", self.ref_table, self.ref_column])
        if self.is_unique:
            parts.append("UNIQUE_KEY")
        if self.is_not_null:
            parts.append("NOT_NULL")
        if self.is_indexed:
            parts.append("INDEXED")
        return " ".join(parts)


def parse_column_line(line: str) -> Column:
    """Parse one schema line into a :class:`Column`."""
    tokens = line.split()
    name = tokens[0] if tokens else ""
    type_token = tokens[1] if len(tokens) > 1 else ""
    rest = iter(tokens[2:])

    string_match = _STRING_TYPE.fullmatch(type_token)
    if string_match:
        column = Column(name, "STRING", int(string_match.group(1)))
    elif type_token == "INT":
        size_token = next(rest, None)
        if size_token is None or not _DIGITS.fullmatch(size_token):
            raise DatabaseError(f"Invalid size in schema for column '{name}': {size_token}")
        column = Column(name, "INT", int(size_token))
    else:
        raise DatabaseError(f"Invalid type in schema for column '{name}': {type_token}")

    for token in rest:
        if token == "PRIMARY_KEY":
            column.is_primary_key = True
        elif token == "FOREIGN_KEY":
            column.is_foreign_key = True
            ref_table = next(rest, None)
            ref_column = next(rest, None)
            if ref_table is None or ref_column is None:
                raise DatabaseError(f"Invalid FOREIGN KEY reference format for column '{name}'")
            column.ref_table, column.ref_column = ref_table, ref_column
        elif token == "UNIQUE_KEY":
            column.is_unique = True
        elif token == "NOT_NULL":
            column.is_not_null = True
        elif token == "INDEXED":
            column.is_indexed = True
        else:
            raise DatabaseError(f"Invalid constraint '{token}' for column '{name}'")
    return column


def load_schema(path: StrPath) -> list[Column]:
    """Read every column from a schema file, skipping empty lines."""
    text = Path(path).read_text(encoding="utf-8")
    return [parse_column_line(line) for line in text.split("\n") if line]


def save_schema(path: StrPath, columns: Iterable[Column]) -> None:
    """Write the columns to a schema file, one per line."""
    lines = [column.to_schema_line() + "\n" for column in columns]
    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.writelines(lines)
    except OSError as exc:
        raise DatabaseError(f"Failed to open schema file for writing: {path}") from exc