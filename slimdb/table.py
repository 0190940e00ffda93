"""Fixed-width row storage for one table, with per-column B+ tree indexes."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterable, Sequence

from .bplustree import BPlusTree
from .schema import Column, DatabaseError, StrPath, load_schema, save_schema

logger = logging.getLogger(__name__)

_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*[+-]?[0-9]+")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


def database_dir(root: StrPath, db_name: str) -> Path:
    """Directory that holds one database under ``root``."""
    return Path(root) / "databases" / db_name


def _encode(value: str) -> bytes:
    return value.encode("utf-8", "surrogateescape")


def _decode(raw: bytes) -> str:
    return raw.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def encode_row(values: Sequence[str], columns: Sequence[Column]) -> bytes:
    """Pack values into one fixed-width record, NUL-padded and truncated per column."""
    fields = (
        _encode(value).split(b"\0", 1)[0][: column.size].ljust(column.size, b"\0")
        for value, column in zip(values, columns)
    )
    return b"".join(fields)


def decode_rows(data: bytes, columns: Sequence[Column]) -> list[list[str]]:
    """Unpack every complete record in ``data``; a trailing partial record is ignored."""
    record_size = sum(column.size for column in columns)
    if record_size == 0:
        return []
    rows = []
    for start in range(0, len(data) - record_size + 1, record_size):
        row = []
        position = start
        for column in columns:
            row.append(_decode(data[position:position + column.size]))
            position += column.size
        rows.append(row)
    return rows


def _is_int(value: str) -> bool:
    match = _INT_PREFIX.match(value)
    return match is not None and _INT_MIN <= int(match.group().strip()) <= _INT_MAX


class Table:
    """A table stored as a file of fixed-width records plus a schema file."""

    def __init__(
        self,
        name: str,
        columns: Iterable[Column],
        db_name: str = "default",
        root: StrPath = ".",
    ) -> None:
        self.name = name
        self.columns: list[Column] = list(columns)
        self.db_name = db_name
        self.root = Path(root)
        self.data_dir = database_dir(self.root, db_name) / "data"
        self.file_path = self.data_dir / f"{name}.db"
        self.schema_path = self.data_dir / f"{name}.schema"
        self.indexes: dict[str, BPlusTree] = {}
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(self.file_path, "ab"):
                pass
        except OSError as exc:
            raise DatabaseError(f"Failed to create or open file: {self.file_path}") from exc
        save_schema(self.schema_path, self.columns)

    @classmethod
    def from_schema(cls, name: str, db_name: str = "default", root: StrPath = ".") -> "Table":
        """Open an existing table from its schema file and load its indexes."""
        schema_path = database_dir(root, db_name) / "data" / f"{name}.schema"
        try:
            columns = load_schema(schema_path)
        except OSError as exc:
            raise DatabaseError(
                f"Schema for table '{name}' not found in database '{db_name}'."
            ) from exc
        table = cls(name, columns, db_name, root)
        for column in columns:
            if column.is_indexed:
                table.load_index(column.name)
        return table

    def _column(self, col_name: str) -> Column | None:
        return next((column for column in self.columns if column.name == col_name), None)

    def row_size(self) -> int:
        """Width in bytes of one record."""
        if not self.columns:
            raise DatabaseError(f"No columns defined for table '{self.name}'.")
        return sum(column.size for column in self.columns)

    def index_path(self, col_name: str) -> Path:
        """File that stores the index of one column."""
        return self.data_dir / f"{self.name}.{col_name}.idx"

    def select_all(self) -> list[list[str]]:
        """Every row in the table's data file."""
        if not self.file_path.exists():
            return []
        return decode_rows(self.file_path.read_bytes(), self.columns)

    def _tree(self, col_name: str) -> BPlusTree:
        if col_name not in self.indexes:
            self.load_index(col_name)
        return self.indexes[col_name]

    def _validate_value(self, column: Column, value: str) -> None:
        if column.is_not_null and not value:
            raise DatabaseError(
                f"Column '{column.name}' in table '{self.name}' cannot be null."
            )
        if column.type == "INT":
            if not _is_int(value):
                raise DatabaseError(
                    f"Invalid INT value '{value}' for column '{column.name}' "
                    f"in table '{self.name}'."
                )
        elif column.type == "STRING" and len(_encode(value)) > column.size:
            raise DatabaseError(
                f"STRING value '{value}' exceeds size limit of {column.size} "
                f"for column '{column.name}' in table '{self.name}'."
            )

    def _check_unique(self, position: int, column: Column, value: str) -> None:
        if column.name in self.indexes:
            taken = bool(self.indexes[column.name].search(value))
        else:
            taken = any(row[position] == value for row in self.select_all())
        if taken:
            kind = "Primary key" if column.is_primary_key else "Unique"
            raise DatabaseError(
                f"{kind} value '{value}' already exists in column '{column.name}' "
                f"of table '{self.name}'."
            )

    def _check_foreign_key(self, column: Column, value: str) -> None:
        try:
            ref = Table.from_schema(column.ref_table, self.db_name, self.root)
            ref_col = ref._column(column.ref_column)
            if ref_col is None or not ref_col.is_primary_key:
                raise DatabaseError(
                    f"Referenced column '{column.ref_column}' in table "
                    f"'{column.ref_table}' is not a primary key."
                )
            found = column.ref_column in ref.indexes and bool(
                ref.indexes[column.ref_column].search(value)
            )
            if not found:
                position = ref.columns.index(ref_col)
                found = any(row[position] == value for row in ref.select_all())
            if not found:
                raise DatabaseError(
                    f"Foreign key value '{value}' in column '{column.name}' does not exist "
                    f"in referenced table '{column.ref_table}' column '{column.ref_column}'."
                )
        except DatabaseError as exc:
            raise DatabaseError(
                f"Foreign key validation failed for column '{column.name}': {exc}"
            ) from exc

    def insert(self, values: Sequence[str], file_path: StrPath | None = None) -> int:
        """Validate and append one row; return the byte offset it was written at."""
        values = list(values)
        target = Path(file_path) if file_path is not None else self.file_path
        if len(values) != len(self.columns):
            raise DatabaseError(
                f"Incorrect number of values provided for table '{self.name}'. "
                f"Expected {len(self.columns)}, got {len(values)}."
            )
        for position, (column, value) in enumerate(zip(self.columns, values)):
            self._validate_value(column, value)
            if column.is_unique or column.is_primary_key:
                self._check_unique(position, column, value)
            if column.is_foreign_key:
                self._check_foreign_key(column, value)

        try:
            with open(target, "ab") as handle:
                handle.seek(0, os.SEEK_END)
                offset = handle.tell()
                handle.write(encode_row(values, self.columns))
        except OSError as exc:
            raise DatabaseError(f"Failed to open file for writing: {target}") from exc
        logger.debug("wrote row to %s at offset %d", target, offset)

        for column, value in zip(self.columns, values):
            if column.is_indexed:
                self._tree(column.name).insert(value, offset)
                self.save_index(column.name)
        return offset

    def create_index(self, col_name: str) -> None:
        """Index a column, build the index from existing rows and record it in the schema."""
        column = self._column(col_name)
        if column is None:
            raise DatabaseError(f"Column '{col_name}' not found in table '{self.name}'.")
        column.is_indexed = True
        self.indexes[col_name] = BPlusTree(column.type)
        self.rebuild_index(col_name)
        save_schema(self.schema_path, self.columns)

    def load_index(self, col_name: str) -> None:
        """Load a column's index from disk, starting empty when there is none."""
        column = self._column(col_name)
        if column is None:
            logger.warning("column '%s' not found in table '%s'", col_name, self.name)
            return
        tree = BPlusTree(column.type)
        self.indexes[col_name] = tree
        path = self.index_path(col_name)
        try:
            with open(path, "rb") as handle:
                tree.load(handle)
        except OSError:
            logger.debug("no index at %s, using a new tree", path)

    def save_index(self, col_name: str) -> None:
        """Write a column's index to disk."""
        tree = self.indexes.get(col_name)
        if tree is None:
            logger.debug("no index found for column %s", col_name)
            return
        path = self.index_path(col_name)
        try:
            handle = open(path, "wb")
        except OSError as exc:
            raise DatabaseError(f"Failed to open index file for writing: {path}") from exc
        with handle:
            try:
                tree.save(handle)
            except RuntimeError as exc:
                raise DatabaseError(
                    f"Failed to save index for column '{col_name}' in table "
                    f"'{self.name}': {exc}"
                ) from exc

    def rebuild_index(self, col_name: str) -> None:
        """Refill a column's index from the data file and save it."""
        tree = self.indexes.get(col_name)
        if tree is None:
            raise DatabaseError(
                f"No index exists for column '{col_name}' in table '{self.name}'."
            )
        tree.clear()
        if not self.file_path.exists():
            logger.debug("failed to open file: %s", self.file_path)
            return
        record_size = self.row_size()
        column = self._column(col_name)
        if column is None:
            raise DatabaseError(f"Column '{col_name}' not found in table '{self.name}'.")
        position = self.columns.index(column)
        data = self.file_path.read_bytes()
        for number, row in enumerate(decode_rows(data, self.columns)):
            if row[position]:
                tree.insert(row[position], number * record_size)
        self.save_index(col_name)