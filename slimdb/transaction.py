"""Buffered transactions with named checkpoints over table files."""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Sequence

from .mutations import delete_where, update_where
from .schema import DatabaseError
from .table import Table

if TYPE_CHECKING:
    from .context import Context

logger = logging.getLogger(__name__)

_FAILURES = (DatabaseError, OSError, RuntimeError, ValueError)


class Operation(Enum):
    """Kind of change recorded in a transaction log."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class LogEntry:
    """One buffered change waiting to be committed."""

    op: Operation
    column: str
    table_name: str
    new_values: tuple[str, ...]
    where_clause: str
    checkpoint_id: str


class Transaction:
    """Collects changes and applies them atomically per table on commit."""

    def __init__(self, context: "Context") -> None:
        self.context = context
        self.in_transaction = False
        self.is_database_given = False
        self.current_checkpoint = ""
        self._log: list[LogEntry] = []
        self._checkpoints: dict[str, int] = {}

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        """The changes logged so far, oldest first."""
        return tuple(self._log)

    def _require_active(self, action: str) -> None:
        if not self.in_transaction:
            raise DatabaseError(f"No active transaction for {action}.")

    def _reset(self) -> None:
        self._log.clear()
        self._checkpoints.clear()
        self.current_checkpoint = ""

    def begin(self) -> None:
        """Start a new transaction."""
        if self.in_transaction:
            raise DatabaseError("A transaction is already in progress.")
        self._reset()
        self.in_transaction = True
        logger.info("transaction started")

    def _paths(self, table_name: str) -> tuple[Path, Path, Path]:
        data_dir = self.context.data_dir()
        return (
            data_dir / f"{table_name}.db",
            data_dir / f"{table_name}.db.temp",
            data_dir / f"{table_name}.db.bak",
        )

    def _prepare(self, tables: Iterable[str]) -> None:
        for name in tables:
            source, temp, _ = self._paths(name)
            if not source.is_file():
                raise DatabaseError(f"Failed to open source file: {source}")
            try:
                shutil.copyfile(source, temp)
            except OSError as exc:
                raise DatabaseError(f"Failed to create temp file: {temp}") from exc

    def _apply(self, entries: Sequence[LogEntry]) -> None:
        db_name = self.context.current_database
        for entry in entries:
            _, temp, _ = self._paths(entry.table_name)
            table = Table.from_schema(entry.table_name, db_name, self.context.root)
            if entry.op is Operation.INSERT:
                table.insert(list(entry.new_values), temp)
            elif entry.op is Operation.UPDATE:
                update_where(table, entry.column, entry.new_values[0], entry.where_clause, temp)
            elif entry.op is Operation.DELETE:
                delete_where(table, entry.where_clause, temp)
            else:
                raise DatabaseError("Unknown operation in transaction log")
            logger.info("applied %s on %s in database %s", entry.op.value, entry.table_name, db_name)

    def _finalize(self, tables: Iterable[str]) -> None:
        for name in tables:
            final, temp, backup = self._paths(name)
            try:
                shutil.copyfile(final, backup)
            except OSError as exc:
                logger.warning("could not create backup: %s", exc)
            try:
                os.replace(temp, final)
            except OSError as exc:
                try:
                    shutil.copyfile(backup, final)
                except OSError:
                    logger.error("failed to restore %s from backup", final)
                raise DatabaseError(
                    f"Failed to rename temp file to original file: {temp} -> {final}"
                ) from exc
            backup.unlink(missing_ok=True)

    def _cleanup(self, tables: Iterable[str]) -> None:
        for name in tables:
            _, temp, _ = self._paths(name)
            temp.unlink(missing_ok=True)

    def _commit_entries(self, entries: Sequence[LogEntry]) -> None:
        tables = list(dict.fromkeys(entry.table_name for entry in entries))
        try:
            self._prepare(tables)
            self._apply(entries)
            self._finalize(tables)
        except _FAILURES:
            self._cleanup(tables)
            raise

    def commit(self) -> None:
        """Apply every logged change; on failure roll everything back and raise."""
        self._require_active("commit")
        try:
            self._commit_entries(self._log)
        except _FAILURES as exc:
            self.rollback()
            raise DatabaseError(f"Commit failed: {exc}") from exc
        self._reset()
        self.in_transaction = False
        self.is_database_given = False
        logger.info("transaction committed")

    def rollback(self) -> None:
        """Discard every logged change and end the transaction."""
        self._require_active("rollback")
        self._reset()
        self.in_transaction = False
        self.is_database_given = False
        logger.info("transaction rolled back")

    def create_checkpoint(self, checkpoint_id: str) -> None:
        """Mark the current end of the log under a new name."""
        self._require_active("creating checkpoint")
        if not checkpoint_id:
            raise DatabaseError("Checkpoint ID cannot be empty.")
        if checkpoint_id in self._checkpoints:
            raise DatabaseError(f"Checkpoint '{checkpoint_id}' already exists.")
        self._checkpoints[checkpoint_id] = len(self._log)
        self.current_checkpoint = checkpoint_id

    def _position(self, checkpoint_id: str) -> int:
        try:
            return self._checkpoints[checkpoint_id]
        except KeyError:
            raise DatabaseError(f"Checkpoint '{checkpoint_id}' does not exist.") from None

    def rollback_to_checkpoint(self, checkpoint_id: str) -> None:
        """Drop changes logged after a checkpoint and any later checkpoints."""
        self._require_active("rollback to checkpoint")
        position = self._position(checkpoint_id)
        del self._log[position:]
        self._checkpoints = {
            name: mark for name, mark in self._checkpoints.items() if mark <= position
        }
        self.current_checkpoint = checkpoint_id

    def commit_to_checkpoint(self, checkpoint_id: str) -> None:
        """Apply the changes logged before a checkpoint and keep the rest."""
        self._require_active("commit to checkpoint")
        position = self._position(checkpoint_id)
        try:
            self._commit_entries(self._log[:position])
        except _FAILURES as exc:
            raise DatabaseError(f"Checkpoint commit failed: {exc}") from exc
        del self._log[:position]
        self._checkpoints = {
            name: mark - position if mark > position else 0
            for name, mark in self._checkpoints.items()
        }

    def has_checkpoint(self, checkpoint_id: str) -> bool:
        """Whether a checkpoint with this name exists."""
        return checkpoint_id in self._checkpoints

    def list_checkpoints(self) -> list[str]:
        """Names of all checkpoints in sorted order."""
        return sorted(self._checkpoints)

    def _append(self, entry: LogEntry) -> None:
        self._log.append(entry)
        logger.info(
            "logged %s on %s in database %s", entry.op.value, entry.table_name,
            self.context.current_database,
        )

    def add_insert(self, table_name: str, values: Sequence[str]) -> None:
        """Log an INSERT of one row."""
        self._require_active("logging INSERT")
        self._append(
            LogEntry(Operation.INSERT, "", table_name, tuple(values), "", self.current_checkpoint)
        )

    def add_update(
        self, table_name: str, new_values: Sequence[str], column: str, where_clause: str
    ) -> None:
        """Log an UPDATE of one column on matching rows."""
        self._require_active("logging UPDATE")
        self._append(
            LogEntry(
                Operation.UPDATE, column, table_name, tuple(new_values),
                where_clause, self.current_checkpoint,
            )
        )

    def add_delete(self, table_name: str, where_clause: str) -> None:
        """Log a DELETE of matching rows."""
        self._require_active("logging DELETE")
        self._append(
            LogEntry(Operation.DELETE, "", table_name, (), where_clause, self.current_checkpoint)
        )