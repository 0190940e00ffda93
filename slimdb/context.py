"""Session state: the selected database and its transaction."""

from __future__ import annotations

from pathlib import Path

from .schema import StrPath
from .table import database_dir
from .transaction import Transaction


class Context:
    """Holds the storage root, the current database and the open transaction."""

    def __init__(self, root: StrPath = ".") -> None:
        self.root = Path(root)
        self.current_database = "default"
        self.transaction = Transaction(self)

    def database_path(self) -> Path:
        """Directory of the current database."""
        return database_dir(self.root, self.current_database)

    def data_dir(self) -> Path:
        """Directory holding the current database's table files."""
        return self.database_path() / "data"