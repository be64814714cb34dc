"""
In-memory management client for testing.

This module provides a fake control plane that keeps its catalog in memory
but lays out a real data directory on disk, so archiver code paths run
against actual files:
- Unit tests
- Integration tests
- Local dry runs without a database node

Invariants:
    - Table directories are named <table>-<32 hex chars>, like the database
    - Snapshots contain hard links (or copies) of top-level table files
    - Every call is recorded in order in `calls`

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with ManagementClient protocol
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from ..errors import ManagementError

logger = logging.getLogger(__name__)


class InMemoryManagementClient:
    """In-memory implementation of ManagementClient for testing.

    Attributes:
        data_dirs: Data directory roots, in configuration order
        calls: Recorded (operation, args) tuples, in call order

    Example:
        >>> client = InMemoryManagementClient(["/tmp/data"])
        >>> table_dir = client.add_table("app", "events")
        >>> (table_dir / "events-1-Data.db").write_bytes(b"...")
        >>> client.create_snapshot("app", "nightly")
    """

    def __init__(self, data_dirs: List[str]) -> None:
        """Initialize the client.

        Args:
            data_dirs: Data directory roots (created if missing)
        """
        if not data_dirs:
            raise ValueError("At least one data directory is required")
        self.data_dirs = [str(d) for d in data_dirs]
        for data_dir in self.data_dirs:
            Path(data_dir).mkdir(parents=True, exist_ok=True)

        self.calls: List[Tuple[str, Tuple[str, ...]]] = []
        self._keyspaces: Dict[str, "OrderedDict[str, str]"] = {}
        self._failures: Dict[str, Exception] = {}
        self.reloaded: List[Tuple[str, str]] = []

    # -- Catalog helpers ---------------------------------------------------

    def add_keyspace(self, keyspace: str) -> Path:
        """Register a keyspace and create its directory in every data root."""
        self._keyspaces.setdefault(keyspace, OrderedDict())
        for data_dir in self.data_dirs:
            (Path(data_dir) / keyspace).mkdir(parents=True, exist_ok=True)
        return Path(self.data_dirs[0]) / keyspace

    def add_table(
        self,
        keyspace: str,
        table: str,
        table_id: Optional[str] = None,
        data_dir_index: int = 0,
    ) -> Path:
        """Register a table and create its directory.

        Args:
            keyspace: Keyspace name (registered if new)
            table: Table name
            table_id: Directory suffix (random 32 hex chars if not given)
            data_dir_index: Which data root to create the directory in

        Returns:
            Path of the created table directory
        """
        self.add_keyspace(keyspace)
        tables = self._keyspaces[keyspace]
        if table_id is None:
            table_id = tables.get(table) or uuid.uuid4().hex
        tables[table] = table_id

        table_dir = Path(self.data_dirs[data_dir_index]) / keyspace / f"{table}-{table_id}"
        table_dir.mkdir(parents=True, exist_ok=True)
        return table_dir

    def table_dirs(self, keyspace: str, table: str) -> List[Path]:
        """Existing directories for a table across all data roots."""
        table_id = self._keyspaces[keyspace][table]
        dirs = []
        for data_dir in self.data_dirs:
            candidate = Path(data_dir) / keyspace / f"{table}-{table_id}"
            if candidate.is_dir():
                dirs.append(candidate)
        return dirs

    def fail_on(self, operation: str, error: Exception) -> None:
        """Make the next calls of an operation raise the given error."""
        self._failures[operation] = error

    def clear_failures(self) -> None:
        self._failures.clear()

    def snapshot_exists(self, keyspace: str, tag: str) -> bool:
        """Whether any table of the keyspace still holds the snapshot."""
        for table in self._keyspaces.get(keyspace, {}):
            for table_dir in self.table_dirs(keyspace, table):
                if (table_dir / "snapshots" / tag).exists():
                    return True
        return False

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    # -- ManagementClient protocol ----------------------------------------

    def create_snapshot(self, keyspace: str, tag: str) -> None:
        self._record("create_snapshot", keyspace, tag)
        self._require_keyspace(keyspace)

        for table in self._keyspaces[keyspace]:
            for table_dir in self.table_dirs(keyspace, table):
                snapshot_dir = table_dir / "snapshots" / tag
                snapshot_dir.mkdir(parents=True, exist_ok=True)
                for entry in table_dir.iterdir():
                    if entry.is_file():
                        _link_or_copy(entry, snapshot_dir / entry.name)

        logger.debug("Snapshot created", extra={"keyspace": keyspace, "tag": tag})

    def clear_snapshot(self, keyspace: str, tag: str) -> None:
        self._record("clear_snapshot", keyspace, tag)
        self._require_keyspace(keyspace)

        for table in self._keyspaces[keyspace]:
            for table_dir in self.table_dirs(keyspace, table):
                snapshot_dir = table_dir / "snapshots" / tag
                if snapshot_dir.exists():
                    shutil.rmtree(snapshot_dir)

    def list_tables(self, keyspace: str) -> List[str]:
        self._record("list_tables", keyspace)
        self._require_keyspace(keyspace)
        return list(self._keyspaces[keyspace])

    def reload_table(self, keyspace: str, table: str) -> None:
        self._record("reload_table", keyspace, table)
        self._require_keyspace(keyspace)
        if table not in self._keyspaces[keyspace]:
            raise ManagementError(f"Unknown table {keyspace}.{table}")
        self.reloaded.append((keyspace, table))

    def data_directories(self) -> List[str]:
        self._record("data_directories")
        return list(self.data_dirs)

    # -- Internals ---------------------------------------------------------

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, args))
        error = self._failures.get(operation)
        if error is not None:
            raise error

    def _require_keyspace(self, keyspace: str) -> None:
        if keyspace not in self._keyspaces:
            raise ManagementError(f"Keyspace {keyspace} does not exist")


def _link_or_copy(source: Path, target: Path) -> None:
    if target.exists():
        target.unlink()
    try:
        os.link(source, target)
    except OSError:
        shutil.copy2(source, target)
