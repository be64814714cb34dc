"""
Snapshot archiver for KSBackup.

The SnapshotArchiver backs up a keyspace by asking the node for a snapshot,
copying the snapshot's files to the backup root, and clearing the snapshot.
Restore copies the files back into the live table directories and asks the
node to load them.

Backup layout:
    <backup_dir>/<keyspace>/<table>/<file>

Live layout (per data directory root):
    <data_dir>/<keyspace>/<table>-<table_id>/<file>
    <data_dir>/<keyspace>/<table>-<table_id>/snapshots/<tag>/<file>

Invariants:
    - Files are copied only between create_snapshot and clear_snapshot
    - The snapshot is cleared on every exit path (configurable)
    - Only top-level regular files are copied, sub-directories are skipped
    - Destination files with the same name are replaced, never appended to
    - Restore merges into the live directory, it never deletes live files
    - The first error aborts the whole operation and propagates

How to change safely:
    - Keep the backup layout stable, old backups must stay restorable
    - Test table directory resolution with stale directories present
    - Never add parallel copies without revisiting the snapshot window
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from .config import ArchiverConfig
from .errors import ManagementError, SnapshotNotFoundError, TableNotFoundError
from .management.base import ManagementClient

logger = logging.getLogger(__name__)

SNAPSHOTS_DIR = "snapshots"


@dataclass
class TableCopy:
    """Files copied for one table.

    Attributes:
        keyspace: Keyspace name
        table: Table name
        source_dirs: Directories files were copied from
        dest_dir: Directory files were copied into
        files: Names of copied files
        bytes_copied: Total size of copied files
    """

    keyspace: str
    table: str
    source_dirs: list[Path]
    dest_dir: Path
    files: list[str] = field(default_factory=list)
    bytes_copied: int = 0


@dataclass
class BackupResult:
    """Result of a keyspace backup.

    Attributes:
        keyspace: Keyspace that was backed up
        tag: Snapshot tag used
        tables: Per-table copy records, in table order
        duration_ms: Total duration
    """

    keyspace: str
    tag: str
    tables: list[TableCopy]
    duration_ms: int

    @property
    def files_copied(self) -> int:
        return sum(len(t.files) for t in self.tables)

    @property
    def bytes_copied(self) -> int:
        return sum(t.bytes_copied for t in self.tables)


@dataclass
class RestoreResult:
    """Result of a keyspace restore.

    Attributes:
        keyspace: Keyspace that was restored
        tables: Per-table copy records, in table order
        reloaded: Tables the node was asked to reload
        duration_ms: Total duration
    """

    keyspace: str
    tables: list[TableCopy]
    reloaded: list[str]
    duration_ms: int

    @property
    def files_copied(self) -> int:
        return sum(len(t.files) for t in self.tables)


class SnapshotArchiver:
    """Backs up and restores a keyspace's table files on the local node.

    Single-threaded and blocking. Calls for different keyspaces may run
    concurrently; backup and restore of the same keyspace must be serialized
    by the caller.

    Attributes:
        client: ManagementClient for the local node
        backup_dir: Backup root directory
        config: Archiver configuration

    Example:
        >>> archiver = SnapshotArchiver(client, "/var/backups/cassandra")
        >>> result = archiver.backup("app", "nightly")
        >>> archiver.restore("app")
    """

    def __init__(
        self,
        client: ManagementClient,
        backup_dir: str | Path,
        config: ArchiverConfig | None = None,
    ) -> None:
        """Initialize the archiver.

        Args:
            client: ManagementClient for the local node
            backup_dir: Backup root directory (created on first backup)
            config: Optional archiver configuration
        """
        self.client = client
        self.backup_dir = Path(backup_dir)
        self.config = config or ArchiverConfig()

    def default_tag(self) -> str:
        """Snapshot tag derived from the current epoch milliseconds."""
        return f"{self.config.snapshot_tag_prefix}{int(time.time() * 1000)}"

    def backup(self, keyspace: str, tag: str | None = None) -> BackupResult:
        """Back up every table of a keyspace.

        Args:
            keyspace: Keyspace to back up
            tag: Snapshot tag (generated from the current time if not given)

        Returns:
            BackupResult with per-table copy records

        Raises:
            ValueError: If keyspace or tag is invalid
            ManagementError: If a control-plane call fails
            NotFoundError: If a table or snapshot directory is missing
            OSError: If copying fails
        """
        _require_name("keyspace", keyspace)
        if tag is None:
            tag = self.default_tag()
        _require_name("tag", tag)

        start_time = time.time()

        with self.snapshot(keyspace, tag):
            logger.info(f"Copying backup of keyspace {keyspace}", extra={"tag": tag})
            tables = self.client.list_tables(keyspace)
            copies = [self.copy_table_snapshot(tag, keyspace, table) for table in tables]

        result = BackupResult(
            keyspace=keyspace,
            tag=tag,
            tables=copies,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            "Backup completed",
            extra={
                "keyspace": keyspace,
                "tag": tag,
                "tables": len(copies),
                "files": result.files_copied,
                "bytes": result.bytes_copied,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    @contextmanager
    def snapshot(self, keyspace: str, tag: str) -> Iterator[str]:
        """Hold a snapshot of the keyspace for the duration of the block.

        The snapshot is cleared when the block exits. If the block raised and
        clearing fails too, the clear failure is logged and the block's
        error propagates.

        Yields:
            The snapshot tag
        """
        logger.info(f"Creating snapshot of keyspace {keyspace}", extra={"tag": tag})
        self.client.create_snapshot(keyspace, tag)

        try:
            yield tag
        except BaseException:
            if not self.config.clear_snapshot_on_failure:
                logger.warning(
                    f"Leaving snapshot {tag} of keyspace {keyspace} on disk after failure"
                )
                raise
            logger.info(f"Clearing snapshot of keyspace {keyspace} after failure")
            try:
                self.client.clear_snapshot(keyspace, tag)
            except Exception as clear_error:
                logger.error(
                    f"Failed to clear snapshot {tag} of keyspace {keyspace}: {clear_error}",
                    exc_info=True,
                )
            raise

        logger.info(f"Clearing snapshot of keyspace {keyspace}", extra={"tag": tag})
        self.client.clear_snapshot(keyspace, tag)

    def copy_table_snapshot(self, tag: str, keyspace: str, table: str) -> TableCopy:
        """Copy one table's snapshot files into the backup root.

        Snapshot directories from every data root holding the table are
        copied into the same flat destination directory.
        """
        source_dirs = self.find_table_snapshot_dirs(keyspace, table, tag)
        dest_dir = self.table_backup_dir(keyspace, table)
        dest_dir.mkdir(parents=True, exist_ok=True)

        copy = TableCopy(keyspace=keyspace, table=table, source_dirs=source_dirs, dest_dir=dest_dir)
        for source_dir in source_dirs:
            _copy_files(source_dir, dest_dir, copy)

        logger.debug(
            "Copied table snapshot",
            extra={"keyspace": keyspace, "table": table, "files": len(copy.files)},
        )
        return copy

    def find_table_snapshot_dir(self, keyspace: str, table: str, tag: str) -> Path:
        """Locate the snapshot directory of a table.

        Returns:
            The snapshot directory in the first data root that holds it

        Raises:
            TableNotFoundError: If no data root holds the table
            SnapshotNotFoundError: If the table exists but the snapshot does not
        """
        return self.find_table_snapshot_dirs(keyspace, table, tag)[0]

    def find_table_snapshot_dirs(self, keyspace: str, table: str, tag: str) -> list[Path]:
        """Locate the snapshot directories of a table across all data roots.

        In each root the table directory holding snapshots/<tag> is preferred
        over a newer stale directory. The newest-directory rule applies only
        when no candidate, or more than one, holds the snapshot.

        Raises:
            TableNotFoundError: If no data root holds the table
            SnapshotNotFoundError: If the table exists but no root holds the
                snapshot, or a root holds table files but not the snapshot
                that other roots hold
        """
        found: list[Path] = []
        missing: list[Path] = []
        unsnapshotted: list[Path] = []

        for keyspace_dir in self._keyspace_dirs(keyspace):
            candidates = _table_dir_candidates(keyspace_dir, table)
            if not candidates:
                continue
            holding = [c for c in candidates if (c / SNAPSHOTS_DIR / tag).is_dir()]
            if holding:
                table_dir = _newest_table_dir(holding, table)
                found.append(table_dir / SNAPSHOTS_DIR / tag)
                continue
            table_dir = _newest_table_dir(candidates, table)
            missing.append(table_dir / SNAPSHOTS_DIR / tag)
            unsnapshotted.extend(c for c in candidates if _has_files(c))

        if found and unsnapshotted:
            raise SnapshotNotFoundError(
                f"Snapshot {tag} of {keyspace}/{table} is missing from {unsnapshotted[0]}, "
                "which holds table files",
                path=unsnapshotted[0] / SNAPSHOTS_DIR / tag,
            )
        if found:
            return found
        if missing:
            raise SnapshotNotFoundError(
                f"Snapshot dir does not exist: {missing[0]}", path=missing[0]
            )
        raise TableNotFoundError(
            f"Failed to find table dir for table {table} in keyspace {keyspace}",
            path=self._keyspace_dirs(keyspace)[0],
        )

    def find_live_table_dir(self, keyspace: str, table: str) -> Path:
        """Locate the live directory of a table in the first data root holding it.

        Raises:
            TableNotFoundError: If no data root holds the table
        """
        keyspace_dirs = self._keyspace_dirs(keyspace)
        for keyspace_dir in keyspace_dirs:
            try:
                return self.find_table_dir(keyspace_dir, table)
            except TableNotFoundError:
                continue
        raise TableNotFoundError(
            f"Failed to find table dir for table {table} in keyspace {keyspace}",
            path=keyspace_dirs[0],
        )

    def find_table_dir(self, keyspace_dir: str | Path, table: str) -> Path:
        """Find a table's directory by its "<table>-" name prefix.

        When several directories match (a dropped and recreated table leaves
        the old one behind), the most recently modified wins; equal times
        fall back to the lexicographically last name.

        Raises:
            TableNotFoundError: If no directory matches
        """
        keyspace_dir = Path(keyspace_dir)
        candidates = _table_dir_candidates(keyspace_dir, table)
        if not candidates:
            raise TableNotFoundError(
                f"Failed to find table dir for table {table} in keyspace {keyspace_dir}",
                path=keyspace_dir,
            )
        return _newest_table_dir(candidates, table)

    def table_backup_dir(self, keyspace: str, table: str) -> Path:
        return self.backup_dir / keyspace / table

    def restore(self, keyspace: str) -> RestoreResult:
        """Restore every table of a keyspace from the backup root.

        Files are merged into the live table directories: same-named files
        are replaced, other live files are left untouched.

        Raises:
            ValueError: If keyspace is invalid
            ManagementError: If listing tables fails
            ManagementTimeoutError: If a reload does not complete in time
            TableNotFoundError: If a live table directory is missing
            OSError: If copying fails
        """
        _require_name("keyspace", keyspace)
        start_time = time.time()

        copies: list[TableCopy] = []
        reloaded: list[str] = []
        for table in self.client.list_tables(keyspace):
            logger.info(f"Restoring backup of {keyspace}/{table}")
            copies.append(self.restore_table_snapshot(keyspace, table))

            logger.info(f"Reloading SSTables for {keyspace}/{table}")
            self.client.reload_table(keyspace, table)
            reloaded.append(table)

        result = RestoreResult(
            keyspace=keyspace,
            tables=copies,
            reloaded=reloaded,
            duration_ms=int((time.time() - start_time) * 1000),
        )
        logger.info(
            "Restore completed",
            extra={
                "keyspace": keyspace,
                "tables": len(copies),
                "files": result.files_copied,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def restore_table_snapshot(self, keyspace: str, table: str) -> TableCopy:
        """Copy one table's backed-up files into its live directory."""
        source_dir = self.table_backup_dir(keyspace, table)
        dest_dir = self.find_live_table_dir(keyspace, table)
        dest_dir.mkdir(parents=True, exist_ok=True)

        copy = TableCopy(keyspace=keyspace, table=table, source_dirs=[source_dir], dest_dir=dest_dir)
        if not source_dir.is_dir():
            logger.warning(f"No backup found for {keyspace}/{table} at {source_dir}")
            copy.source_dirs = []
            return copy

        _copy_files(source_dir, dest_dir, copy)
        return copy

    def _keyspace_dirs(self, keyspace: str) -> list[Path]:
        data_dirs = self.client.data_directories()
        if not data_dirs:
            raise ManagementError("No data directories configured")
        return [Path(data_dir) / keyspace for data_dir in data_dirs]


def _table_dir_candidates(keyspace_dir: str | Path, table: str) -> list[Path]:
    keyspace_dir = Path(keyspace_dir)
    if not keyspace_dir.is_dir():
        return []
    prefix = f"{table}-"
    return [
        entry
        for entry in keyspace_dir.iterdir()
        if entry.is_dir() and entry.name.startswith(prefix)
    ]


def _newest_table_dir(candidates: list[Path], table: str) -> Path:
    if len(candidates) == 1:
        return candidates[0]
    ordered = sorted(candidates, key=lambda p: (p.stat().st_mtime, p.name), reverse=True)
    logger.warning(
        f"Multiple directories match table {table}, using {ordered[0].name}",
        extra={"candidates": [c.name for c in ordered]},
    )
    return ordered[0]


def _has_files(directory: Path) -> bool:
    return any(entry.is_file() for entry in directory.iterdir())


def _copy_files(source_dir: Path, dest_dir: Path, copy: TableCopy) -> None:
    for entry in sorted(source_dir.iterdir()):
        if not entry.is_file():
            continue
        target = dest_dir / entry.name
        # Unlink first: a live target may be hard-linked into a snapshot.
        if target.is_file() or target.is_symlink():
            target.unlink()
        shutil.copy2(entry, target)
        copy.files.append(entry.name)
        copy.bytes_copied += entry.stat().st_size


def _require_name(kind: str, value: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"{kind} must not be empty")
    if "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"Invalid {kind} '{value}'")
