"""
Error types for KSBackup.

- KsBackupError: Base exception
- ManagementError: Control-plane call failed
- ManagementTimeoutError: Control-plane call timed out
- NotFoundError: Expected table or snapshot directory is missing

Filesystem errors raised while copying are plain OSError and propagate
unchanged.

Invariants:
    - All errors inherit from KsBackupError
    - Errors carry the path or command needed to debug them
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class KsBackupError(Exception):
    """Base exception for all KSBackup errors."""

    pass


class ManagementError(KsBackupError):
    """A management control-plane call failed.

    Raised when:
    - Keyspace does not exist
    - Node is unreachable
    - The database reports an internal fault

    Attributes:
        command: Command that was run (secrets redacted), if any
        returncode: Process exit code, if any
        stderr: Captured error output, if any
    """

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.command = list(command) if command else []
        self.returncode = returncode
        self.stderr = stderr or ""


class ManagementTimeoutError(ManagementError, TimeoutError):
    """A management call did not complete within the client's timeout."""

    pass


class NotFoundError(KsBackupError):
    """An expected directory is missing.

    Attributes:
        path: The directory that was searched or expected
    """

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path


class TableNotFoundError(NotFoundError):
    """No directory for the table exists under the keyspace directory."""

    pass


class SnapshotNotFoundError(NotFoundError):
    """The table exists but the snapshot directory does not."""

    pass
