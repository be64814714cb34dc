"""
nodetool management client.

This module drives the database's administrative CLI (nodetool), which is a
thin client over the node's JMX control plane:
- snapshot / clearsnapshot for point-in-time views
- tablestats for table discovery
- refresh for loading newly placed SSTables without a restart

Data directories come from an explicit override, else from
data_file_directories in cassandra.yaml, else the database default.

Invariants:
    - Every call is bounded by timeout_seconds
    - Non-zero exit status raises ManagementError, never returns
    - Passwords never appear in logs or error messages

How to change safely:
    - Test output parsing against every supported database version
    - Keep command argument order compatible with older nodetool releases
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence

import yaml

from ..config import DEFAULT_DATA_DIR, NodetoolConfig
from ..errors import ManagementError, ManagementTimeoutError

logger = logging.getLogger(__name__)

_REDACTED = "********"


class NodetoolManagementClient:
    """nodetool implementation of the ManagementClient protocol.

    Attributes:
        config: NodetoolConfig instance

    Example:
        >>> client = NodetoolManagementClient(NodetoolConfig(host="10.0.0.5"))
        >>> client.create_snapshot("app", "nightly")
        >>> client.clear_snapshot("app", "nightly")
    """

    def __init__(self, config: NodetoolConfig) -> None:
        """Initialize the client.

        Args:
            config: NodetoolConfig instance
        """
        self.config = config

    def create_snapshot(self, keyspace: str, tag: str) -> None:
        logger.debug("Taking snapshot", extra={"keyspace": keyspace, "tag": tag})
        self._run(["snapshot", "-t", tag, keyspace])

    def clear_snapshot(self, keyspace: str, tag: str) -> None:
        logger.debug("Clearing snapshot", extra={"keyspace": keyspace, "tag": tag})
        self._run(["clearsnapshot", "-t", tag, "--", keyspace])

    def list_tables(self, keyspace: str) -> List[str]:
        output = self._run(["tablestats", keyspace])
        return parse_tablestats(output)

    def reload_table(self, keyspace: str, table: str) -> None:
        logger.debug("Refreshing table", extra={"keyspace": keyspace, "table": table})
        self._run(["refresh", "--", keyspace, table])

    def data_directories(self) -> List[str]:
        """Resolve data directory roots.

        Returns:
            Explicit DATA_DIRS if set, else data_file_directories from
            cassandra.yaml, else the database default.

        Raises:
            ManagementError: If cassandra.yaml exists but cannot be parsed
        """
        if self.config.data_dirs:
            return list(self.config.data_dirs)

        config_path = Path(self.config.cassandra_config)
        if not config_path.is_file():
            logger.warning(
                f"Cassandra config not found at {config_path}, using {DEFAULT_DATA_DIR}"
            )
            return [DEFAULT_DATA_DIR]

        try:
            with open(config_path) as f:
                cassandra_yaml = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ManagementError(f"Failed to parse {config_path}: {e}") from e

        directories = cassandra_yaml.get("data_file_directories") or []
        if isinstance(directories, str):
            directories = [directories]
        if not directories:
            return [DEFAULT_DATA_DIR]
        return [str(d).rstrip("/") or "/" for d in directories]

    def _base_command(self) -> List[str]:
        cmd = [self.config.path, "-h", self.config.host, "-p", str(self.config.port)]
        if self.config.username:
            cmd.extend(["-u", self.config.username])
        if self.config.password:
            cmd.extend(["-pw", self.config.password])
        return cmd

    def _run(self, args: Sequence[str]) -> str:
        """Run a nodetool command and return its stdout.

        Raises:
            ManagementTimeoutError: If the command exceeds timeout_seconds
            ManagementError: If nodetool is missing or exits non-zero
        """
        cmd = self._base_command() + list(args)
        shown = redact(cmd)
        logger.debug(f"Run command: {' '.join(shown)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise ManagementTimeoutError(
                f"nodetool {args[0]} timed out after {self.config.timeout_seconds}s",
                command=shown,
            ) from e
        except OSError as e:
            raise ManagementError(
                f"Failed to run nodetool {args[0]}: {e}",
                command=shown,
            ) from e

        if result.returncode != 0:
            stderr = (result.stderr or result.stdout or "").strip()
            raise ManagementError(
                f"nodetool {args[0]} exited with code {result.returncode}: {stderr}",
                command=shown,
                returncode=result.returncode,
                stderr=stderr,
            )

        return result.stdout


def redact(cmd: Sequence[str]) -> List[str]:
    """Replace the value following -pw with a placeholder."""
    shown = list(cmd)
    for i, arg in enumerate(shown[:-1]):
        if arg == "-pw":
            shown[i + 1] = _REDACTED
    return shown


def parse_tablestats(output: str) -> List[str]:
    """Extract table names from `nodetool tablestats <keyspace>` output.

    Secondary index entries (``Table (index): ...``) are not tables of their
    own and are skipped.
    """
    tables: List[str] = []
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped.startswith("Table:"):
            continue
        name = stripped[len("Table:"):].strip()
        if name and name not in tables:
            tables.append(name)
    return tables
