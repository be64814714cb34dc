"""
Configuration management for KSBackup.

All configuration is done via environment variables, with CLI flags
overriding the few settings an operator changes per run.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for a stock Cassandra node
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "/var/lib/cassandra/data"


def _split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class BackupConfig:
    """Backup location configuration.

    Attributes:
        backup_dir: Root directory for backups (<root>/<keyspace>/<table>/<file>)
    """

    backup_dir: str = "/var/backups/cassandra"

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables."""
        return cls(
            backup_dir=os.getenv("BACKUP_DIR", "/var/backups/cassandra"),
        )


@dataclass(frozen=True)
class NodetoolConfig:
    """nodetool management client configuration.

    Attributes:
        path: nodetool executable (name on PATH or absolute path)
        host: JMX host nodetool connects to
        port: JMX port
        username: JMX username (if authentication enabled)
        password: JMX password (if authentication enabled)
        timeout_seconds: Timeout for a single nodetool invocation
        cassandra_config: Path to cassandra.yaml, read for data_file_directories
        data_dirs: Explicit data directories, overriding cassandra.yaml
    """

    path: str = "nodetool"
    host: str = "127.0.0.1"
    port: int = 7199
    username: str | None = None
    password: str | None = None
    timeout_seconds: int = 300
    cassandra_config: str = "/etc/cassandra/cassandra.yaml"
    data_dirs: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> NodetoolConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("NODETOOL_PATH", "nodetool"),
            host=os.getenv("NODETOOL_HOST", "127.0.0.1"),
            port=int(os.getenv("NODETOOL_PORT", "7199")),
            username=os.getenv("NODETOOL_USERNAME"),
            password=os.getenv("NODETOOL_PASSWORD"),
            timeout_seconds=int(os.getenv("NODETOOL_TIMEOUT_SECONDS", "300")),
            cassandra_config=os.getenv("CASSANDRA_CONFIG", "/etc/cassandra/cassandra.yaml"),
            data_dirs=_split_list(os.getenv("DATA_DIRS")),
        )


@dataclass(frozen=True)
class ArchiverConfig:
    """Snapshot archiver configuration.

    Attributes:
        snapshot_tag_prefix: Prefix for generated snapshot tags (followed by epoch ms)
        clear_snapshot_on_failure: Clear the snapshot when a copy fails
    """

    snapshot_tag_prefix: str = "snapshot-"
    clear_snapshot_on_failure: bool = True

    @classmethod
    def from_env(cls) -> ArchiverConfig:
        """Load configuration from environment variables."""
        return cls(
            snapshot_tag_prefix=os.getenv("SNAPSHOT_TAG_PREFIX", "snapshot-"),
            clear_snapshot_on_failure=os.getenv("CLEAR_SNAPSHOT_ON_FAILURE", "true").lower()
            == "true",
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ToolConfig:
    """Complete tool configuration.

    Attributes:
        backup: Backup location configuration
        nodetool: nodetool client configuration
        archiver: Archiver configuration
        observability: Logging configuration
    """

    backup: BackupConfig = field(default_factory=BackupConfig)
    nodetool: NodetoolConfig = field(default_factory=NodetoolConfig)
    archiver: ArchiverConfig = field(default_factory=ArchiverConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ToolConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        try:
            config = cls(
                backup=BackupConfig.from_env(),
                nodetool=NodetoolConfig.from_env(),
                archiver=ArchiverConfig.from_env(),
                observability=ObservabilityConfig.from_env(),
            )
        except ValueError as e:
            raise ValueError(f"Invalid numeric setting: {e}") from e

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.backup.backup_dir:
            raise ValueError("BACKUP_DIR is required")
        if not self.nodetool.path:
            raise ValueError("NODETOOL_PATH must not be empty")
        if self.nodetool.timeout_seconds <= 0:
            raise ValueError("NODETOOL_TIMEOUT_SECONDS must be positive")
        if self.nodetool.password and not self.nodetool.username:
            raise ValueError("NODETOOL_PASSWORD requires NODETOOL_USERNAME")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(self.backup.backup_dir):
            logger.warning(
                f"Backup directory does not exist: {self.backup.backup_dir}. "
                "It will be created on first backup."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Tool configuration loaded",
            extra={
                "backup_dir": self.backup.backup_dir,
                "nodetool_path": self.nodetool.path,
                "nodetool_host": self.nodetool.host,
                "nodetool_port": self.nodetool.port,
                "nodetool_auth": bool(self.nodetool.username),
                "data_dirs": list(self.nodetool.data_dirs) or None,
                "cassandra_config": self.nodetool.cassandra_config,
                "clear_snapshot_on_failure": self.archiver.clear_snapshot_on_failure,
                "log_level": self.observability.log_level,
            },
        )
