"""
KSBackup - Main entry point.

Usage:
    ksbackup backup --keyspace <name> [--tag <tag>] [--backup-dir <path>]
    ksbackup restore --keyspace <name> [--backup-dir <path>]

Configuration is via environment variables, see config.py.
Flags override the matching environment settings for one run.

Exit codes:
    0: Success
    1: Backup or restore failed
    2: Configuration error
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional

import json_log_formatter

from .archiver import SnapshotArchiver
from .config import ObservabilityConfig, ToolConfig
from .errors import KsBackupError
from .management import create_management_client

logger = logging.getLogger(__name__)


def setup_logging(config: ObservabilityConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Logging configuration
        verbose: Force DEBUG level
    """
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ksbackup",
        description="Back up and restore a keyspace's table files on the local node",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--backup-dir", help="Backup root directory (overrides BACKUP_DIR)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    backup = subparsers.add_parser("backup", help="Snapshot a keyspace and copy it out")
    backup.add_argument("--keyspace", required=True, help="Keyspace to back up")
    backup.add_argument("--tag", help="Snapshot tag (default: snapshot-<epoch ms>)")

    restore = subparsers.add_parser("restore", help="Copy a keyspace backup in and reload it")
    restore.add_argument("--keyspace", required=True, help="Keyspace to restore")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    # Must run before ToolConfig.from_env(), whose validate() may log.
    setup_logging(ObservabilityConfig.from_env(), verbose=args.verbose)

    try:
        config = ToolConfig.from_env()
        if args.backup_dir:
            config.backup = dataclasses.replace(config.backup, backup_dir=args.backup_dir)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    config.log_config()

    archiver = SnapshotArchiver(
        client=create_management_client(config),
        backup_dir=config.backup.backup_dir,
        config=config.archiver,
    )

    try:
        if args.command == "backup":
            result = archiver.backup(args.keyspace, args.tag)
            print("Backup completed successfully")
            print(f"  Keyspace: {result.keyspace}")
            print(f"  Snapshot: {result.tag}")
            print(f"  Tables: {len(result.tables)}")
            print(f"  Files: {result.files_copied} ({result.bytes_copied} bytes)")
            print(f"  Duration: {result.duration_ms}ms")
        else:
            result = archiver.restore(args.keyspace)
            print("Restore completed successfully")
            print(f"  Keyspace: {result.keyspace}")
            print(f"  Tables reloaded: {len(result.reloaded)}")
            print(f"  Files: {result.files_copied}")
            print(f"  Duration: {result.duration_ms}ms")
    except (KsBackupError, OSError, ValueError) as e:
        logger.error(f"{args.command.capitalize()} failed: {e}", exc_info=args.verbose)
        print(f"{args.command.capitalize()} failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
