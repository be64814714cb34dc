"""
KSBackup - node-local keyspace backup and restore for Cassandra-style stores.

This package copies a keyspace's on-disk table data to and from an external
backup directory, using the database's management control plane to take a
consistent snapshot first and to reload restored files afterwards.

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │    CLI      │────▶│ SnapshotArchiver │────▶│ ManagementClient │
    │   (main)    │     │                  │     │   (nodetool)     │
    └─────────────┘     └────────┬─────────┘     └──────────────────┘
                                 │
                    ┌────────────┴────────────┐
                    ▼                         ▼
             ┌─────────────┐           ┌─────────────┐
             │ data dirs   │◀─────────▶│ backup root │
             │ (snapshots) │   copy    │ ks/table/*  │
             └─────────────┘           └─────────────┘

Invariants:
    - Files are copied only while the snapshot exists
    - The snapshot is cleared on every exit path of a backup
    - Each node backs up and restores only its own local data

How to change safely:
    - Keep the backup layout <root>/<keyspace>/<table>/<file> stable
    - New management backends must implement the ManagementClient protocol
"""

from ._version import __version__

__all__ = ["__version__"]
