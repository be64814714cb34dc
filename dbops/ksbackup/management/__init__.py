"""
Management control-plane abstraction for KSBackup.

This module provides a pluggable client interface for the database's
administrative operations:
- nodetool (production, drives the database's admin CLI)
- In-memory (for testing, lays out a real data directory on disk)

Invariants:
    - create_snapshot() returns only after the snapshot is on disk
    - reload_table() returns only after the database has picked up new files
    - Failures raise ManagementError, never return a status value

How to change safely:
    - New backends must implement the ManagementClient protocol
    - Keep timeouts inside the client; the archiver owns none
"""

from ..errors import ManagementError, ManagementTimeoutError
from .base import ManagementClient, create_management_client
from .memory import InMemoryManagementClient
from .nodetool import NodetoolManagementClient

__all__ = [
    # Protocol and errors
    "ManagementClient",
    "ManagementError",
    "ManagementTimeoutError",
    # Factory
    "create_management_client",
    # Implementations
    "NodetoolManagementClient",
    "InMemoryManagementClient",
]
