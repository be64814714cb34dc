"""
Base protocol for the management control plane.

The archiver only ever talks to the database through this protocol, which
keeps the snapshot/copy/clear sequencing independent of how the node is
reached (nodetool, JMX bridge, in-memory fake).

How to change safely:
    - Protocol changes require updating all implementations
    - Add new methods as optional with default implementations
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import ToolConfig


@runtime_checkable
class ManagementClient(Protocol):
    """Protocol for management control-plane clients.

    Example:
        >>> client = NodetoolManagementClient(config.nodetool)
        >>> client.create_snapshot("app", "nightly")
        >>> client.list_tables("app")
        ['events', 'users']
    """

    @abstractmethod
    def create_snapshot(self, keyspace: str, tag: str) -> None:
        """Create a named snapshot of every table in the keyspace.

        Raises:
            ManagementError: If the keyspace is unknown or the node unreachable
        """
        ...

    @abstractmethod
    def clear_snapshot(self, keyspace: str, tag: str) -> None:
        """Remove a named snapshot of the keyspace.

        Raises:
            ManagementError: If the call fails
        """
        ...

    @abstractmethod
    def list_tables(self, keyspace: str) -> List[str]:
        """List table names of the keyspace, in the database's order.

        Raises:
            ManagementError: If the keyspace is unknown or the node unreachable
        """
        ...

    @abstractmethod
    def reload_table(self, keyspace: str, table: str) -> None:
        """Make the database load data files newly placed in the table directory.

        Raises:
            ManagementTimeoutError: If the reload does not finish in time
            ManagementError: For other failures
        """
        ...

    @abstractmethod
    def data_directories(self) -> List[str]:
        """Configured data directory roots, in configuration order."""
        ...


def create_management_client(config: "ToolConfig") -> ManagementClient:
    """Factory function to create a management client from configuration.

    Args:
        config: Tool configuration

    Returns:
        A nodetool-backed ManagementClient
    """
    from .nodetool import NodetoolManagementClient

    return NodetoolManagementClient(config.nodetool)
