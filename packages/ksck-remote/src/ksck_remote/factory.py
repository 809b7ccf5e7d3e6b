"""
Factory function for creating remote cluster instances.

This module provides a factory function for CLI integration, allowing
the ksck-core CLI to create a remote cluster without direct imports
from ksck-remote.
"""

import httpx

from ksck_remote.client import RemoteMaster
from ksck_remote.cluster import RemoteCluster

DEFAULT_TIMEOUT = 10.0


def base_url(address: str) -> str:
    """Turn a host:port address into an http:// base URL."""
    if address.startswith(("http://", "https://")):
        return address.rstrip("/")
    return f"http://{address}"


def create_remote_cluster(
    master_addresses: list[str],
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RemoteCluster:
    """
    Create a remote cluster for the given masters.

    Args:
        master_addresses: Master addresses (e.g., ["master-1:8051"]).
        timeout: Timeout in seconds for every admin API request.
        transport: Optional transport shared by every client, for tests.

    Returns:
        RemoteCluster ready for use as an async context manager.

    Raises:
        ValueError: If no master address is given.

    Example:
        cluster = create_remote_cluster(["master-1:8051"], timeout=5.0)
        async with cluster:
            results = await Ksck(cluster).run()
    """
    if not master_addresses:
        raise ValueError("At least one master address is required")

    def client_factory(address: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url(address), timeout=timeout, transport=transport
        )

    masters = [RemoteMaster(address, client_factory(address)) for address in master_addresses]
    return RemoteCluster(masters, client_factory)
