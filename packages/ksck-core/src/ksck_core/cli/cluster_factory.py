"""
Factory for opening cluster data providers.

Uses lazy imports to avoid loading the remote package unless needed.
Cluster kinds are selected via a hardcoded switch.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from ksck_core.config import KsckConfig

if TYPE_CHECKING:
    from ksck_protocols import ClusterProtocol

# Hardcoded list of available cluster kinds
AVAILABLE_CLUSTERS = ["remote", "demo"]


@asynccontextmanager
async def open_cluster(kind: str, config: KsckConfig) -> AsyncIterator["ClusterProtocol"]:
    """
    Open a cluster data provider and close it on exit.

    Args:
        kind: "remote" for a real cluster reached over its admin API,
            "demo" for a small in-memory cluster
        config: Run configuration (master addresses, request timeout)

    Raises:
        ValueError: If kind is not recognized

    Example:
        async with open_cluster("remote", config) as cluster:
            results = await Ksck(cluster).run()
    """
    if kind == "remote":
        # Lazy import to avoid loading httpx clients unless needed
        from ksck_remote.factory import create_remote_cluster

        cluster = create_remote_cluster(
            config.master_addresses,
            timeout=config.request_timeout,
        )
        async with cluster:
            yield cluster
    elif kind == "demo":
        from ksck_core.memory import build_demo_cluster

        yield build_demo_cluster()
    else:
        raise ValueError(
            f"Unknown cluster kind '{kind}'. "
            f"Available: {', '.join(AVAILABLE_CLUSTERS)}"
        )
