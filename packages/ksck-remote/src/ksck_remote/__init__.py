"""
Remote cluster data provider for ksck.

This package implements the ksck_protocols cluster protocols over the
JSON admin API of a real cluster's masters and tablet servers.

Components:
- RemoteCluster: Finds the leader master and lists tables, tablets and
  tablet servers
- RemoteMaster / RemoteTabletServer: Per-node admin API clients
- create_remote_cluster: Factory used by the ksck CLI
"""

from ksck_remote.client import RemoteMaster, RemoteTabletServer
from ksck_remote.cluster import RemoteCluster
from ksck_remote.factory import create_remote_cluster

__all__ = [
    "RemoteCluster",
    "RemoteMaster",
    "RemoteTabletServer",
    "create_remote_cluster",
]
