"""
Protocol definitions for the ksck cluster consistency checker.

This package provides the protocols and data types shared by the check
engine and by every cluster data provider implementation. It has zero
dependencies on other ksck-* packages.

Key protocols:
- ClusterProtocol: Source of masters, tablet servers, tables and tablets
- MasterProtocol / TabletServerProtocol: Fetchable cluster nodes
- ChecksumProgressCallbacks: Progress reporting for replica checksum scans

Key types:
- ConsensusState: A reported view of a tablet's replication config
- Table / Tablet / TabletReplica: The cluster's data layout
- TabletStatus: Per-replica status reported by a tablet server
- ChecksumOptions: Configuration of a checksum run
"""

from ksck_protocols.checksum import (
    CURRENT_TIMESTAMP,
    ChecksumOptions,
    ChecksumProgressCallbacks,
)
from ksck_protocols.cluster import (
    DUMMY_UUID,
    ClusterProtocol,
    MasterProtocol,
    TabletServerProtocol,
)
from ksck_protocols.consensus import ConsensusConfigType, ConsensusState
from ksck_protocols.errors import FetchError, NotFetchedError, WrongServerUuidError
from ksck_protocols.types import (
    ColumnSchema,
    FetchState,
    NodeFetchState,
    Schema,
    ServerUuid,
    Table,
    Tablet,
    TabletConsensusStateMap,
    TabletDataState,
    TabletId,
    TabletReplica,
    TabletState,
    TabletStatus,
    TabletStatusMap,
)

__all__ = [
    # Protocols
    "ClusterProtocol",
    "MasterProtocol",
    "TabletServerProtocol",
    "ChecksumProgressCallbacks",
    # Consensus
    "ConsensusConfigType",
    "ConsensusState",
    # Data types
    "ColumnSchema",
    "Schema",
    "Table",
    "Tablet",
    "TabletReplica",
    "TabletStatus",
    "TabletState",
    "TabletDataState",
    "TabletStatusMap",
    "TabletConsensusStateMap",
    "ServerUuid",
    "TabletId",
    "FetchState",
    "NodeFetchState",
    # Checksum
    "ChecksumOptions",
    "CURRENT_TIMESTAMP",
    # Errors
    "FetchError",
    "WrongServerUuidError",
    "NotFetchedError",
    "DUMMY_UUID",
]
