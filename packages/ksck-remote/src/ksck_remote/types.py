"""
Admin API Pydantic response types.

This module provides Pydantic models for parsing responses from the JSON
admin API served by masters and tablet servers:
- Master API: status, tables, tablets, tablet servers
- Tablet server API: status, hosted tablets, checksum scans

These are API response types for external data validation. Internal
types (Table, Tablet, ConsensusState, etc.) are dataclasses in
ksck_protocols.

Notes:
- Consensus configs list peers with a member_type, not voter sets
- A replica with a pending config change reports it in pending_config
- Checksum scan counters are cumulative per scanner
"""

from enum import Enum

from pydantic import BaseModel, Field


# =============================================================================
# Shared Types
# =============================================================================


class MemberType(str, Enum):
    """Raft membership type of a peer."""

    VOTER = "VOTER"
    NON_VOTER = "NON_VOTER"


class RaftPeer(BaseModel):
    """A peer of a Raft configuration."""

    permanent_uuid: str
    member_type: MemberType = MemberType.VOTER
    last_known_addr: str | None = None


class RaftConfig(BaseModel):
    """A Raft configuration: the config change index and its peers."""

    opid_index: int | None = None
    peers: list[RaftPeer] = Field(default_factory=list)


class ConsensusStateResponse(BaseModel):
    """
    Consensus state of a replica.

    Example:
    {
        "current_term": 3,
        "leader_uuid": "ts-1",
        "committed_config": {
            "opid_index": 12,
            "peers": [{"permanent_uuid": "ts-1", "member_type": "VOTER"}]
        }
    }
    """

    current_term: int | None = None
    leader_uuid: str | None = None
    committed_config: RaftConfig
    pending_config: RaftConfig | None = None


# =============================================================================
# Master API Response Types
# =============================================================================


class MasterStatusResponse(BaseModel):
    """
    Response from master GET /api/v1/status.

    Example response:
    {"uuid": "m-1", "role": "LEADER", "consensus_state": {...}}
    """

    uuid: str
    role: str = "UNKNOWN_ROLE"
    consensus_state: ConsensusStateResponse | None = None


class ColumnInfo(BaseModel):
    """A column of a table schema."""

    name: str
    type: str
    is_key: bool = False
    is_nullable: bool = False


class TableInfo(BaseModel):
    """A table entry from the master's catalog."""

    name: str
    num_replicas: int = 3
    schema_: list[ColumnInfo] = Field(default_factory=list, alias="schema")


class TablesResponse(BaseModel):
    """
    Response from master GET /api/v1/tables.

    Example response:
    {"tables": [{"name": "orders", "num_replicas": 3, "schema": [...]}]}
    """

    tables: list[TableInfo] = Field(default_factory=list)


class ReplicaLocation(BaseModel):
    """A replica location as recorded by the master."""

    ts_uuid: str
    is_leader: bool = False
    is_voter: bool = True


class TabletLocations(BaseModel):
    """A tablet and the locations of its replicas."""

    id: str
    replicas: list[ReplicaLocation] = Field(default_factory=list)


class TabletsResponse(BaseModel):
    """
    Response from master GET /api/v1/tables/{name}/tablets.

    Example response:
    {"tablets": [{"id": "t-1", "replicas": [{"ts_uuid": "ts-1", "is_leader": true}]}]}
    """

    tablets: list[TabletLocations] = Field(default_factory=list)


class TabletServerEntry(BaseModel):
    """A registered tablet server."""

    uuid: str
    address: str


class TabletServersResponse(BaseModel):
    """
    Response from master GET /api/v1/tablet-servers.

    Example response:
    {"tablet_servers": [{"uuid": "ts-1", "address": "ts-1:7050"}]}
    """

    tablet_servers: list[TabletServerEntry] = Field(default_factory=list)


# =============================================================================
# Tablet Server API Response Types
# =============================================================================


class TabletServerStatusResponse(BaseModel):
    """
    Response from tablet server GET /api/v1/status.

    Example response:
    {"uuid": "ts-1", "timestamp": 6922357432188170240}
    """

    uuid: str
    timestamp: int


class HostedTablet(BaseModel):
    """A tablet replica hosted by a tablet server."""

    tablet_id: str
    table_name: str = ""
    state: str = "UNKNOWN"
    data_state: str = "UNKNOWN"
    consensus_state: ConsensusStateResponse | None = None


class HostedTabletsResponse(BaseModel):
    """
    Response from tablet server GET /api/v1/tablets.

    Example response:
    {
        "tablets": [
            {
                "tablet_id": "t-1",
                "table_name": "orders",
                "state": "RUNNING",
                "data_state": "READY",
                "consensus_state": {...}
            }
        ]
    }
    """

    tablets: list[HostedTablet] = Field(default_factory=list)


class ChecksumScanResponse(BaseModel):
    """
    Response from tablet server checksum scan endpoints.

    POST /api/v1/tablets/{id}/checksum starts a scan and
    POST /api/v1/checksum-scans/{scanner_id}/continue continues it.
    Counters are cumulative for the scanner.

    Example response:
    {
        "scanner_id": "s-42",
        "rows_summed": 1000,
        "disk_bytes_summed": 65536,
        "checksum": 1234567,
        "has_more": false
    }
    """

    scanner_id: str
    rows_summed: int = 0
    disk_bytes_summed: int = 0
    checksum: int = 0
    has_more: bool = False
