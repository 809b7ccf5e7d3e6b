"""
Generic types for the ksck protocol system.

This module defines the data structures used to represent a tablet-based
storage cluster: tables, their tablets, and the replicas of each tablet,
plus the per-server tablet status types reported by tablet servers.

All types use @dataclass. Entities are snapshots populated by a cluster
data provider at the start of a check run and only read afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum

from ksck_protocols.consensus import ConsensusConfigType, ConsensusState
from ksck_protocols.errors import NotFetchedError


# Type aliases for common patterns
ServerUuid = str
"""Unique identifier of a master or tablet server."""

TabletId = str
"""Unique identifier of a tablet."""


@dataclass(frozen=True)
class TabletReplica:
    """
    One tablet server's membership in a tablet's configuration.

    Attributes:
        ts_uuid: UUID of the tablet server hosting the replica.
        is_leader: Whether the master believes this replica is the leader.
        is_voter: Whether the replica is a voting member.
    """

    ts_uuid: ServerUuid
    is_leader: bool = False
    is_voter: bool = True


@dataclass
class Tablet:
    """
    A horizontal partition of a table, replicated across tablet servers.

    The owning table is referenced by name only and resolved through the
    cluster's table registry.

    Attributes:
        id: Tablet identifier.
        table_name: Name of the owning table.
        replicas: Replicas as reported by the master. Replaced wholesale
            by set_replicas(), never mutated in place.
    """

    id: TabletId
    table_name: str
    replicas: tuple[TabletReplica, ...] = ()

    def set_replicas(self, replicas: list[TabletReplica]) -> None:
        self.replicas = tuple(replicas)

    def master_consensus_state(self) -> ConsensusState | None:
        """
        Build the master's view of this tablet's configuration.

        Returns None when the master did not list any replica.
        """
        if not self.replicas:
            return None
        leader_uuid = next(
            (r.ts_uuid for r in self.replicas if r.is_leader), None
        )
        return ConsensusState(
            config_type=ConsensusConfigType.MASTER,
            leader_uuid=leader_uuid,
            voter_uuids=frozenset(r.ts_uuid for r in self.replicas if r.is_voter),
            non_voter_uuids=frozenset(
                r.ts_uuid for r in self.replicas if not r.is_voter
            ),
        )


@dataclass(frozen=True)
class ColumnSchema:
    """A single column of a table schema."""

    name: str
    type: str
    is_key: bool = False
    nullable: bool = False


@dataclass(frozen=True)
class Schema:
    """
    Table schema.

    Opaque to the checks; passed through to checksum scans so that a
    tablet server knows which columns to read.
    """

    columns: tuple[ColumnSchema, ...] = ()

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


@dataclass
class Table:
    """
    A table composed of tablets.

    Attributes:
        name: Table name.
        schema: Table schema.
        num_replicas: Replication factor configured for the table.
        tablets: Tablets owned by the table.
        fetch_error: Why the last tablet listing failed. Cleared by a
            successful listing; the tablets are left as they were.
    """

    name: str
    schema: Schema = field(default_factory=Schema)
    num_replicas: int = 3
    tablets: list[Tablet] = field(default_factory=list)
    fetch_error: str | None = None

    def set_tablets(self, tablets: list[Tablet]) -> None:
        self.tablets = list(tablets)
        self.fetch_error = None


class FetchState(Enum):
    """Fetch status of a master or tablet server."""

    # Information has not yet been fetched.
    UNINITIALIZED = "uninitialized"
    # The attempt to fetch information failed.
    FETCH_FAILED = "fetch_failed"
    # Information was fetched successfully.
    FETCHED = "fetched"


@dataclass
class NodeFetchState:
    """
    Fetch state machine shared by master and tablet server implementations.

    Each fetch attempt moves the node from UNINITIALIZED to either FETCHED
    or FETCH_FAILED. Re-fetching calls reset() and re-enters the transition.
    """

    state: FetchState = FetchState.UNINITIALIZED

    def reset(self) -> None:
        self.state = FetchState.UNINITIALIZED

    def mark_fetched(self) -> None:
        self.state = FetchState.FETCHED

    def mark_failed(self) -> None:
        self.state = FetchState.FETCH_FAILED

    def is_healthy(self) -> bool:
        if self.state == FetchState.UNINITIALIZED:
            raise NotFetchedError("health is unknown before the first fetch")
        return self.state == FetchState.FETCHED

    def require_fetched(self, what: str) -> None:
        if self.state != FetchState.FETCHED:
            raise NotFetchedError(f"{what} is only available once fetched")


class TabletState(Enum):
    """Lifecycle state of a tablet replica on a tablet server."""

    NOT_STARTED = "NOT_STARTED"
    BOOTSTRAPPING = "BOOTSTRAPPING"
    RUNNING = "RUNNING"
    FAILED = "FAILED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    SHUTDOWN = "SHUTDOWN"
    UNKNOWN = "UNKNOWN"


class TabletDataState(Enum):
    """State of a replica's on-disk data."""

    READY = "READY"
    COPYING = "COPYING"
    DELETED = "DELETED"
    TOMBSTONED = "TOMBSTONED"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class TabletStatus:
    """
    Status of one tablet replica as reported by its tablet server.

    Attributes:
        tablet_id: The tablet this status belongs to.
        table_name: Name of the table owning the tablet.
        state: Replica lifecycle state.
        data_state: On-disk data state; COPYING means a tablet copy is in
            progress for this replica.
    """

    tablet_id: TabletId
    table_name: str = ""
    state: TabletState = TabletState.RUNNING
    data_state: TabletDataState = TabletDataState.READY

    @property
    def is_copying(self) -> bool:
        return self.data_state == TabletDataState.COPYING


TabletStatusMap = dict[TabletId, TabletStatus]
"""Mapping of tablet id to the tablet's status on one tablet server."""

TabletConsensusStateMap = dict[tuple[ServerUuid, TabletId], ConsensusState]
"""Mapping of (tablet server uuid, tablet id) to reported consensus state."""
