"""
In-memory cluster data provider.

Implements ClusterProtocol, MasterProtocol and TabletServerProtocol
without any network, for tests and demos. Each node holds the data it
would report; fetching copies it into the node's snapshot so that later
changes only become visible after a re-fetch, as with a real cluster.

Failure injection:
- reachable=False makes every fetch fail with FetchError
- reported_uuid on a tablet server makes fetch_info() fail with
  WrongServerUuidError
- checksum_errors / hang on a tablet server make checksum scans fail or
  never complete
"""

import asyncio
import zlib
from dataclasses import replace

from ksck_protocols import (
    DUMMY_UUID,
    ChecksumOptions,
    ChecksumProgressCallbacks,
    ColumnSchema,
    ConsensusConfigType,
    ConsensusState,
    FetchError,
    FetchState,
    NodeFetchState,
    Schema,
    Table,
    Tablet,
    TabletConsensusStateMap,
    TabletReplica,
    TabletState,
    TabletStatus,
    TabletStatusMap,
    WrongServerUuidError,
)
from ksck_protocols.cluster import fetch_table_and_tablet_info


class InMemoryMaster:
    """In-memory master with a configurable uuid and consensus state."""

    def __init__(
        self,
        address: str,
        uuid: str,
        cstate: ConsensusState | None = None,
        reachable: bool = True,
    ) -> None:
        self._address = address
        self._configured_uuid = uuid
        self._uuid = f"{DUMMY_UUID} ({address})"
        self._fetch = NodeFetchState()
        self.reported_cstate = cstate
        self._cstate: ConsensusState | None = None
        self.reachable = reachable
        self.initialized = False

    @property
    def address(self) -> str:
        return self._address

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def state(self) -> FetchState:
        return self._fetch.state

    @property
    def cstate(self) -> ConsensusState | None:
        return self._cstate

    def is_healthy(self) -> bool:
        return self._fetch.is_healthy()

    async def init(self) -> None:
        self.initialized = True

    async def fetch_info(self) -> None:
        self._fetch.reset()
        if not self.reachable:
            self._fetch.mark_failed()
            raise FetchError(self._address, "connection refused")
        self._uuid = self._configured_uuid
        self._fetch.mark_fetched()

    async def fetch_consensus_state(self) -> None:
        self._cstate = None
        if not self.reachable:
            raise FetchError(self._address, "connection refused")
        self._cstate = self.reported_cstate


class InMemoryTabletServer:
    """
    In-memory tablet server.

    Attributes:
        tablets: Tablet id to the status this server reports.
        consensus_states: Tablet id to this replica's consensus state.
        checksums: Tablet id to the checksum a scan returns.
        rows: Tablet id to the number of rows a scan reports.
        timestamp: Current server timestamp.
        scan_requests: (tablet id, snapshot timestamp or None) per scan.
        max_outstanding_scans: Highest number of concurrent scans seen.
    """

    def __init__(
        self,
        uuid: str,
        address: str | None = None,
        timestamp: int = 1,
        reachable: bool = True,
        reported_uuid: str | None = None,
    ) -> None:
        self._uuid = uuid
        self._address = address or f"{uuid}:7050"
        self._fetch = NodeFetchState()
        self.timestamp = timestamp
        self.reachable = reachable
        self.reported_uuid = reported_uuid

        self.tablets: dict[str, TabletStatus] = {}
        self.consensus_states: dict[str, ConsensusState] = {}
        self.checksums: dict[str, int] = {}
        self.rows: dict[str, int] = {}
        self.checksum_errors: set[str] = set()
        self.hang = False
        self.scan_delay = 0.0
        self.report_from_thread = False

        self._tablet_status_map: TabletStatusMap = {}
        self._tablet_consensus_state_map: TabletConsensusStateMap = {}
        self._timestamp = 0
        self.scan_requests: list[tuple[str, int | None]] = []
        self.outstanding_scans = 0
        self.max_outstanding_scans = 0

    # -------------------------------------------------------------------------
    # Test setup helpers
    # -------------------------------------------------------------------------

    def add_tablet(
        self,
        status: TabletStatus,
        cstate: ConsensusState | None = None,
        checksum: int | None = None,
        rows: int = 0,
    ) -> None:
        self.tablets[status.tablet_id] = status
        if cstate is not None:
            self.consensus_states[status.tablet_id] = cstate
        if checksum is not None:
            self.checksums[status.tablet_id] = checksum
        self.rows[status.tablet_id] = rows

    def set_tablet_status(self, tablet_id: str, **changes) -> None:
        self.tablets[tablet_id] = replace(self.tablets[tablet_id], **changes)

    # -------------------------------------------------------------------------
    # TabletServerProtocol
    # -------------------------------------------------------------------------

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> FetchState:
        return self._fetch.state

    @property
    def tablet_status_map(self) -> TabletStatusMap:
        self._fetch.require_fetched("tablet status map")
        return self._tablet_status_map

    @property
    def tablet_consensus_state_map(self) -> TabletConsensusStateMap:
        self._fetch.require_fetched("tablet consensus state map")
        return self._tablet_consensus_state_map

    @property
    def current_timestamp(self) -> int:
        self._fetch.require_fetched("current timestamp")
        return self._timestamp

    def is_healthy(self) -> bool:
        return self._fetch.is_healthy()

    def replica_state(self, tablet_id: str) -> TabletState:
        status = self.tablet_status_map.get(tablet_id)
        return status.state if status else TabletState.UNKNOWN

    async def fetch_info(self) -> None:
        self._fetch.reset()
        if not self.reachable:
            self._fetch.mark_failed()
            raise FetchError(self._address, "connection refused")
        if self.reported_uuid is not None and self.reported_uuid != self._uuid:
            self._fetch.mark_failed()
            raise WrongServerUuidError(self._address, self._uuid, self.reported_uuid)
        self._tablet_status_map = dict(self.tablets)
        self._timestamp = self.timestamp
        self._fetch.mark_fetched()

    async def fetch_consensus_state(self) -> None:
        if not self.reachable:
            self._fetch.mark_failed()
            raise FetchError(self._address, "connection refused")
        self._tablet_consensus_state_map = {
            (self._uuid, tablet_id): cstate
            for tablet_id, cstate in self.consensus_states.items()
        }

    async def run_tablet_checksum_scan(
        self,
        tablet_id: str,
        schema: Schema,
        options: ChecksumOptions,
        callbacks: ChecksumProgressCallbacks,
    ) -> None:
        self.scan_requests.append(
            (tablet_id, options.snapshot_timestamp if options.use_snapshot else None)
        )
        self.outstanding_scans += 1
        self.max_outstanding_scans = max(self.max_outstanding_scans, self.outstanding_scans)
        try:
            if self.hang:
                await asyncio.Event().wait()
            if self.scan_delay:
                await asyncio.sleep(self.scan_delay)

            if tablet_id in self.checksum_errors or tablet_id not in self.checksums:
                error = FetchError(self._address, f"checksum scan of tablet {tablet_id} failed")
                await self._report(callbacks.finished, error, 0)
                return
            rows = self.rows.get(tablet_id, 0)
            await self._report(callbacks.progress, rows, rows * 8)
            await self._report(callbacks.finished, None, self.checksums[tablet_id])
        finally:
            self.outstanding_scans -= 1

    async def _report(self, callback, *args) -> None:
        if self.report_from_thread:
            await asyncio.to_thread(callback, *args)
        else:
            callback(*args)


class InMemoryCluster:
    """
    In-memory cluster.

    Attributes:
        catalog: The tables (with their tablets) the leader master reports.
        servers: The tablet servers the leader master reports.
        failing_tablet_lists: Table names whose tablet listing fails.
    """

    def __init__(
        self,
        masters: list[InMemoryMaster],
        tablet_servers: list[InMemoryTabletServer],
        tables: list[Table],
    ) -> None:
        self._masters = list(masters)
        self.servers = {ts.uuid: ts for ts in tablet_servers}
        self.catalog = {t.name: t for t in tables}
        self.failing_tablet_lists: set[str] = set()
        self._leader: InMemoryMaster | None = None
        self._tablet_servers: dict[str, InMemoryTabletServer] = {}
        self._tables: list[Table] = []

    @property
    def masters(self) -> list[InMemoryMaster]:
        return self._masters

    @property
    def tablet_servers(self) -> dict[str, InMemoryTabletServer]:
        return self._tablet_servers

    @property
    def tables(self) -> list[Table]:
        return self._tables

    def table(self, name: str) -> Table | None:
        return next((t for t in self._tables if t.name == name), None)

    def _require_leader(self) -> InMemoryMaster:
        if self._leader is None or not self._leader.reachable:
            raise FetchError("leader master", "not connected")
        return self._leader

    async def connect(self) -> None:
        self._leader = next((m for m in self._masters if m.reachable), None)
        if self._leader is None:
            addresses = ", ".join(m.address for m in self._masters)
            raise FetchError(addresses, "no master is reachable")

    async def fetch_tables_list(self) -> None:
        self._require_leader()
        self._tables = [
            Table(name=t.name, schema=t.schema, num_replicas=t.num_replicas)
            for t in self.catalog.values()
        ]

    async def fetch_tablet_servers_list(self) -> None:
        self._require_leader()
        self._tablet_servers = dict(self.servers)

    async def fetch_tablets_list(self, table: Table) -> None:
        leader = self._require_leader()
        if table.name in self.failing_tablet_lists:
            raise FetchError(leader.address, f"unable to list tablets of {table.name}")
        source = self.catalog[table.name]
        table.set_tablets(
            [replace(tablet, replicas=tuple(tablet.replicas)) for tablet in source.tablets]
        )

    async def fetch_table_and_tablet_info(self) -> None:
        await fetch_table_and_tablet_info(self)


def build_demo_cluster() -> InMemoryCluster:
    """
    Build a small healthy cluster: 3 masters, 3 tablet servers and two
    tables with 3-way replicated tablets whose replicas all agree.
    """
    master_uuids = ["m-1", "m-2", "m-3"]
    master_cstate = ConsensusState(
        config_type=ConsensusConfigType.COMMITTED,
        term=1,
        leader_uuid="m-1",
        voter_uuids=frozenset(master_uuids),
    )
    masters = [
        InMemoryMaster(f"{uuid}:7051", uuid, cstate=master_cstate)
        for uuid in master_uuids
    ]

    ts_uuids = ["ts-1", "ts-2", "ts-3"]
    servers = [InMemoryTabletServer(uuid, timestamp=1_000_000) for uuid in ts_uuids]
    schema = Schema(columns=(ColumnSchema("id", "int64", is_key=True), ColumnSchema("value", "string")))

    tables = []
    for table_name, num_tablets in (("orders", 2), ("events", 1)):
        table = Table(name=table_name, schema=schema, num_replicas=3)
        for i in range(num_tablets):
            tablet_id = f"{table_name}-tablet-{i}"
            leader = ts_uuids[i % len(ts_uuids)]
            table.tablets.append(
                Tablet(
                    id=tablet_id,
                    table_name=table_name,
                    replicas=tuple(
                        TabletReplica(uuid, is_leader=uuid == leader) for uuid in ts_uuids
                    ),
                )
            )
            cstate = ConsensusState(
                config_type=ConsensusConfigType.COMMITTED,
                term=3,
                leader_uuid=leader,
                voter_uuids=frozenset(ts_uuids),
            )
            for server in servers:
                server.add_tablet(
                    TabletStatus(tablet_id, table_name=table_name),
                    cstate=cstate,
                    checksum=zlib.crc32(tablet_id.encode()),
                    rows=1000 * (i + 1),
                )
        tables.append(table)

    return InMemoryCluster(masters, servers, tables)
