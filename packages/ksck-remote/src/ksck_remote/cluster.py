"""
Cluster data provider backed by the admin API of a real cluster.

RemoteCluster implements ClusterProtocol. Table, tablet and tablet server
listings come from the leader master; every node gets its own
httpx.AsyncClient, created through an injected client factory so tests
can supply a mock transport.
"""

import logging
from collections.abc import Callable

import httpx

from ksck_protocols import (
    ColumnSchema,
    FetchError,
    Schema,
    Table,
    Tablet,
    TabletReplica,
)
from ksck_protocols.cluster import fetch_table_and_tablet_info
from ksck_remote.client import (
    RemoteMaster,
    RemoteTabletServer,
    path_segment,
    request_model,
)
from ksck_remote.types import (
    MasterStatusResponse,
    TablesResponse,
    TabletServersResponse,
    TabletsResponse,
)

logger = logging.getLogger(__name__)

LEADER_ROLE = "LEADER"

ClientFactory = Callable[[str], httpx.AsyncClient]
"""Builds an httpx client for a node address (host:port)."""


class RemoteCluster:
    """
    Remote cluster with one admin API client per node.

    Use as an async context manager to close every client on exit.

    Example:
        cluster = create_remote_cluster(["master-1:8051", "master-2:8051"])
        async with cluster:
            results = await Ksck(cluster).run()
    """

    def __init__(self, masters: list[RemoteMaster], client_factory: ClientFactory) -> None:
        self._masters = list(masters)
        self._client_factory = client_factory
        self._leader: RemoteMaster | None = None
        self._tablet_servers: dict[str, RemoteTabletServer] = {}
        self._tables: list[Table] = []

    @property
    def masters(self) -> list[RemoteMaster]:
        return self._masters

    @property
    def tablet_servers(self) -> dict[str, RemoteTabletServer]:
        return self._tablet_servers

    @property
    def tables(self) -> list[Table]:
        return self._tables

    @property
    def leader(self) -> RemoteMaster | None:
        return self._leader

    def table(self, name: str) -> Table | None:
        return next((t for t in self._tables if t.name == name), None)

    def _require_leader(self) -> RemoteMaster:
        if self._leader is None:
            raise FetchError("leader master", "not connected")
        return self._leader

    async def connect(self) -> None:
        """
        Find the leader master.

        Raises:
            FetchError: If no master answered or none of them is the leader.
        """
        self._leader = None
        errors = []
        for master in self._masters:
            try:
                status = await request_model(
                    master.http, "GET", "/api/v1/status", MasterStatusResponse
                )
            except FetchError as e:
                errors.append(str(e))
                continue
            if status.role == LEADER_ROLE:
                self._leader = master
                logger.debug("Leader master is %s (%s)", status.uuid, master.address)
                return
        addresses = ", ".join(m.address for m in self._masters)
        reason = "; ".join(errors) if errors else "no master is the leader"
        raise FetchError(addresses, reason)

    async def fetch_tables_list(self) -> None:
        leader = self._require_leader()
        data = await request_model(leader.http, "GET", "/api/v1/tables", TablesResponse)
        self._tables = [
            Table(
                name=t.name,
                schema=Schema(
                    columns=tuple(
                        ColumnSchema(
                            name=c.name,
                            type=c.type,
                            is_key=c.is_key,
                            nullable=c.is_nullable,
                        )
                        for c in t.schema_
                    )
                ),
                num_replicas=t.num_replicas,
            )
            for t in data.tables
        ]

    async def fetch_tablet_servers_list(self) -> None:
        """Refresh the tablet server registry, reusing clients of known servers."""
        leader = self._require_leader()
        data = await request_model(
            leader.http, "GET", "/api/v1/tablet-servers", TabletServersResponse
        )
        previous = self._tablet_servers
        servers: dict[str, RemoteTabletServer] = {}
        for entry in data.tablet_servers:
            known = previous.pop(entry.uuid, None)
            if known is not None and known.address == entry.address:
                servers[entry.uuid] = known
                continue
            if known is not None:
                await known.http.aclose()
            servers[entry.uuid] = RemoteTabletServer(
                entry.uuid, entry.address, self._client_factory(entry.address)
            )
        for removed in previous.values():
            await removed.http.aclose()
        self._tablet_servers = servers

    async def fetch_tablets_list(self, table: Table) -> None:
        leader = self._require_leader()
        data = await request_model(
            leader.http,
            "GET",
            f"/api/v1/tables/{path_segment(table.name)}/tablets",
            TabletsResponse,
        )
        table.set_tablets(
            [
                Tablet(
                    id=t.id,
                    table_name=table.name,
                    replicas=tuple(
                        TabletReplica(r.ts_uuid, is_leader=r.is_leader, is_voter=r.is_voter)
                        for r in t.replicas
                    ),
                )
                for t in data.tablets
            ]
        )

    async def fetch_table_and_tablet_info(self) -> None:
        await fetch_table_and_tablet_info(self)

    async def aclose(self) -> None:
        """Close the clients of every master and tablet server."""
        for ts in self._tablet_servers.values():
            await ts.http.aclose()
        for master in self._masters:
            await master.http.aclose()

    async def __aenter__(self) -> "RemoteCluster":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
