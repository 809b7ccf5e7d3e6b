"""
Cluster data provider protocols.

These protocols must be implemented to communicate with a cluster's
masters and tablet servers. The two use cases are:
- An in-memory cluster, to test the checks without a network
- A real cluster reached over its admin API

Fetch methods raise FetchError (or a subclass) on failure and move the
node's fetch state to FETCH_FAILED; on success the state becomes FETCHED.
"""

import logging
from typing import Protocol, runtime_checkable

from ksck_protocols.checksum import ChecksumOptions, ChecksumProgressCallbacks
from ksck_protocols.consensus import ConsensusState
from ksck_protocols.errors import FetchError
from ksck_protocols.types import (
    FetchState,
    Schema,
    Table,
    TabletConsensusStateMap,
    TabletState,
    TabletStatusMap,
)

logger = logging.getLogger(__name__)

DUMMY_UUID = "<unknown>"
"""Placeholder uuid for masters that were never successfully fetched."""


@runtime_checkable
class MasterProtocol(Protocol):
    """
    Protocol for a master.

    Masters are configured by address; the uuid is only known after
    fetch_info() succeeds. Until then it is a dummy placeholder built
    from DUMMY_UUID and the address.
    """

    @property
    def address(self) -> str: ...

    @property
    def uuid(self) -> str: ...

    @property
    def state(self) -> FetchState: ...

    @property
    def cstate(self) -> ConsensusState | None:
        """The master's own consensus state; None if it could not be fetched."""
        ...

    async def init(self) -> None: ...

    async def fetch_info(self) -> None: ...

    async def fetch_consensus_state(self) -> None: ...

    def is_healthy(self) -> bool: ...


@runtime_checkable
class TabletServerProtocol(Protocol):
    """
    Protocol for a tablet server.

    tablet_status_map, tablet_consensus_state_map and current_timestamp
    are only valid once state is FETCHED.
    """

    @property
    def uuid(self) -> str: ...

    @property
    def address(self) -> str: ...

    @property
    def state(self) -> FetchState: ...

    @property
    def tablet_status_map(self) -> TabletStatusMap: ...

    @property
    def tablet_consensus_state_map(self) -> TabletConsensusStateMap: ...

    @property
    def current_timestamp(self) -> int: ...

    async def fetch_info(self) -> None: ...

    async def fetch_consensus_state(self) -> None: ...

    async def run_tablet_checksum_scan(
        self,
        tablet_id: str,
        schema: Schema,
        options: ChecksumOptions,
        callbacks: ChecksumProgressCallbacks,
    ) -> None:
        """
        Checksum one replica, reporting through callbacks.

        Must call callbacks.finished() exactly once.
        """
        ...

    def is_healthy(self) -> bool: ...

    def replica_state(self, tablet_id: str) -> TabletState: ...


@runtime_checkable
class ClusterProtocol(Protocol):
    """
    Protocol for a cluster data provider.

    Supplies the masters, tablet servers, tables and tablets of a cluster.
    fetch_tablets_list() modifies the table's tablets only on success.
    """

    @property
    def masters(self) -> list[MasterProtocol]: ...

    @property
    def tablet_servers(self) -> dict[str, TabletServerProtocol]: ...

    @property
    def tables(self) -> list[Table]: ...

    def table(self, name: str) -> Table | None: ...

    async def connect(self) -> None: ...

    async def fetch_tables_list(self) -> None: ...

    async def fetch_tablet_servers_list(self) -> None: ...

    async def fetch_tablets_list(self, table: Table) -> None: ...

    async def fetch_table_and_tablet_info(self) -> None: ...


async def fetch_table_and_tablet_info(cluster: ClusterProtocol) -> None:
    """
    Fetch the lists of tables, tablet servers and tablets from the master.

    Shared implementation of ClusterProtocol.fetch_table_and_tablet_info().
    A table whose tablets cannot be listed keeps its previous tablets and
    records the failure in Table.fetch_error.

    Raises:
        FetchError: If connecting or listing the tables or tablet servers
            fails.
    """
    await cluster.connect()
    await cluster.fetch_tables_list()
    await cluster.fetch_tablet_servers_list()
    for table in cluster.tables:
        try:
            await cluster.fetch_tablets_list(table)
        except FetchError as e:
            logger.warning("Unable to list tablets of table '%s': %s", table.name, e)
            table.fetch_error = str(e)
