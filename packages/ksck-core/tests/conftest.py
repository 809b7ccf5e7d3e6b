"""Shared fixtures for ksck-core tests."""

import pytest

from ksck_protocols import (
    ColumnSchema,
    ConsensusConfigType,
    ConsensusState,
    Schema,
    Table,
    Tablet,
    TabletReplica,
    TabletStatus,
)
from ksck_core.ksck import Ksck
from ksck_core.memory import InMemoryCluster, InMemoryMaster, InMemoryTabletServer

SCHEMA = Schema(columns=(ColumnSchema("key", "int64", is_key=True), ColumnSchema("v", "string")))


def replica_cstate(ts_uuids, leader="ts-1", term=2) -> ConsensusState:
    return ConsensusState(
        config_type=ConsensusConfigType.COMMITTED,
        term=term,
        leader_uuid=leader,
        voter_uuids=frozenset(ts_uuids),
    )


def build_cluster(
    num_servers: int = 3,
    tablet_ids: tuple[str, ...] = ("t-1",),
    num_replicas: int = 3,
    num_masters: int = 1,
    extra_tables: dict[str, tuple[str, ...]] | None = None,
) -> InMemoryCluster:
    """
    Build a healthy cluster.

    Every tablet of table 'orders' (and of each extra table) is replicated
    on all tablet servers with ts-1 as leader, reports checksum 42 and
    holds 10 rows.
    """
    master_uuids = [f"m-{i}" for i in range(1, num_masters + 1)]
    master_cstate = ConsensusState(
        config_type=ConsensusConfigType.COMMITTED,
        term=1,
        leader_uuid="m-1",
        voter_uuids=frozenset(master_uuids),
    )
    masters = [InMemoryMaster(f"{uuid}:7051", uuid, cstate=master_cstate) for uuid in master_uuids]

    ts_uuids = [f"ts-{i}" for i in range(1, num_servers + 1)]
    servers = [InMemoryTabletServer(uuid) for uuid in ts_uuids]

    layout = {"orders": tablet_ids}
    layout.update(extra_tables or {})
    tables = []
    for table_name, ids in layout.items():
        table = Table(name=table_name, schema=SCHEMA, num_replicas=num_replicas)
        for tablet_id in ids:
            table.tablets.append(
                Tablet(
                    id=tablet_id,
                    table_name=table_name,
                    replicas=tuple(
                        TabletReplica(uuid, is_leader=uuid == "ts-1") for uuid in ts_uuids
                    ),
                )
            )
            for server in servers:
                server.add_tablet(
                    TabletStatus(tablet_id, table_name=table_name),
                    cstate=replica_cstate(ts_uuids),
                    checksum=42,
                    rows=10,
                )
        tables.append(table)
    return InMemoryCluster(masters, servers, tables)


async def fetch_cluster(ksck: Ksck) -> None:
    await ksck.check_cluster_running()
    await ksck.fetch_table_and_tablet_info()
    await ksck.fetch_info_from_tablet_servers()


@pytest.fixture
def make_cluster():
    """Factory for in-memory clusters; see build_cluster()."""
    return build_cluster


@pytest.fixture
def fetch_all():
    """Coroutine function populating a Ksck's cluster snapshot."""
    return fetch_cluster
