"""
Tests for the Ksck check orchestration.

These tests verify Ksck correctly:
- Reports master and tablet server health, including wrong uuids
- Compares the masters' consensus states
- Treats an unreachable cluster as the only fatal error
- Retries table verification until a terminal status or the timeout
- Runs every check in order from run()
"""

import asyncio

import pytest

from ksck_protocols import (
    ChecksumOptions,
    ConsensusConfigType,
    ConsensusState,
    TabletDataState,
    TabletState,
)
from ksck_core.exceptions import (
    ClusterUnreachableError,
    InconsistentTablesError,
    MasterConsensusError,
    UnhealthyServersError,
)
from ksck_core.health import (
    ServerHealth,
    classify_server_health,
    server_health_score,
    worst_server_health,
)
from ksck_core.ksck import Ksck
from ksck_core.memory import build_demo_cluster
from ksck_core.types import CheckResult
from ksck_protocols import FetchError, WrongServerUuidError


# =============================================================================
# Server health classification
# =============================================================================


class TestServerHealth:
    """Tests for the server health classifier and its ranking."""

    def test_success_is_healthy(self):
        assert classify_server_health(None) == ServerHealth.HEALTHY

    def test_fetch_error_is_unavailable(self):
        error = FetchError("ts-1:7050", "connection refused")
        assert classify_server_health(error) == ServerHealth.UNAVAILABLE

    def test_wrong_uuid_error(self):
        error = WrongServerUuidError("ts-1:7050", "ts-1", "ts-9")
        assert classify_server_health(error) == ServerHealth.WRONG_SERVER_UUID

    def test_uuid_comparison_without_error(self):
        assert (
            classify_server_health(None, expected_uuid="ts-1", reported_uuid="ts-2")
            == ServerHealth.WRONG_SERVER_UUID
        )
        assert (
            classify_server_health(None, expected_uuid="ts-1", reported_uuid="ts-1")
            == ServerHealth.HEALTHY
        )

    def test_ranking(self):
        assert (
            server_health_score(ServerHealth.HEALTHY)
            < server_health_score(ServerHealth.WRONG_SERVER_UUID)
            < server_health_score(ServerHealth.UNAVAILABLE)
        )

    def test_worst_health(self):
        assert worst_server_health([]) == ServerHealth.HEALTHY
        assert (
            worst_server_health(
                [ServerHealth.HEALTHY, ServerHealth.UNAVAILABLE, ServerHealth.WRONG_SERVER_UUID]
            )
            == ServerHealth.UNAVAILABLE
        )


# =============================================================================
# Masters
# =============================================================================


class TestMasterChecks:
    """Tests for check_master_health() and check_master_consensus()."""

    @pytest.mark.asyncio
    async def test_healthy_masters(self, make_cluster):
        ksck = Ksck(make_cluster(num_masters=3))

        health = await ksck.check_master_health()
        consensus = await ksck.check_master_consensus()

        assert health.ok
        assert [s.uuid for s in health.summaries] == ["m-1", "m-2", "m-3"]
        assert consensus.ok
        assert set(consensus.cstates) == {"m-1", "m-2", "m-3"}

    @pytest.mark.asyncio
    async def test_unreachable_master_keeps_placeholder_uuid(self, make_cluster):
        cluster = make_cluster(num_masters=3)
        cluster.masters[2].reachable = False
        ksck = Ksck(cluster)

        health = await ksck.check_master_health()
        consensus = await ksck.check_master_consensus()

        assert not health.ok
        [unhealthy] = health.unhealthy
        assert unhealthy.health == ServerHealth.UNAVAILABLE
        assert unhealthy.uuid == "<unknown> (m-3:7051)"
        assert consensus.missing == ["<unknown> (m-3:7051)"]
        with pytest.raises(UnhealthyServersError):
            health.raise_for_status()
        with pytest.raises(MasterConsensusError):
            consensus.raise_for_status()

    @pytest.mark.asyncio
    async def test_master_consensus_conflict(self, make_cluster):
        cluster = make_cluster(num_masters=3)
        cluster.masters[1].reported_cstate = ConsensusState(
            config_type=ConsensusConfigType.COMMITTED,
            term=2,
            leader_uuid="m-2",
            voter_uuids=frozenset({"m-1", "m-2", "m-3"}),
        )
        ksck = Ksck(cluster)
        await ksck.check_master_health()

        consensus = await ksck.check_master_consensus()

        assert not consensus.ok
        assert consensus.conflicts == [("m-1", "m-2"), ("m-2", "m-3")]

    @pytest.mark.asyncio
    async def test_masters_are_initialized(self, make_cluster):
        cluster = make_cluster(num_masters=2)

        await Ksck(cluster).check_master_health()

        assert all(m.initialized for m in cluster.masters)


# =============================================================================
# Cluster topology and tablet servers
# =============================================================================


class TestClusterTopology:
    """Tests for connecting and fetching the cluster layout."""

    @pytest.mark.asyncio
    async def test_no_reachable_master_is_fatal(self, make_cluster):
        cluster = make_cluster(num_masters=2)
        for master in cluster.masters:
            master.reachable = False

        with pytest.raises(ClusterUnreachableError) as exc_info:
            await Ksck(cluster).check_cluster_running()

        assert exc_info.value.addresses == ["m-1:7051", "m-2:7051"]

    @pytest.mark.asyncio
    async def test_tablet_listing_failure_is_recorded_on_table(self, make_cluster):
        cluster = make_cluster(extra_tables={"events": ("e-1",)})
        cluster.failing_tablet_lists.add("events")
        ksck = Ksck(cluster)
        await ksck.check_cluster_running()

        await ksck.fetch_table_and_tablet_info()

        events = cluster.table("events")
        assert "unable to list tablets of events" in events.fetch_error
        assert events.tablets == []
        assert cluster.table("orders").fetch_error is None
        assert [t.id for t in cluster.table("orders").tablets] == ["t-1"]

    @pytest.mark.asyncio
    async def test_leader_lost_before_listing_is_fatal(self, make_cluster):
        cluster = make_cluster()
        ksck = Ksck(cluster)
        await ksck.check_cluster_running()
        cluster.masters[0].reachable = False

        with pytest.raises(ClusterUnreachableError):
            await ksck.fetch_table_and_tablet_info()

    @pytest.mark.asyncio
    async def test_tablet_server_health(self, make_cluster, fetch_all):
        cluster = make_cluster(num_servers=4)
        cluster.servers["ts-2"].reachable = False
        cluster.servers["ts-4"].reported_uuid = "ts-99"
        ksck = Ksck(cluster)
        await ksck.check_cluster_running()
        await ksck.fetch_table_and_tablet_info()

        report = await ksck.fetch_info_from_tablet_servers()

        health = {s.uuid: s.health for s in report.summaries}
        assert health == {
            "ts-1": ServerHealth.HEALTHY,
            "ts-2": ServerHealth.UNAVAILABLE,
            "ts-3": ServerHealth.HEALTHY,
            "ts-4": ServerHealth.WRONG_SERVER_UUID,
        }
        assert report.worst_health == ServerHealth.UNAVAILABLE
        assert "ts-99" in next(s.error for s in report.summaries if s.uuid == "ts-4")

    @pytest.mark.asyncio
    async def test_wrong_uuid_server_replicas_are_not_used(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].reported_uuid = "ts-99"
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        report = ksck.check_tables_consistency()

        assert report.table_summaries[0].underreplicated_tablets == 1


# =============================================================================
# Table verification with retries
# =============================================================================


class TestVerifyTableWithTimeout:
    """Tests for Ksck.verify_table_with_timeout()."""

    @pytest.mark.asyncio
    async def test_healthy_table_needs_one_attempt(self, make_cluster, fetch_all):
        cluster = make_cluster()
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        result = await ksck.verify_table_with_timeout(
            cluster.table("orders"), timeout=1.0, retry_interval=0.01
        )

        assert result.status == CheckResult.HEALTHY
        assert result.attempts == 1
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_consensus_mismatch_is_terminal(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-2"].consensus_states["t-1"] = ConsensusState(
            config_type=ConsensusConfigType.COMMITTED,
            term=2,
            leader_uuid="ts-2",
            voter_uuids=frozenset({"ts-1", "ts-2", "ts-3"}),
        )
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        result = await ksck.verify_table_with_timeout(
            cluster.table("orders"), timeout=1.0, retry_interval=0.01
        )

        assert result.status == CheckResult.CONSENSUS_MISMATCH
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_recovering_table_becomes_healthy(self, make_cluster, fetch_all):
        cluster = make_cluster()
        copying = cluster.servers["ts-3"]
        copying.set_tablet_status(
            "t-1", state=TabletState.BOOTSTRAPPING, data_state=TabletDataState.COPYING
        )
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        async def finish_copy():
            await asyncio.sleep(0.05)
            copying.set_tablet_status(
                "t-1", state=TabletState.RUNNING, data_state=TabletDataState.READY
            )

        finisher = asyncio.create_task(finish_copy())
        result = await ksck.verify_table_with_timeout(
            cluster.table("orders"), timeout=5.0, retry_interval=0.01
        )
        await finisher

        assert result.status == CheckResult.HEALTHY
        assert result.attempts > 1
        assert not result.timed_out

    @pytest.mark.asyncio
    async def test_without_refetch_snapshot_is_unchanged(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].set_tablet_status(
            "t-1", data_state=TabletDataState.COPYING
        )
        ksck = Ksck(cluster)
        await fetch_all(ksck)
        cluster.servers["ts-3"].set_tablet_status("t-1", data_state=TabletDataState.READY)

        result = await ksck.verify_table_with_timeout(
            cluster.table("orders"), timeout=0.05, retry_interval=0.01, refetch=False
        )

        assert result.status == CheckResult.RECOVERING
        assert result.timed_out

    @pytest.mark.asyncio
    async def test_times_out_when_problem_persists(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].reachable = False
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        result = await ksck.verify_table_with_timeout(
            cluster.table("orders"), timeout=0.1, retry_interval=0.02
        )

        assert result.status == CheckResult.UNDER_REPLICATED
        assert result.timed_out
        assert result.attempts >= 2


# =============================================================================
# Full run
# =============================================================================


class TestKsckRun:
    """Tests for Ksck.run()."""

    @pytest.mark.asyncio
    async def test_demo_cluster_is_healthy(self):
        results = await Ksck(build_demo_cluster()).run(checksum_options=ChecksumOptions())

        assert results.ok
        results.raise_for_status()
        assert [s.name for s in results.tables.table_summaries] == ["orders", "events"]
        assert results.tables.total_tablets == 3
        assert results.checksum.snapshot_timestamp == 1_000_000

    @pytest.mark.asyncio
    async def test_checksum_skipped_without_options(self, make_cluster):
        results = await Ksck(make_cluster()).run()

        assert results.checksum is None
        assert results.ok

    @pytest.mark.asyncio
    async def test_unhealthy_tables_reported_not_raised(self, make_cluster):
        cluster = make_cluster(tablet_ids=("t-1", "t-2"))
        cluster.servers["ts-2"].reachable = False
        cluster.servers["ts-3"].reachable = False

        results = await Ksck(cluster).run()

        assert not results.ok
        assert results.master_health.ok
        assert not results.tablet_server_health.ok
        assert results.tables.table_summaries[0].unavailable_tablets == 2
        with pytest.raises(UnhealthyServersError):
            results.raise_for_status()
        with pytest.raises(InconsistentTablesError) as exc_info:
            results.tables.raise_for_status()
        assert exc_info.value.bad_tables == ["orders"]

    @pytest.mark.asyncio
    async def test_unlisted_table_does_not_abort_run(self, make_cluster):
        cluster = make_cluster(extra_tables={"events": ("e-1",)})
        cluster.failing_tablet_lists.add("events")

        results = await Ksck(cluster).run(checksum_options=ChecksumOptions())

        assert results.master_health.ok
        assert results.tablet_server_health.ok
        statuses = {s.name: s.table_status() for s in results.tables.table_summaries}
        assert statuses == {
            "orders": CheckResult.HEALTHY,
            "events": CheckResult.UNAVAILABLE,
        }
        assert [t.name for t in results.tables.bad_tables] == ["events"]
        assert results.checksum.ok
        with pytest.raises(InconsistentTablesError) as exc_info:
            results.tables.raise_for_status()
        assert exc_info.value.bad_tables == ["events"]

    @pytest.mark.asyncio
    async def test_unreachable_cluster_aborts_run(self, make_cluster):
        cluster = make_cluster()
        cluster.masters[0].reachable = False

        with pytest.raises(ClusterUnreachableError):
            await Ksck(cluster).run()
