"""
Tests for tablet and table health evaluation.

These tests verify TabletVerifier correctly:
- Classifies healthy, under-replicated and unavailable tablets
- Detects consensus mismatches between the master and replicas
- Reports tablet copies in progress as RECOVERING
- Applies the classification precedence (mismatch first)
- Honors check_replica_count and the table/tablet filters
- Summarizes a table by its least healthy tablet
"""

import pytest

from ksck_protocols import (
    ConsensusConfigType,
    ConsensusState,
    Table,
    Tablet,
    TabletDataState,
    TabletReplica,
    TabletState,
)
from ksck_core.filters import KsckFilters
from ksck_core.ksck import Ksck
from ksck_core.types import CheckResult, TableSummary
from ksck_core.verifier import TabletVerifier, majority_size


def leader_cstate(leader: str, term: int = 2) -> ConsensusState:
    return ConsensusState(
        config_type=ConsensusConfigType.COMMITTED,
        term=term,
        leader_uuid=leader,
        voter_uuids=frozenset({"ts-1", "ts-2", "ts-3"}),
    )


async def verify_single_tablet(cluster, fetch_all, **ksck_kwargs):
    ksck = Ksck(cluster, **ksck_kwargs)
    await fetch_all(ksck)
    table = cluster.table("orders")
    return ksck.verifier.verify_tablet(table.tablets[0], table.num_replicas)


# =============================================================================
# Quorum arithmetic
# =============================================================================


@pytest.mark.parametrize(
    "voters,majority",
    [(0, 1), (1, 1), (2, 2), (3, 2), (4, 3), (5, 3)],
)
def test_majority_size(voters, majority):
    assert majority_size(voters) == majority


# =============================================================================
# Tablet classification
# =============================================================================


class TestVerifyTablet:
    """Tests for TabletVerifier.verify_tablet()."""

    @pytest.mark.asyncio
    async def test_healthy_tablet(self, make_cluster, fetch_all):
        verification = await verify_single_tablet(make_cluster(), fetch_all)

        assert verification.result == CheckResult.HEALTHY
        assert verification.conflicts == []
        assert verification.messages == []
        assert all(r.reachable for r in verification.replicas)

    @pytest.mark.asyncio
    async def test_one_replica_down_is_under_replicated(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].reachable = False

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.UNDER_REPLICATED
        assert "under-replicated" in verification.messages[0]
        assert any("ts-3" in m and "unavailable" in m for m in verification.messages)

    @pytest.mark.asyncio
    async def test_majority_down_is_unavailable(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-2"].reachable = False
        cluster.servers["ts-3"].reachable = False

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.UNAVAILABLE
        assert "2 of 3 voter replica(s) are not running" in verification.messages[0]

    @pytest.mark.asyncio
    async def test_replica_not_running_counts_as_down(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-2"].set_tablet_status("t-1", state=TabletState.FAILED)

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.UNDER_REPLICATED
        assert any("bad state FAILED" in m for m in verification.messages)

    @pytest.mark.asyncio
    async def test_replica_missing_from_server(self, make_cluster, fetch_all):
        cluster = make_cluster()
        del cluster.servers["ts-2"].tablets["t-1"]

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.UNDER_REPLICATED
        assert any("missing from the tablet server" in m for m in verification.messages)

    @pytest.mark.asyncio
    async def test_replica_on_unknown_server(self, make_cluster, fetch_all):
        cluster = make_cluster()
        del cluster.servers["ts-3"]

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.UNDER_REPLICATED
        assert any("not known to the master" in m for m in verification.messages)

    @pytest.mark.asyncio
    async def test_different_leader_is_consensus_mismatch(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-2"].consensus_states["t-1"] = leader_cstate("ts-2")

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.CONSENSUS_MISMATCH
        assert ("master", "ts-2") in verification.conflicts
        assert ("ts-1", "ts-2") in verification.conflicts
        assert ("master", "ts-1") not in verification.conflicts

    @pytest.mark.asyncio
    async def test_different_term_between_replicas_is_mismatch(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].consensus_states["t-1"] = leader_cstate("ts-1", term=5)

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.CONSENSUS_MISMATCH
        assert ("master", "ts-3") not in verification.conflicts
        assert ("ts-1", "ts-3") in verification.conflicts

    @pytest.mark.asyncio
    async def test_tablet_copy_is_recovering(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].set_tablet_status(
            "t-1", state=TabletState.BOOTSTRAPPING, data_state=TabletDataState.COPYING
        )

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.RECOVERING

    @pytest.mark.asyncio
    async def test_mismatch_takes_precedence_over_recovering(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].set_tablet_status("t-1", data_state=TabletDataState.COPYING)
        cluster.servers["ts-2"].consensus_states["t-1"] = leader_cstate("ts-2")

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.CONSENSUS_MISMATCH

    @pytest.mark.asyncio
    async def test_recovering_takes_precedence_over_unavailable(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-2"].reachable = False
        cluster.servers["ts-3"].set_tablet_status(
            "t-1", state=TabletState.BOOTSTRAPPING, data_state=TabletDataState.COPYING
        )

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.result == CheckResult.RECOVERING

    @pytest.mark.asyncio
    async def test_replica_count_check_disabled(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].reachable = False

        verification = await verify_single_tablet(
            cluster, fetch_all, check_replica_count=False
        )

        assert verification.result == CheckResult.HEALTHY

    @pytest.mark.asyncio
    async def test_config_smaller_than_replication_factor(self, make_cluster, fetch_all):
        """Two voters for a table with replication factor 3."""
        cluster = make_cluster(num_servers=2, num_replicas=3)

        checked = await verify_single_tablet(cluster, fetch_all)
        unchecked = await verify_single_tablet(
            make_cluster(num_servers=2, num_replicas=3), fetch_all, check_replica_count=False
        )

        assert checked.result == CheckResult.UNDER_REPLICATED
        assert unchecked.result == CheckResult.HEALTHY

    @pytest.mark.asyncio
    async def test_non_voter_down_does_not_reduce_quorum(self, make_cluster, fetch_all):
        cluster = make_cluster(num_servers=4)
        tablet = cluster.catalog["orders"].tablets[0]
        tablet.set_replicas(
            [
                TabletReplica("ts-1", is_leader=True),
                TabletReplica("ts-2"),
                TabletReplica("ts-3"),
                TabletReplica("ts-4", is_voter=False),
            ]
        )
        cstate = ConsensusState(
            config_type=ConsensusConfigType.COMMITTED,
            term=2,
            leader_uuid="ts-1",
            voter_uuids=frozenset({"ts-1", "ts-2", "ts-3"}),
            non_voter_uuids=frozenset({"ts-4"}),
        )
        for server in cluster.servers.values():
            server.consensus_states["t-1"] = cstate
        cluster.servers["ts-4"].reachable = False

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.master_cstate.non_voter_uuids == frozenset({"ts-4"})
        assert verification.result == CheckResult.HEALTHY

    @pytest.mark.asyncio
    async def test_tablet_without_replicas_is_unavailable(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.catalog["orders"].tablets[0].set_replicas([])

        verification = await verify_single_tablet(cluster, fetch_all)

        assert verification.master_cstate is None
        assert verification.result == CheckResult.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_classification_is_deterministic(self, make_cluster, fetch_all):
        cluster = make_cluster()
        cluster.servers["ts-3"].reachable = False
        cluster.servers["ts-2"].consensus_states["t-1"] = leader_cstate("ts-2")
        ksck = Ksck(cluster)
        await fetch_all(ksck)
        table = cluster.table("orders")
        verifier = ksck.verifier

        first = verifier.verify_tablet(table.tablets[0], table.num_replicas)
        second = verifier.verify_tablet(table.tablets[0], table.num_replicas)

        assert first.result == second.result
        assert first.conflicts == second.conflicts
        assert first.messages == second.messages


# =============================================================================
# Tables
# =============================================================================


class TestTableSummary:
    """Tests for TableSummary.table_status()."""

    def test_empty_table_is_healthy(self):
        assert TableSummary(name="empty").table_status() == CheckResult.HEALTHY

    def test_one_unavailable_tablet_dominates(self):
        summary = TableSummary(name="orders", healthy_tablets=99, unavailable_tablets=1)

        assert summary.table_status() == CheckResult.UNAVAILABLE
        assert summary.total_tablets == 100
        assert summary.unhealthy_tablets == 1

    def test_unlisted_table_is_unavailable(self):
        summary = TableSummary(name="orders", healthy_tablets=3, fetch_error="timed out")

        assert summary.table_status() == CheckResult.UNAVAILABLE

    @pytest.mark.parametrize(
        "results,expected",
        [
            ([CheckResult.HEALTHY, CheckResult.RECOVERING], CheckResult.RECOVERING),
            (
                [CheckResult.RECOVERING, CheckResult.UNDER_REPLICATED],
                CheckResult.UNDER_REPLICATED,
            ),
            (
                [CheckResult.UNDER_REPLICATED, CheckResult.CONSENSUS_MISMATCH],
                CheckResult.CONSENSUS_MISMATCH,
            ),
            (
                [CheckResult.CONSENSUS_MISMATCH, CheckResult.UNAVAILABLE],
                CheckResult.UNAVAILABLE,
            ),
        ],
    )
    def test_least_healthy_result_wins(self, results, expected):
        summary = TableSummary(name="orders")
        for result in results:
            summary.record(result)

        assert summary.table_status() == expected


class TestVerifyTables:
    """Tests for TabletVerifier.verify_table() / verify_tables()."""

    @pytest.mark.asyncio
    async def test_verify_table_counts_tablets(self, make_cluster, fetch_all):
        cluster = make_cluster(tablet_ids=("t-1", "t-2", "t-3"))
        cluster.servers["ts-2"].reachable = False
        ksck = Ksck(cluster)
        await fetch_all(ksck)

        summary = ksck.verifier.verify_table(cluster.table("orders"))

        assert summary.total_tablets == 3
        assert summary.underreplicated_tablets == 3
        assert [t.tablet_id for t in summary.tablets] == ["t-1", "t-2", "t-3"]

    @pytest.mark.asyncio
    async def test_table_filter(self, make_cluster, fetch_all):
        cluster = make_cluster(extra_tables={"events": ("e-1",)})
        ksck = Ksck(cluster, filters=KsckFilters(table_filters=["ord*"]))
        await fetch_all(ksck)

        summaries = ksck.verifier.verify_tables()

        assert [s.name for s in summaries] == ["orders"]

    @pytest.mark.asyncio
    async def test_table_and_tablet_filters_intersect(self, make_cluster, fetch_all):
        cluster = make_cluster(
            tablet_ids=("t-1", "t-2"), extra_tables={"events": ("e-1", "e-2")}
        )
        filters = KsckFilters(table_filters=["orders"], tablet_id_filters=["t-2", "e-1"])
        ksck = Ksck(cluster, filters=filters)
        await fetch_all(ksck)

        summaries = ksck.verifier.verify_tables()

        assert [s.name for s in summaries] == ["orders"]
        assert [t.tablet_id for t in summaries[0].tablets] == ["t-2"]

    @pytest.mark.asyncio
    async def test_tablet_filter_skips_tables_without_matches(self, make_cluster, fetch_all):
        cluster = make_cluster(extra_tables={"events": ("e-1",)})
        ksck = Ksck(cluster, filters=KsckFilters(tablet_id_filters=["e-1"]))
        await fetch_all(ksck)

        summaries = ksck.verifier.verify_tables()

        assert [s.name for s in summaries] == ["events"]


class TestKsckFilters:
    def test_empty_filters_match_everything(self):
        filters = KsckFilters()
        assert filters.matches_table(Table(name="anything"))
        assert filters.matches_tablet(Tablet(id="x", table_name="anything"))

    def test_table_patterns_are_case_sensitive_globs(self):
        filters = KsckFilters(table_filters=["Foo*"])
        assert filters.matches_table(Table(name="FooBar"))
        assert not filters.matches_table(Table(name="foobar"))

    def test_tablet_ids_are_exact(self):
        filters = KsckFilters(tablet_id_filters=["t-1"])
        assert filters.matches_tablet(Tablet(id="t-1", table_name="orders"))
        assert not filters.matches_tablet(Tablet(id="t-10", table_name="orders"))


def test_verifier_defaults():
    verifier = TabletVerifier(cluster=None)

    assert verifier.check_replica_count
    assert verifier.filters == KsckFilters()
