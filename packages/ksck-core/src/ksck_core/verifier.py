"""
Tablet and table health evaluation.

TabletVerifier classifies each tablet from the snapshot held by a cluster
data provider: the master's replica list, each tablet server's status for
the tablet and each replica's own consensus state. It never fetches and
never mutates the snapshot, so classification is deterministic for a
fixed snapshot.

Classification of a tablet, first match wins:
1. CONSENSUS_MISMATCH - two available consensus states do not match
2. RECOVERING - some replica has a tablet copy in progress
3. UNAVAILABLE - fewer running voters than a majority of the voters
4. UNDER_REPLICATED - fewer running voters than the replication factor
5. HEALTHY
"""

import logging
from itertools import combinations

from ksck_protocols import (
    ClusterProtocol,
    ConsensusState,
    FetchState,
    Table,
    Tablet,
    TabletState,
)

from ksck_core.filters import KsckFilters
from ksck_core.types import (
    CheckResult,
    ReplicaInfo,
    TableSummary,
    TabletVerification,
)

logger = logging.getLogger(__name__)

MASTER_REPORTER = "master"


def majority_size(num_voters: int) -> int:
    """Number of voters that must be running for a config to make progress."""
    return num_voters // 2 + 1


class TabletVerifier:
    """
    Classifies tablets and summarizes tables.

    Attributes:
        cluster: Cluster data provider holding the fetched snapshot.
        check_replica_count: Whether tablets with fewer running voters than
            the table's replication factor are reported UNDER_REPLICATED.
        filters: Scope of the check.

    Example:
        verifier = TabletVerifier(cluster)
        for table in cluster.tables:
            summary = verifier.verify_table(table)
            print(summary.name, summary.table_status())
    """

    def __init__(
        self,
        cluster: ClusterProtocol,
        check_replica_count: bool = True,
        filters: KsckFilters | None = None,
    ) -> None:
        self.cluster = cluster
        self.check_replica_count = check_replica_count
        self.filters = filters or KsckFilters()

    def _gather_replica(self, tablet: Tablet, info: ReplicaInfo) -> None:
        ts = self.cluster.tablet_servers.get(info.replica.ts_uuid)
        if ts is None:
            return
        info.ts_address = ts.address
        if ts.state != FetchState.FETCHED:
            return
        info.reachable = True
        info.status = ts.tablet_status_map.get(tablet.id)
        info.consensus_state = ts.tablet_consensus_state_map.get((ts.uuid, tablet.id))

    def verify_tablet(self, tablet: Tablet, table_num_replicas: int) -> TabletVerification:
        """
        Verify a single tablet.

        Args:
            tablet: The tablet to verify.
            table_num_replicas: Replication factor of the owning table.

        Returns:
            TabletVerification with the CheckResult and the facts behind it.
        """
        tablet_str = f"Tablet {tablet.id} of table '{tablet.table_name}'"
        master_cstate = tablet.master_consensus_state()

        replicas: list[ReplicaInfo] = []
        for replica in tablet.replicas:
            info = ReplicaInfo(replica=replica)
            self._gather_replica(tablet, info)
            replicas.append(info)

        # Every available view takes part in the comparison.
        views: list[tuple[str, ConsensusState]] = []
        if master_cstate is not None:
            views.append((MASTER_REPORTER, master_cstate))
        views.extend(
            (info.replica.ts_uuid, info.consensus_state)
            for info in replicas
            if info.consensus_state is not None
        )
        conflicts = [
            (name_a, name_b)
            for (name_a, a), (name_b, b) in combinations(views, 2)
            if not a.matches(b)
        ]

        num_voters = len(master_cstate.voter_uuids) if master_cstate else 0
        majority = majority_size(num_voters)
        running_voters = 0
        copying = 0
        messages: list[str] = []
        for info in replicas:
            status = info.status
            if status is not None and status.is_copying:
                copying += 1
            if status is not None and status.state == TabletState.RUNNING:
                if info.replica.is_voter:
                    running_voters += 1
                continue
            messages.append(self._describe_replica_problem(info))

        if conflicts:
            result = CheckResult.CONSENSUS_MISMATCH
            messages.insert(0, f"{tablet_str} has conflicting consensus states")
            for name, view in views:
                messages.append(f"{name}: {view.describe()}")
        elif copying > 0:
            result = CheckResult.RECOVERING
            messages.insert(0, f"{tablet_str} is recovering: {copying} tablet copy(ies) in progress")
        elif running_voters < majority:
            result = CheckResult.UNAVAILABLE
            messages.insert(
                0,
                f"{tablet_str} is unavailable: {num_voters - running_voters} of "
                f"{num_voters} voter replica(s) are not running",
            )
        elif self.check_replica_count and (
            running_voters < table_num_replicas or num_voters < table_num_replicas
        ):
            result = CheckResult.UNDER_REPLICATED
            messages.insert(
                0,
                f"{tablet_str} is under-replicated: configuration has {num_voters} "
                f"voter(s), {running_voters} running, replication factor "
                f"{table_num_replicas}",
            )
        else:
            result = CheckResult.HEALTHY
            messages = []

        if result != CheckResult.HEALTHY:
            logger.warning(messages[0])
            for detail in messages[1:]:
                logger.debug("  %s", detail)

        return TabletVerification(
            tablet_id=tablet.id,
            table_name=tablet.table_name,
            result=result,
            replicas=replicas,
            master_cstate=master_cstate,
            conflicts=conflicts,
            messages=messages,
        )

    def _describe_replica_problem(self, info: ReplicaInfo) -> str:
        ts_str = info.replica.ts_uuid
        if info.ts_address:
            ts_str = f"{ts_str} ({info.ts_address})"
        if info.ts_address is None:
            return f"{ts_str}: tablet server is not known to the master"
        if not info.reachable:
            return f"{ts_str}: tablet server is unavailable"
        if info.status is None:
            return f"{ts_str}: replica is missing from the tablet server"
        return f"{ts_str}: bad state {info.status.state.value}"

    def verify_table(self, table: Table) -> TableSummary:
        """
        Verify every tablet of a table that passes the tablet filters.

        Returns:
            TableSummary tallying tablets per CheckResult.
        """
        summary = TableSummary(name=table.name, fetch_error=table.fetch_error)
        for tablet in self.filters.filter_tablets(table):
            verification = self.verify_tablet(tablet, table.num_replicas)
            summary.record(verification.result)
            summary.tablets.append(verification)
        return summary

    def verify_tables(self) -> list[TableSummary]:
        """
        Verify every table that passes the filters.

        Tables without any tablet in scope are skipped when tablet filters
        are set, unless their tablets could not be listed.
        """
        summaries = []
        for table in self.filters.filter_tables(self.cluster.tables):
            summary = self.verify_table(table)
            if (
                self.filters.tablet_id_filters
                and summary.total_tablets == 0
                and summary.fetch_error is None
            ):
                continue
            summaries.append(summary)
        return summaries
