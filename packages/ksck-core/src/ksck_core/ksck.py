"""
Ksck - runs system checks against a cluster.

Ksck drives a cluster data provider through a check run:
1. check_master_health(): fetch info from every master
2. check_master_consensus(): compare the masters' own consensus states
3. check_cluster_running(): connect to the leader master (fatal on failure)
4. fetch_table_and_tablet_info(): list tables, tablets and tablet servers
5. fetch_info_from_tablet_servers(): fetch status from every tablet server
6. check_tables_consistency(): classify every tablet and summarize tables
7. checksum_data(): optionally compare replica data checksums

Every step except connecting returns a report; problems never abort the
run. run() performs all of them in order.
"""

import asyncio
import logging
from itertools import combinations

from ksck_protocols import (
    ChecksumOptions,
    ClusterProtocol,
    FetchError,
    MasterProtocol,
    Table,
    TabletServerProtocol,
)

from ksck_core.checksum import ChecksumReport, ChecksumScanner
from ksck_core.exceptions import ClusterUnreachableError
from ksck_core.filters import KsckFilters
from ksck_core.health import ServerHealth, ServerHealthSummary, classify_server_health
from ksck_core.reports import (
    KsckResults,
    MasterConsensusReport,
    ServerHealthReport,
    TablesConsistencyReport,
    TableVerification,
)
from ksck_core.types import CheckResult
from ksck_core.verifier import TabletVerifier

logger = logging.getLogger(__name__)

# Table statuses that are not expected to change by waiting.
TERMINAL_TABLE_STATUSES = (CheckResult.HEALTHY, CheckResult.CONSENSUS_MISMATCH)


class Ksck:
    """
    Externally facing class to run checks against a cluster.

    Attributes:
        cluster: Any ClusterProtocol implementation
        check_replica_count: Whether to verify each tablet has as many
            running voters as its table's replication factor
        filters: Tables and tablets to check
        progress_interval: Seconds between checksum progress log lines

    Example:
        cluster = create_remote_cluster(["master-1:8051"])
        ksck = Ksck(cluster, filters=KsckFilters(table_filters=["orders*"]))
        results = await ksck.run(checksum_options=ChecksumOptions())
        results.raise_for_status()
    """

    def __init__(
        self,
        cluster: ClusterProtocol,
        check_replica_count: bool = True,
        filters: KsckFilters | None = None,
        progress_interval: float = 5.0,
    ) -> None:
        self.cluster = cluster
        self.check_replica_count = check_replica_count
        self.filters = filters or KsckFilters()
        self.progress_interval = progress_interval

    @property
    def verifier(self) -> TabletVerifier:
        return TabletVerifier(
            self.cluster,
            check_replica_count=self.check_replica_count,
            filters=self.filters,
        )

    def _master_addresses(self) -> list[str]:
        return [m.address for m in self.cluster.masters]

    # -------------------------------------------------------------------------
    # Masters
    # -------------------------------------------------------------------------

    async def _fetch_master(self, master: MasterProtocol) -> ServerHealthSummary:
        error: FetchError | None = None
        try:
            await master.init()
            await master.fetch_info()
        except FetchError as e:
            error = e
        health = classify_server_health(error)
        if health != ServerHealth.HEALTHY:
            logger.warning("Unable to connect to master %s: %s", master.address, error)
        return ServerHealthSummary(
            uuid=master.uuid,
            address=master.address,
            health=health,
            error=str(error) if error else None,
        )

    async def check_master_health(self) -> ServerHealthReport:
        """Check that all masters are healthy."""
        summaries = await asyncio.gather(
            *(self._fetch_master(m) for m in self.cluster.masters)
        )
        report = ServerHealthReport(
            server_type="master",
            summaries=sorted(summaries, key=lambda s: (s.uuid, s.address)),
        )
        logger.info(
            "%d of %d master(s) healthy",
            len(report.summaries) - len(report.unhealthy),
            len(report.summaries),
        )
        return report

    async def check_master_consensus(self) -> MasterConsensusReport:
        """
        Check that the masters' consensus information is consistent.

        Must first call check_master_health().
        """
        for master in self.cluster.masters:
            try:
                await master.fetch_consensus_state()
            except FetchError as e:
                logger.warning(
                    "Unable to fetch consensus state from master %s: %s",
                    master.address,
                    e,
                )

        report = MasterConsensusReport()
        present = []
        for master in self.cluster.masters:
            cstate = master.cstate
            report.cstates[master.uuid] = cstate.describe() if cstate else None
            if cstate is None:
                report.missing.append(master.uuid)
            else:
                present.append((master.uuid, cstate))
        report.conflicts = [
            (uuid_a, uuid_b)
            for (uuid_a, a), (uuid_b, b) in combinations(present, 2)
            if not a.matches(b)
        ]
        if not report.ok:
            logger.warning(
                "Master consensus mismatch: %d missing, %d conflict(s)",
                len(report.missing),
                len(report.conflicts),
            )
        return report

    # -------------------------------------------------------------------------
    # Cluster topology
    # -------------------------------------------------------------------------

    async def check_cluster_running(self) -> None:
        """
        Verify that the leader master can be reached.

        Raises:
            ClusterUnreachableError: If no master could be reached.
        """
        try:
            await self.cluster.connect()
        except FetchError as e:
            raise ClusterUnreachableError(self._master_addresses(), str(e)) from e
        logger.info("Connected to the cluster")

    async def fetch_table_and_tablet_info(self) -> None:
        """
        Populate tables, tablets and tablet servers from the master.

        Must first call check_cluster_running(). A table whose tablets
        cannot be listed is reported as unavailable by
        check_tables_consistency() rather than aborting the run.

        Raises:
            ClusterUnreachableError: If the master could not list the tables
                or the tablet servers.
        """
        try:
            await self.cluster.fetch_table_and_tablet_info()
        except FetchError as e:
            raise ClusterUnreachableError(self._master_addresses(), str(e)) from e
        logger.info(
            "Fetched %d table(s) and %d tablet server(s)",
            len(self.cluster.tables),
            len(self.cluster.tablet_servers),
        )

    # -------------------------------------------------------------------------
    # Tablet servers
    # -------------------------------------------------------------------------

    async def connect_to_tablet_server(self, ts: TabletServerProtocol) -> ServerHealthSummary:
        """Fetch status and consensus information from one tablet server."""
        error: FetchError | None = None
        try:
            await ts.fetch_info()
            await ts.fetch_consensus_state()
        except FetchError as e:
            error = e
        health = classify_server_health(error)
        if health != ServerHealth.HEALTHY:
            logger.warning("Unable to connect to tablet server %s (%s): %s", ts.uuid, ts.address, error)
        else:
            logger.debug("Connected to tablet server %s (%s)", ts.uuid, ts.address)
        return ServerHealthSummary(
            uuid=ts.uuid,
            address=ts.address,
            health=health,
            error=str(error) if error else None,
        )

    async def fetch_info_from_tablet_servers(self) -> ServerHealthReport:
        """
        Connect to every tablet server and fetch its status.

        Must first call fetch_table_and_tablet_info().
        """
        servers = list(self.cluster.tablet_servers.values())
        if not servers:
            logger.warning("The cluster doesn't have any tablet servers")
        summaries = await asyncio.gather(
            *(self.connect_to_tablet_server(ts) for ts in servers)
        )
        report = ServerHealthReport(
            server_type="tablet server",
            summaries=sorted(summaries, key=lambda s: s.uuid),
        )
        logger.info(
            "%d of %d tablet server(s) healthy",
            len(report.summaries) - len(report.unhealthy),
            len(report.summaries),
        )
        return report

    # -------------------------------------------------------------------------
    # Tables and tablets
    # -------------------------------------------------------------------------

    def check_tables_consistency(self) -> TablesConsistencyReport:
        """
        Verify that every tablet in scope has enough healthy replicas and
        that all consensus views of each tablet agree.

        Must first call fetch_table_and_tablet_info() and
        fetch_info_from_tablet_servers().
        """
        report = TablesConsistencyReport(table_summaries=self.verifier.verify_tables())
        logger.info(
            "Checked %d table(s) with %d tablet(s): %d unhealthy tablet(s)",
            len(report.table_summaries),
            report.total_tablets,
            report.unhealthy_tablets,
        )
        return report

    async def _refresh_table(self, table: Table) -> None:
        try:
            await self.cluster.fetch_tablets_list(table)
        except FetchError as e:
            logger.warning("Unable to refresh tablets of table '%s': %s", table.name, e)
            table.fetch_error = str(e)
        await self.fetch_info_from_tablet_servers()

    async def verify_table_with_timeout(
        self,
        table: Table,
        timeout: float,
        retry_interval: float,
        refetch: bool = True,
    ) -> TableVerification:
        """
        Verify a table, retrying until it reaches a terminal status.

        HEALTHY and CONSENSUS_MISMATCH are terminal. Other statuses may
        resolve on their own (tablet copies finishing, replicas coming
        back), so the table is re-verified every retry_interval seconds
        until timeout seconds have passed.

        Args:
            table: Table to verify.
            timeout: Seconds to keep retrying.
            retry_interval: Seconds between attempts.
            refetch: Whether to re-fetch the table's tablets and the tablet
                servers before each retry.

        Returns:
            TableVerification with the last summary; timed_out is set when
            the timeout elapsed before a terminal status.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        verifier = self.verifier
        attempts = 0
        while True:
            summary = verifier.verify_table(table)
            attempts += 1
            status = summary.table_status()
            if status in TERMINAL_TABLE_STATUSES:
                return TableVerification(summary=summary, attempts=attempts)

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(
                    "Table '%s' is still %s after %.1fs (%d attempt(s))",
                    table.name,
                    status.value,
                    timeout,
                    attempts,
                )
                return TableVerification(summary=summary, attempts=attempts, timed_out=True)

            logger.info(
                "Table '%s' is %s, retrying in %.1fs", table.name, status.value, retry_interval
            )
            await asyncio.sleep(min(retry_interval, remaining))
            if refetch:
                await self._refresh_table(table)

    # -------------------------------------------------------------------------
    # Checksums
    # -------------------------------------------------------------------------

    async def checksum_data(self, options: ChecksumOptions) -> ChecksumReport:
        """
        Verify data checksums of every tablet by scanning each replica.

        Must first call fetch_table_and_tablet_info() and
        fetch_info_from_tablet_servers().
        """
        scanner = ChecksumScanner(
            self.cluster,
            filters=self.filters,
            progress_interval=self.progress_interval,
        )
        return await scanner.run(options)

    # -------------------------------------------------------------------------
    # Full run
    # -------------------------------------------------------------------------

    async def run(self, checksum_options: ChecksumOptions | None = None) -> KsckResults:
        """
        Run every check in order.

        Args:
            checksum_options: Run checksum scans with these options; skipped
                when None.

        Returns:
            KsckResults with one report per check.

        Raises:
            ClusterUnreachableError: If no master could be reached.
        """
        results = KsckResults()
        results.master_health = await self.check_master_health()
        results.master_consensus = await self.check_master_consensus()
        await self.check_cluster_running()
        await self.fetch_table_and_tablet_info()
        results.tablet_server_health = await self.fetch_info_from_tablet_servers()
        results.tables = self.check_tables_consistency()
        if checksum_options is not None:
            results.checksum = await self.checksum_data(checksum_options)
        return results
