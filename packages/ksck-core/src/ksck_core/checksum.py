"""
Checksum scan orchestration.

ChecksumScanner runs a checksum scan on every replica of every tablet in
scope and compares the results per tablet:

- Scans run as asyncio tasks, capped per tablet server by a semaphore of
  size ChecksumOptions.scan_concurrency
- Progress and results flow through ChecksumProgressCallbacks into a
  ChecksumResultReporter, which is lock-protected because scans may report
  from any thread
- The wait is bounded by ChecksumOptions.timeout_seconds; scans still
  outstanding at the deadline are cancelled locally and not awaited
- With snapshot scans, every replica uses the same timestamp so that
  concurrent writes cannot produce false mismatches
"""

import asyncio
import dataclasses
import logging
import threading
from dataclasses import dataclass, field

from ksck_protocols import (
    CURRENT_TIMESTAMP,
    ChecksumOptions,
    ClusterProtocol,
    FetchState,
    Schema,
    Table,
    Tablet,
    TabletServerProtocol,
)

from ksck_core.exceptions import (
    ChecksumMismatchError,
    ChecksumScanError,
    ChecksumTimeoutError,
)
from ksck_core.filters import KsckFilters

logger = logging.getLogger(__name__)


@dataclass
class ReplicaChecksum:
    """
    Outcome of the checksum scan of one replica.

    Attributes:
        ts_uuid: Tablet server hosting the replica.
        checksum: The checksum, set on success.
        error: Description of the failure, set on failure.
    """

    ts_uuid: str
    checksum: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.checksum is not None


@dataclass
class TabletChecksumResult:
    """
    Checksum results of all replicas of one tablet.

    Replicas map to None while their scan is outstanding.
    """

    tablet_id: str
    table_name: str
    replicas: dict[str, ReplicaChecksum | None] = field(default_factory=dict)

    @property
    def checksums(self) -> set[int]:
        return {r.checksum for r in self.replicas.values() if r is not None and r.ok}

    @property
    def mismatch(self) -> bool:
        """True if successfully scanned replicas returned different checksums."""
        return len(self.checksums) > 1

    @property
    def errors(self) -> list[ReplicaChecksum]:
        return [r for r in self.replicas.values() if r is not None and not r.ok]

    @property
    def outstanding(self) -> list[str]:
        return [uuid for uuid, r in self.replicas.items() if r is None]


@dataclass
class ChecksumReport:
    """
    Result of a checksum run.

    Attributes:
        tablets: Per-tablet results.
        timed_out: Whether the deadline passed before all scans completed.
        timeout_seconds: The deadline that applied.
        snapshot_timestamp: Timestamp used for snapshot scans, if any.
        rows_summed: Total rows checksummed across replicas.
        disk_bytes_summed: Total bytes read from disk across replicas.
        error: Run-level failure preventing any scan, if any.
    """

    tablets: list[TabletChecksumResult] = field(default_factory=list)
    timed_out: bool = False
    timeout_seconds: float = 0.0
    snapshot_timestamp: int | None = None
    rows_summed: int = 0
    disk_bytes_summed: int = 0
    error: str | None = None

    @property
    def mismatches(self) -> list[TabletChecksumResult]:
        return [t for t in self.tablets if t.mismatch]

    @property
    def num_errors(self) -> int:
        return sum(len(t.errors) for t in self.tablets)

    @property
    def num_outstanding(self) -> int:
        return sum(len(t.outstanding) for t in self.tablets)

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and not self.timed_out
            and not self.mismatches
            and self.num_errors == 0
        )

    def raise_for_status(self) -> None:
        """
        Raise if the checksum run found a problem.

        Raises:
            ChecksumScanError: If the run could not start or replicas failed.
            ChecksumTimeoutError: If scans were outstanding at the deadline.
            ChecksumMismatchError: If replicas of a tablet disagree.
        """
        if self.error is not None:
            raise ChecksumScanError(0, self.error)
        if self.timed_out:
            raise ChecksumTimeoutError(self.timeout_seconds, self.num_outstanding)
        if self.mismatches:
            raise ChecksumMismatchError([t.tablet_id for t in self.mismatches])
        if self.num_errors:
            raise ChecksumScanError(self.num_errors)


class ChecksumResultReporter:
    """
    Thread-safe aggregation of replica checksum progress and results.

    All tablets must be registered with add_tablet() before any result is
    reported. Completion is signalled to the event loop the reporter was
    created on, whichever thread reports the last result.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._done = asyncio.Event()
        self._results: dict[str, TabletChecksumResult] = {}
        self._expected = 0
        self._responses = 0
        self.rows_summed = 0
        self.disk_bytes_summed = 0

    def add_tablet(self, tablet_id: str, table_name: str, ts_uuids: list[str]) -> None:
        with self._lock:
            result = TabletChecksumResult(
                tablet_id=tablet_id,
                table_name=table_name,
                replicas={uuid: None for uuid in ts_uuids},
            )
            self._results[tablet_id] = result
            self._expected += len(result.replicas)

    def report_progress(self, delta_rows: int, delta_bytes: int) -> None:
        with self._lock:
            self.rows_summed += delta_rows
            self.disk_bytes_summed += delta_bytes

    def report_result(
        self,
        tablet_id: str,
        ts_uuid: str,
        error: Exception | str | None,
        checksum: int,
    ) -> bool:
        """
        Record the outcome of one replica scan.

        Returns:
            False if a result was already recorded for the replica.
        """
        with self._lock:
            result = self._results[tablet_id]
            if result.replicas.get(ts_uuid) is not None:
                return False
            if error is None:
                result.replicas[ts_uuid] = ReplicaChecksum(ts_uuid, checksum=checksum)
            else:
                result.replicas[ts_uuid] = ReplicaChecksum(ts_uuid, error=str(error))
            self._responses += 1
            all_done = self._responses >= self._expected
        if error is None:
            logger.debug("Tablet %s on %s: checksum %d", tablet_id, ts_uuid, checksum)
        else:
            logger.warning("Tablet %s on %s: checksum scan failed: %s", tablet_id, ts_uuid, error)
        if all_done:
            self._loop.call_soon_threadsafe(self._done.set)
        return True

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._expected - self._responses

    @property
    def expected(self) -> int:
        with self._lock:
            return self._expected

    async def wait(self, timeout: float, progress_interval: float) -> bool:
        """
        Wait until every replica reported, logging progress periodically.

        Returns:
            True if all results arrived before the timeout.
        """
        if self.remaining <= 0:
            return True
        deadline = self._loop.time() + timeout
        while True:
            remaining_time = deadline - self._loop.time()
            if remaining_time <= 0:
                return self._done.is_set()
            try:
                await asyncio.wait_for(
                    self._done.wait(),
                    timeout=min(progress_interval, remaining_time),
                )
                return True
            except asyncio.TimeoutError:
                self.log_progress()

    def log_progress(self) -> None:
        with self._lock:
            remaining = self._expected - self._responses
            rows = self.rows_summed
            disk_bytes = self.disk_bytes_summed
        logger.info(
            "Checksum scan in progress: %d of %d replica(s) remaining "
            "(%d rows summed, %d bytes read)",
            remaining,
            self.expected,
            rows,
            disk_bytes,
        )

    def results(self) -> list[TabletChecksumResult]:
        with self._lock:
            return [
                dataclasses.replace(r, replicas=dict(r.replicas))
                for r in self._results.values()
            ]


class ReplicaChecksumCallbacks:
    """ChecksumProgressCallbacks for one replica, feeding a shared reporter."""

    def __init__(self, reporter: ChecksumResultReporter, tablet_id: str, ts_uuid: str) -> None:
        self.reporter = reporter
        self.tablet_id = tablet_id
        self.ts_uuid = ts_uuid
        self._finished = threading.Event()

    @property
    def is_finished(self) -> bool:
        return self._finished.is_set()

    def progress(self, delta_rows_summed: int, delta_disk_bytes_summed: int) -> None:
        self.reporter.report_progress(delta_rows_summed, delta_disk_bytes_summed)

    def finished(self, error: Exception | None, checksum: int) -> None:
        self._finished.set()
        if not self.reporter.report_result(self.tablet_id, self.ts_uuid, error, checksum):
            logger.warning(
                "Ignoring duplicate checksum result for tablet %s on %s",
                self.tablet_id,
                self.ts_uuid,
            )


class ChecksumScanner:
    """
    Runs checksum scans on all replicas of the tablets in scope.

    Must be used after the cluster's tables, tablets and tablet servers
    have been fetched.

    Example:
        scanner = ChecksumScanner(cluster, filters)
        report = await scanner.run(ChecksumOptions(timeout_seconds=600))
        report.raise_for_status()
    """

    def __init__(
        self,
        cluster: ClusterProtocol,
        filters: KsckFilters | None = None,
        progress_interval: float = 5.0,
    ) -> None:
        self.cluster = cluster
        self.filters = filters or KsckFilters()
        self.progress_interval = progress_interval

    def _tablets_in_scope(self) -> list[tuple[Table, Tablet]]:
        return [
            (table, tablet)
            for table in self.filters.filter_tables(self.cluster.tables)
            for tablet in self.filters.filter_tablets(table)
        ]

    def _resolve_snapshot_timestamp(self, options: ChecksumOptions) -> ChecksumOptions:
        """Pin CURRENT_TIMESTAMP to one concrete timestamp for every replica."""
        if not options.use_snapshot or options.snapshot_timestamp != CURRENT_TIMESTAMP:
            return options
        healthy = sorted(
            uuid
            for uuid, ts in self.cluster.tablet_servers.items()
            if ts.state == FetchState.FETCHED
        )
        if not healthy:
            raise ChecksumScanError(
                0, "no healthy tablet server to take a snapshot timestamp from"
            )
        ts = self.cluster.tablet_servers[healthy[0]]
        timestamp = ts.current_timestamp
        logger.info(
            "Using snapshot timestamp %d from tablet server %s (%s)",
            timestamp,
            ts.uuid,
            ts.address,
        )
        return dataclasses.replace(options, snapshot_timestamp=timestamp)

    async def run(self, options: ChecksumOptions) -> ChecksumReport:
        """
        Checksum every replica in scope and compare the results.

        Returns:
            ChecksumReport; timeouts, mismatches and replica failures are
            reported on it rather than raised.
        """
        work = self._tablets_in_scope()
        if not any(tablet.replicas for _, tablet in work):
            return ChecksumReport(
                timeout_seconds=options.timeout_seconds,
                error="no tablet replicas found matching the filters",
            )

        try:
            options = self._resolve_snapshot_timestamp(options)
        except ChecksumScanError as e:
            return ChecksumReport(timeout_seconds=options.timeout_seconds, error=e.reason)

        reporter = ChecksumResultReporter()
        for table, tablet in work:
            reporter.add_tablet(tablet.id, table.name, [r.ts_uuid for r in tablet.replicas])

        semaphores: dict[str, asyncio.Semaphore] = {}
        tasks: list[asyncio.Task] = []
        for table, tablet in work:
            for ts_uuid in dict.fromkeys(r.ts_uuid for r in tablet.replicas):
                ts = self.cluster.tablet_servers.get(ts_uuid)
                if ts is None or ts.state != FetchState.FETCHED:
                    reporter.report_result(tablet.id, ts_uuid, "tablet server is unavailable", 0)
                    continue
                semaphore = semaphores.setdefault(
                    ts.uuid, asyncio.Semaphore(options.scan_concurrency)
                )
                tasks.append(
                    asyncio.create_task(
                        self._scan_replica(ts, tablet, table.schema, options, reporter, semaphore)
                    )
                )

        logger.info(
            "Running checksum scans on %d replica(s) of %d tablet(s)",
            reporter.expected,
            len(work),
        )
        completed = await reporter.wait(options.timeout_seconds, self.progress_interval)
        if not completed:
            outstanding = [t for t in tasks if not t.done()]
            logger.warning(
                "Checksum scan timed out after %.1fs with %d scan(s) outstanding",
                options.timeout_seconds,
                reporter.remaining,
            )
            # Stop waiting locally; remote scans are not interrupted.
            for task in outstanding:
                task.cancel()

        report = ChecksumReport(
            tablets=reporter.results(),
            timed_out=not completed,
            timeout_seconds=options.timeout_seconds,
            snapshot_timestamp=options.snapshot_timestamp if options.use_snapshot else None,
            rows_summed=reporter.rows_summed,
            disk_bytes_summed=reporter.disk_bytes_summed,
        )
        for mismatch in report.mismatches:
            logger.warning(
                "Tablet %s of table '%s' has mismatched checksums: %s",
                mismatch.tablet_id,
                mismatch.table_name,
                {
                    uuid: r.checksum
                    for uuid, r in mismatch.replicas.items()
                    if r is not None and r.ok
                },
            )
        return report

    async def _scan_replica(
        self,
        ts: TabletServerProtocol,
        tablet: Tablet,
        schema: Schema,
        options: ChecksumOptions,
        reporter: ChecksumResultReporter,
        semaphore: asyncio.Semaphore,
    ) -> None:
        callbacks = ReplicaChecksumCallbacks(reporter, tablet.id, ts.uuid)
        async with semaphore:
            try:
                await ts.run_tablet_checksum_scan(tablet.id, schema, options, callbacks)
            except Exception as e:
                if callbacks.is_finished:
                    logger.warning(
                        "Checksum scan of tablet %s on %s failed after reporting: %s",
                        tablet.id,
                        ts.uuid,
                        e,
                    )
                else:
                    callbacks.finished(e, 0)
                return
        if not callbacks.is_finished:
            callbacks.finished(
                ChecksumScanError(1, "scan ended without reporting a result"), 0
            )
