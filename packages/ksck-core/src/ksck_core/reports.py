"""
Report objects returned by the ksck checks.

Checks never raise for the problems they find. They return a report that
the reporting layer renders, and callers that want an exception call
raise_for_status(), as with httpx responses.
"""

from dataclasses import dataclass, field

from ksck_core.checksum import ChecksumReport
from ksck_core.exceptions import (
    InconsistentTablesError,
    MasterConsensusError,
    UnhealthyServersError,
)
from ksck_core.health import ServerHealth, ServerHealthSummary, worst_server_health
from ksck_core.types import CheckResult, TableSummary


@dataclass
class ServerHealthReport:
    """
    Health of all servers of one type.

    Attributes:
        server_type: "master" or "tablet server"
        summaries: One summary per server, sorted by uuid
    """

    server_type: str
    summaries: list[ServerHealthSummary] = field(default_factory=list)

    @property
    def worst_health(self) -> ServerHealth:
        return worst_server_health([s.health for s in self.summaries])

    @property
    def unhealthy(self) -> list[ServerHealthSummary]:
        return [s for s in self.summaries if s.health != ServerHealth.HEALTHY]

    @property
    def ok(self) -> bool:
        return not self.unhealthy

    def raise_for_status(self) -> None:
        if not self.ok:
            raise UnhealthyServersError(
                self.server_type, len(self.unhealthy), len(self.summaries)
            )


@dataclass
class MasterConsensusReport:
    """
    Agreement of the masters on their own consensus configuration.

    Attributes:
        cstates: Master uuid to a description of its consensus state, None
            for masters that did not report one
        missing: Masters without a consensus state
        conflicts: Pairs of masters whose states do not match
    """

    cstates: dict[str, str | None] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    conflicts: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing and not self.conflicts

    def raise_for_status(self) -> None:
        if not self.ok:
            raise MasterConsensusError(self.missing, self.conflicts)


@dataclass
class TablesConsistencyReport:
    """Consistency of every table in scope."""

    table_summaries: list[TableSummary] = field(default_factory=list)

    @property
    def bad_tables(self) -> list[TableSummary]:
        return [
            t for t in self.table_summaries
            if t.table_status() != CheckResult.HEALTHY
        ]

    @property
    def total_tablets(self) -> int:
        return sum(t.total_tablets for t in self.table_summaries)

    @property
    def unhealthy_tablets(self) -> int:
        return sum(t.unhealthy_tablets for t in self.table_summaries)

    @property
    def ok(self) -> bool:
        return not self.bad_tables

    def raise_for_status(self) -> None:
        if not self.ok:
            raise InconsistentTablesError(
                [t.name for t in self.bad_tables], self.unhealthy_tablets
            )


@dataclass
class TableVerification:
    """
    Result of verifying a table with retries.

    Attributes:
        summary: The last computed summary
        attempts: Number of verification passes made
        timed_out: Whether the timeout elapsed before a terminal status
    """

    summary: TableSummary
    attempts: int = 1
    timed_out: bool = False

    @property
    def status(self) -> CheckResult:
        return self.summary.table_status()


@dataclass
class KsckResults:
    """
    Everything gathered by one full ksck run.

    Sections are None when the corresponding check did not run.
    """

    master_health: ServerHealthReport | None = None
    master_consensus: MasterConsensusReport | None = None
    tablet_server_health: ServerHealthReport | None = None
    tables: TablesConsistencyReport | None = None
    checksum: ChecksumReport | None = None

    def _reports(self) -> list:
        return [
            r
            for r in (
                self.master_health,
                self.master_consensus,
                self.tablet_server_health,
                self.tables,
                self.checksum,
            )
            if r is not None
        ]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self._reports())

    def raise_for_status(self) -> None:
        """Raise the error of the first failed check, in run order."""
        for report in self._reports():
            report.raise_for_status()
