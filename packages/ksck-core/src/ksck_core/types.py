"""
Result types produced by the tablet and table checks.

These are internal dataclasses derived on each run, never stored.
"""

from dataclasses import dataclass, field
from enum import Enum

from ksck_protocols import ConsensusState, TabletReplica, TabletStatus


class CheckResult(Enum):
    """Health verdict for a tablet (and, summarized, for a table)."""

    # The tablet is healthy.
    HEALTHY = "HEALTHY"
    # The tablet has on-going tablet copies.
    RECOVERING = "RECOVERING"
    # The tablet has fewer replicas than its table's replication factor and
    # has no on-going tablet copies.
    UNDER_REPLICATED = "UNDER_REPLICATED"
    # The tablet is missing a majority of its replicas and is unavailable
    # for writes. If a majority cannot be brought back online, the tablet
    # requires manual intervention to recover.
    UNAVAILABLE = "UNAVAILABLE"
    # There was a discrepancy among the replicas' consensus configs and the
    # master's.
    CONSENSUS_MISMATCH = "CONSENSUS_MISMATCH"


_CHECK_RESULT_SCORES = {
    CheckResult.HEALTHY: 0,
    CheckResult.RECOVERING: 1,
    CheckResult.UNDER_REPLICATED: 2,
    CheckResult.CONSENSUS_MISMATCH: 3,
    CheckResult.UNAVAILABLE: 4,
}


def check_result_score(result: CheckResult) -> int:
    """Return the unhealthiness level of a check result. Higher is worse."""
    return _CHECK_RESULT_SCORES[result]


@dataclass
class TableSummary:
    """
    Summarizes the result of verifying the tablets of one table.

    fetch_error is set when the table's tablets could not be listed; the
    table then counts as UNAVAILABLE whatever its last known tablets say.
    """

    name: str
    fetch_error: str | None = None
    healthy_tablets: int = 0
    recovering_tablets: int = 0
    underreplicated_tablets: int = 0
    consensus_mismatch_tablets: int = 0
    unavailable_tablets: int = 0
    # Per-tablet detail, populated by TabletVerifier.verify_table().
    tablets: list["TabletVerification"] = field(default_factory=list, repr=False)

    @property
    def total_tablets(self) -> int:
        return (
            self.healthy_tablets
            + self.recovering_tablets
            + self.underreplicated_tablets
            + self.consensus_mismatch_tablets
            + self.unavailable_tablets
        )

    @property
    def unhealthy_tablets(self) -> int:
        return self.total_tablets - self.healthy_tablets

    def count(self, result: CheckResult) -> int:
        return {
            CheckResult.HEALTHY: self.healthy_tablets,
            CheckResult.RECOVERING: self.recovering_tablets,
            CheckResult.UNDER_REPLICATED: self.underreplicated_tablets,
            CheckResult.CONSENSUS_MISMATCH: self.consensus_mismatch_tablets,
            CheckResult.UNAVAILABLE: self.unavailable_tablets,
        }[result]

    def record(self, result: CheckResult) -> None:
        if result == CheckResult.HEALTHY:
            self.healthy_tablets += 1
        elif result == CheckResult.RECOVERING:
            self.recovering_tablets += 1
        elif result == CheckResult.UNDER_REPLICATED:
            self.underreplicated_tablets += 1
        elif result == CheckResult.CONSENSUS_MISMATCH:
            self.consensus_mismatch_tablets += 1
        else:
            self.unavailable_tablets += 1

    def table_status(self) -> CheckResult:
        """
        Summarize the table's status with a tablet CheckResult.

        A table is only as healthy as its least healthy tablet, regardless
        of how many tablets are in each state.
        """
        if self.fetch_error is not None:
            return CheckResult.UNAVAILABLE
        present = [r for r in CheckResult if self.count(r) > 0]
        return max(present, key=check_result_score, default=CheckResult.HEALTHY)


@dataclass
class ReplicaInfo:
    """
    Facts gathered about one replica while verifying a tablet.

    Attributes:
        replica: The replica as reported by the master.
        ts_address: Address of the hosting tablet server, None if unknown.
        reachable: Whether the hosting tablet server was fetched.
        status: The replica's status on its tablet server, if reported.
        consensus_state: The replica's own consensus state, if reported.
    """

    replica: TabletReplica
    ts_address: str | None = None
    reachable: bool = False
    status: TabletStatus | None = None
    consensus_state: ConsensusState | None = None


@dataclass
class TabletVerification:
    """
    Outcome of verifying one tablet.

    Attributes:
        tablet_id: The verified tablet.
        table_name: Owning table.
        result: The classification.
        replicas: Per-replica facts.
        master_cstate: The master's view, if available.
        conflicts: Pairs of reporters whose consensus states do not match.
            "master" stands for the master's view.
        messages: Human-readable explanations of the classification.
    """

    tablet_id: str
    table_name: str
    result: CheckResult
    replicas: list[ReplicaInfo] = field(default_factory=list)
    master_cstate: ConsensusState | None = None
    conflicts: list[tuple[str, str]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)
