"""
Consensus state model.

A ConsensusState is one node's reported view of a tablet's replication
configuration. Masters report a coarse view built from their catalog;
tablet servers report the committed or pending Raft configuration of
their own replica.
"""

from dataclasses import dataclass, field
from enum import Enum


class ConsensusConfigType(Enum):
    """Possible types of consensus configs."""

    # A config reported by the master.
    MASTER = "master"
    # A config that has been committed.
    COMMITTED = "committed"
    # A config that has not yet been committed.
    PENDING = "pending"


@dataclass(frozen=True)
class ConsensusState:
    """
    A reported view of a tablet's replication configuration.

    Attributes:
        config_type: Who reported the config and whether it is committed.
        term: Raft term, if known.
        opid_index: Index of the config change operation, if known.
        leader_uuid: UUID of the leader, None if there is no known leader.
        voter_uuids: UUIDs of voting members.
        non_voter_uuids: UUIDs of non-voting members. Disjoint from voters.
    """

    config_type: ConsensusConfigType
    term: int | None = None
    opid_index: int | None = None
    leader_uuid: str | None = None
    voter_uuids: frozenset[str] = field(default_factory=frozenset)
    non_voter_uuids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # Accept any iterable of uuids, store frozensets.
        object.__setattr__(self, "voter_uuids", frozenset(self.voter_uuids))
        object.__setattr__(self, "non_voter_uuids", frozenset(self.non_voter_uuids))
        overlap = self.voter_uuids & self.non_voter_uuids
        if overlap:
            raise ValueError(
                f"uuids cannot be both voter and non-voter: {sorted(overlap)}"
            )

    def matches(self, other: "ConsensusState") -> bool:
        """
        Check whether two consensus states agree.

        Two states match if they have the same leader and the same sets of
        voters and non-voters, and one of the following holds:
        - at least one of them is of type MASTER
        - they are configs of the same type with the same term
        """
        same_leader_and_peers = (
            self.leader_uuid == other.leader_uuid
            and self.voter_uuids == other.voter_uuids
            and self.non_voter_uuids == other.non_voter_uuids
        )
        if ConsensusConfigType.MASTER in (self.config_type, other.config_type):
            return same_leader_and_peers
        return (
            same_leader_and_peers
            and self.config_type == other.config_type
            and self.term == other.term
        )

    def describe(self) -> str:
        """One-line description used in log messages and reports."""
        term = "?" if self.term is None else str(self.term)
        leader = self.leader_uuid or "<none>"
        voters = ",".join(sorted(self.voter_uuids)) or "-"
        non_voters = ",".join(sorted(self.non_voter_uuids)) or "-"
        return (
            f"{self.config_type.value} term={term} leader={leader} "
            f"voters=[{voters}] non_voters=[{non_voters}]"
        )
