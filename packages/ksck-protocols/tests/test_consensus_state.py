"""
Tests for consensus state matching.

These tests verify ConsensusState.matches():
- Is symmetric
- Ignores term and committed/pending when one side is a master view
- Requires the same config type and term between replica views
- Always requires the same leader, voters and non-voters
"""

import pytest

from ksck_protocols import ConsensusConfigType, ConsensusState


def cstate(
    config_type=ConsensusConfigType.COMMITTED,
    term=1,
    leader="ts-1",
    voters=("ts-1", "ts-2", "ts-3"),
    non_voters=(),
) -> ConsensusState:
    return ConsensusState(
        config_type=config_type,
        term=term,
        leader_uuid=leader,
        voter_uuids=frozenset(voters),
        non_voter_uuids=frozenset(non_voters),
    )


# =============================================================================
# Construction
# =============================================================================


class TestConsensusStateConstruction:
    """Tests for ConsensusState validation."""

    def test_iterables_are_stored_as_frozensets(self):
        """Voter and non-voter collections are normalized to frozensets."""
        state = ConsensusState(
            config_type=ConsensusConfigType.MASTER,
            voter_uuids=["a", "b"],
            non_voter_uuids={"c"},
        )

        assert state.voter_uuids == frozenset({"a", "b"})
        assert state.non_voter_uuids == frozenset({"c"})

    def test_voters_and_non_voters_must_be_disjoint(self):
        """A uuid cannot be both a voter and a non-voter."""
        with pytest.raises(ValueError, match="both voter and non-voter"):
            cstate(voters=("ts-1", "ts-2"), non_voters=("ts-2",))

    def test_is_hashable_and_comparable(self):
        """Frozen states compare by value."""
        assert cstate() == cstate()
        assert len({cstate(), cstate()}) == 1


# =============================================================================
# Matching
# =============================================================================


class TestConsensusStateMatches:
    """Tests for ConsensusState.matches()."""

    def test_identical_committed_states_match(self):
        assert cstate().matches(cstate())

    def test_match_is_symmetric(self):
        """a.matches(b) == b.matches(a) for every pair."""
        states = [
            cstate(),
            cstate(term=2),
            cstate(config_type=ConsensusConfigType.PENDING),
            cstate(config_type=ConsensusConfigType.MASTER, term=None),
            cstate(leader="ts-2"),
            cstate(non_voters=("ts-4",)),
        ]
        for a in states:
            for b in states:
                assert a.matches(b) == b.matches(a)

    def test_different_terms_do_not_match(self):
        assert not cstate(term=1).matches(cstate(term=2))

    def test_committed_and_pending_do_not_match(self):
        pending = cstate(config_type=ConsensusConfigType.PENDING)
        assert not cstate().matches(pending)

    def test_master_view_ignores_term_and_type(self):
        """A master view matches any replica view with the same membership."""
        master = cstate(config_type=ConsensusConfigType.MASTER, term=None)

        assert master.matches(cstate(term=7))
        assert master.matches(cstate(config_type=ConsensusConfigType.PENDING, term=9))

    def test_master_views_match_each_other(self):
        a = cstate(config_type=ConsensusConfigType.MASTER, term=1)
        b = cstate(config_type=ConsensusConfigType.MASTER, term=5)
        assert a.matches(b)

    def test_different_leader_never_matches(self):
        master = cstate(config_type=ConsensusConfigType.MASTER)
        assert not master.matches(cstate(leader="ts-2"))
        assert not cstate().matches(cstate(leader="ts-2"))

    def test_no_leader_differs_from_a_leader(self):
        assert not cstate(leader=None).matches(cstate())
        assert cstate(leader=None).matches(cstate(leader=None))

    def test_different_voters_never_match(self):
        master = cstate(config_type=ConsensusConfigType.MASTER)
        other = cstate(voters=("ts-1", "ts-2", "ts-4"))
        assert not master.matches(other)

    def test_different_non_voters_never_match(self):
        assert not cstate().matches(cstate(non_voters=("ts-4",)))


class TestConsensusStateDescribe:
    """Tests for ConsensusState.describe()."""

    def test_describe_lists_sorted_members(self):
        text = cstate(voters=("ts-3", "ts-1"), non_voters=("ts-9",)).describe()

        assert text == "committed term=1 leader=ts-1 voters=[ts-1,ts-3] non_voters=[ts-9]"

    def test_describe_unknown_term_and_leader(self):
        text = ConsensusState(config_type=ConsensusConfigType.MASTER).describe()

        assert text == "master term=? leader=<none> voters=[-] non_voters=[-]"
