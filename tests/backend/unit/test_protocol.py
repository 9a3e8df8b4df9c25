from dataclasses import replace

import pytest

from clash.backend import protocol
from clash.backend.errors import (
    AuthorizationError,
    InputValidationError,
    ProtocolIntegrityError,
    StateViolationError,
)
from clash.backend.models import Outcome, SlotStatus
from clash.backend.state import build_initial_session
from fakes import START, binding_for, plan

PLAN = plan(("slash", "dodge"), ("fireball", "block"), ("lightning", "counter"))


def _session():
    return build_initial_session(session_id=1, player_a="alice", player_b="bob", stake_a=10, stake_b=10, now=START)


def _committed_session():
    session = protocol.apply_commit(_session(), "alice", binding_for("alice"))
    return protocol.apply_commit(session, "bob", binding_for("bob"))


def test_commit_moves_slot_to_committed_and_stores_binding() -> None:
    session = protocol.apply_commit(_session(), "alice", binding_for("alice"))

    assert session.slot_a.status is SlotStatus.COMMITTED
    assert session.slot_a.binding == binding_for("alice")
    assert session.slot_b.status is SlotStatus.EMPTY


def test_commit_rejects_outsider_and_second_commit() -> None:
    session = protocol.apply_commit(_session(), "alice", binding_for("alice"))

    with pytest.raises(AuthorizationError) as not_player:
        protocol.apply_commit(session, "mallory", binding_for("mallory"))
    with pytest.raises(StateViolationError) as again:
        protocol.apply_commit(session, "alice", binding_for("alice-2"))

    assert not_player.value.code == "NotPlayer"
    assert again.value.code == "AlreadyCommitted"


def test_commit_rejects_copy_of_opponent_binding() -> None:
    session = protocol.apply_commit(_session(), "alice", binding_for("alice"))

    with pytest.raises(ProtocolIntegrityError) as exc:
        protocol.apply_commit(session, "bob", binding_for("alice"))

    assert exc.value.code == "CommitmentReplayed"


def test_reveal_requires_both_commitments() -> None:
    session = protocol.apply_commit(_session(), "alice", binding_for("alice"))

    with pytest.raises(StateViolationError) as exc:
        protocol.apply_reveal(session, "alice", binding_for("alice"), PLAN)

    assert exc.value.code == "BothPlayersNotCommitted"


def test_reveal_rejects_plans_of_wrong_length() -> None:
    with pytest.raises(InputValidationError) as exc:
        protocol.apply_reveal(_committed_session(), "alice", binding_for("alice"), PLAN[:2])

    assert exc.value.code == "InvalidMoveSequence"


def test_reveal_with_different_binding_is_a_commitment_mismatch() -> None:
    with pytest.raises(ProtocolIntegrityError) as exc:
        protocol.apply_reveal(_committed_session(), "alice", binding_for("something-else"), PLAN)

    assert exc.value.code == "CommitmentMismatch"


def test_reveal_stores_plan_once() -> None:
    session = protocol.apply_reveal(_committed_session(), "bob", binding_for("bob"), PLAN)

    assert session.slot_b.status is SlotStatus.REVEALED
    assert session.slot_b.plan == tuple(PLAN)
    assert session.slot_b.binding == binding_for("bob")
    assert protocol.both_revealed(session) is False

    with pytest.raises(StateViolationError) as exc:
        protocol.apply_reveal(session, "bob", binding_for("bob"), PLAN)
    assert exc.value.code == "AlreadyRevealed"


def test_revealed_slot_cannot_be_recommitted() -> None:
    session = protocol.apply_reveal(_committed_session(), "alice", binding_for("alice"), PLAN)

    with pytest.raises(StateViolationError) as exc:
        protocol.check_commit(session, "alice")

    assert exc.value.code == "AlreadyCommitted"


def test_transitions_are_rejected_once_outcome_exists() -> None:
    ended = replace(_committed_session(), outcome=Outcome(health_a=1, health_b=1, winner=None, turns=()))

    with pytest.raises(StateViolationError) as commit_exc:
        protocol.check_commit(ended, "alice")
    with pytest.raises(StateViolationError) as reveal_exc:
        protocol.check_reveal(ended, "alice", PLAN)

    assert commit_exc.value.code == "GameAlreadyEnded"
    assert reveal_exc.value.code == "GameAlreadyEnded"
