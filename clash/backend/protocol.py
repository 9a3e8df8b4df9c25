"""Commit-reveal transitions for a session's two commitment slots.

Each slot moves ``empty -> committed -> revealed`` exactly once. A commit
stores the binding value extracted from the commit proof; a reveal must
present a proof whose binding value is byte-identical, which ties the revealed
plan to the one proven at commit time. The slots are independent, but no
reveal is accepted until both players have committed.

All functions here are pure: they validate and return a new ``Session`` and
never touch storage or external services.
"""

from __future__ import annotations

from typing import Sequence

from .engine import TURNS_PER_BATTLE
from .errors import AuthorizationError, InputValidationError, ProtocolIntegrityError, StateViolationError
from .models import Commitment, Move, Session, Side, SlotStatus
from .security import bindings_equal


def require_participant(session: Session, player: str) -> Side:
    side = session.side_of(player)
    if side is None:
        raise AuthorizationError("NotPlayer", f"{player} is not a participant of game {session.session_id}")
    return side


def ensure_not_ended(session: Session) -> None:
    if session.outcome is not None:
        raise StateViolationError("GameAlreadyEnded", f"game {session.session_id} already has an outcome")


def validate_plan(plan: Sequence[Move]) -> tuple[Move, ...]:
    if len(plan) != TURNS_PER_BATTLE:
        raise InputValidationError(
            "InvalidMoveSequence",
            f"a plan needs exactly {TURNS_PER_BATTLE} moves, got {len(plan)}",
        )
    return tuple(plan)


def check_commit(session: Session, player: str) -> Side:
    """Validate that ``player`` may commit now; returns their side."""
    ensure_not_ended(session)
    side = require_participant(session, player)
    if session.slot(side).status is not SlotStatus.EMPTY:
        raise StateViolationError("AlreadyCommitted", f"{player} already committed to game {session.session_id}")
    return side


def apply_commit(session: Session, player: str, binding: bytes) -> Session:
    side = check_commit(session, player)
    opponent_binding = session.slot(side.opponent).binding
    if opponent_binding is not None and bindings_equal(opponent_binding, binding):
        raise ProtocolIntegrityError("CommitmentReplayed", "binding value already used by the opponent")
    return session.with_slot(side, Commitment(status=SlotStatus.COMMITTED, binding=binding))


def check_reveal(session: Session, player: str, plan: Sequence[Move]) -> Side:
    """Validate that ``player`` may reveal ``plan`` now; returns their side."""
    validate_plan(plan)
    ensure_not_ended(session)
    side = require_participant(session, player)
    if session.slot_a.status is SlotStatus.EMPTY or session.slot_b.status is SlotStatus.EMPTY:
        raise StateViolationError("BothPlayersNotCommitted", "both players must commit before any reveal")
    if session.slot(side).status is SlotStatus.REVEALED:
        raise StateViolationError("AlreadyRevealed", f"{player} already revealed in game {session.session_id}")
    return side


def apply_reveal(session: Session, player: str, binding: bytes, plan: Sequence[Move]) -> Session:
    side = check_reveal(session, player, plan)
    committed = session.slot(side)
    if committed.binding is None or not bindings_equal(committed.binding, binding):
        raise ProtocolIntegrityError(
            "CommitmentMismatch",
            "reveal proof does not match the commitment made at commit time",
        )
    return session.with_slot(
        side,
        Commitment(status=SlotStatus.REVEALED, binding=committed.binding, plan=validate_plan(plan)),
    )


def both_revealed(session: Session) -> bool:
    return session.slot_a.status is SlotStatus.REVEALED and session.slot_b.status is SlotStatus.REVEALED
