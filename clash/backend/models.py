"""Domain models for clash sessions, challenges and API responses."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class Attack(str, Enum):
    SLASH = "slash"
    FIREBALL = "fireball"
    LIGHTNING = "lightning"


class Defense(str, Enum):
    BLOCK = "block"
    DODGE = "dodge"
    COUNTER = "counter"


class Side(str, Enum):
    A = "a"
    B = "b"

    @property
    def opponent(self) -> "Side":
        return Side.B if self is Side.A else Side.A


class SlotStatus(str, Enum):
    EMPTY = "empty"
    COMMITTED = "committed"
    REVEALED = "revealed"


@dataclass(frozen=True)
class Move:
    attack: Attack
    defense: Defense

    def to_dict(self) -> dict[str, str]:
        return {"attack": self.attack.value, "defense": self.defense.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Move":
        return cls(attack=Attack(data["attack"]), defense=Defense(data["defense"]))


@dataclass(frozen=True)
class Commitment:
    status: SlotStatus = SlotStatus.EMPTY
    binding: bytes | None = None
    plan: tuple[Move, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "binding": self.binding.hex() if self.binding is not None else None,
            "plan": [move.to_dict() for move in self.plan],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Commitment":
        binding = data.get("binding")
        return cls(
            status=SlotStatus(data["status"]),
            binding=bytes.fromhex(binding) if binding else None,
            plan=tuple(Move.from_dict(item) for item in data.get("plan", [])),
        )


@dataclass(frozen=True)
class TurnResult:
    turn: int
    damage_dealt_a: int
    damage_dealt_b: int
    health_a: int
    health_b: int
    defense_succeeded_a: bool
    defense_succeeded_b: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "turn": self.turn,
            "damage_dealt_a": self.damage_dealt_a,
            "damage_dealt_b": self.damage_dealt_b,
            "health_a": self.health_a,
            "health_b": self.health_b,
            "defense_succeeded_a": self.defense_succeeded_a,
            "defense_succeeded_b": self.defense_succeeded_b,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TurnResult":
        return cls(
            turn=int(data["turn"]),
            damage_dealt_a=int(data["damage_dealt_a"]),
            damage_dealt_b=int(data["damage_dealt_b"]),
            health_a=int(data["health_a"]),
            health_b=int(data["health_b"]),
            defense_succeeded_a=bool(data["defense_succeeded_a"]),
            defense_succeeded_b=bool(data["defense_succeeded_b"]),
        )


@dataclass(frozen=True)
class Outcome:
    health_a: int
    health_b: int
    winner: Side | None
    turns: tuple[TurnResult, ...]

    @property
    def is_draw(self) -> bool:
        return self.winner is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "health_a": self.health_a,
            "health_b": self.health_b,
            "winner": self.winner.value if self.winner is not None else None,
            "is_draw": self.is_draw,
            "turns": [turn.to_dict() for turn in self.turns],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Outcome":
        winner = data.get("winner")
        return cls(
            health_a=int(data["health_a"]),
            health_b=int(data["health_b"]),
            winner=Side(winner) if winner else None,
            turns=tuple(TurnResult.from_dict(item) for item in data.get("turns", [])),
        )


@dataclass(frozen=True)
class Session:
    session_id: int
    player_a: str
    player_b: str
    stake_a: int
    stake_b: int
    created_at: datetime
    slot_a: Commitment = field(default_factory=Commitment)
    slot_b: Commitment = field(default_factory=Commitment)
    outcome: Outcome | None = None
    # True once the ledger has been told the outcome.
    settled: bool = False

    def side_of(self, player: str) -> Side | None:
        if player == self.player_a:
            return Side.A
        if player == self.player_b:
            return Side.B
        return None

    def player(self, side: Side) -> str:
        return self.player_a if side is Side.A else self.player_b

    def slot(self, side: Side) -> Commitment:
        return self.slot_a if side is Side.A else self.slot_b

    def with_slot(self, side: Side, commitment: Commitment) -> "Session":
        if side is Side.A:
            return replace(self, slot_a=commitment)
        return replace(self, slot_b=commitment)

    def winner_id(self) -> str | None:
        if self.outcome is None or self.outcome.winner is None:
            return None
        return self.player(self.outcome.winner)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "player_a": self.player_a,
            "player_b": self.player_b,
            "stake_a": self.stake_a,
            "stake_b": self.stake_b,
            "created_at": self.created_at.isoformat(),
            "slot_a": self.slot_a.to_dict(),
            "slot_b": self.slot_b.to_dict(),
            "outcome": self.outcome.to_dict() if self.outcome is not None else None,
            "settled": self.settled,
            "winner_id": self.winner_id(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        outcome = data.get("outcome")
        return cls(
            session_id=int(data["session_id"]),
            player_a=data["player_a"],
            player_b=data["player_b"],
            stake_a=int(data["stake_a"]),
            stake_b=int(data["stake_b"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            slot_a=Commitment.from_dict(data["slot_a"]),
            slot_b=Commitment.from_dict(data["slot_b"]),
            outcome=Outcome.from_dict(outcome) if outcome else None,
            settled=bool(data.get("settled", False)),
        )


@dataclass(frozen=True)
class Challenge:
    challenge_id: int
    challenger: str
    challenged: str
    points_wagered: int
    created_at: datetime
    expires_at: datetime
    is_accepted: bool = False
    is_completed: bool = False
    session_id: int | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "challenge_id": self.challenge_id,
            "challenger": self.challenger,
            "challenged": self.challenged,
            "points_wagered": self.points_wagered,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "is_accepted": self.is_accepted,
            "is_completed": self.is_completed,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Challenge":
        session_id = data.get("session_id")
        return cls(
            challenge_id=int(data["challenge_id"]),
            challenger=data["challenger"],
            challenged=data["challenged"],
            points_wagered=int(data["points_wagered"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            is_accepted=bool(data.get("is_accepted", False)),
            is_completed=bool(data.get("is_completed", False)),
            session_id=int(session_id) if session_id is not None else None,
        )


@dataclass(frozen=True)
class ChallengeBuckets:
    active: list[Challenge]
    completed: list[Challenge]
    expired: list[Challenge]


@dataclass(frozen=True)
class StartAuthorization:
    """A participant's signed consent to one specific session id and stake."""

    player: str
    session_id: int
    stake: int
    grant: str

    def to_dict(self) -> dict[str, Any]:
        return {"player": self.player, "session_id": self.session_id, "stake": self.stake, "grant": self.grant}


@dataclass(frozen=True)
class RegisteredPlayer:
    player_id: str
    token: str


@dataclass(frozen=True)
class DetailedTurn:
    turn: TurnResult
    move_a: Move
    move_b: Move

    def to_dict(self) -> dict[str, Any]:
        payload = self.turn.to_dict()
        payload["damage_taken_a"] = self.turn.damage_dealt_b
        payload["damage_taken_b"] = self.turn.damage_dealt_a
        payload["move_a"] = self.move_a.to_dict()
        payload["move_b"] = self.move_b.to_dict()
        return payload


@dataclass(frozen=True)
class Playback:
    session_id: int
    player_a: str
    player_b: str
    username_a: str | None
    username_b: str | None
    outcome: Outcome
    winner_id: str | None
    turns: list[DetailedTurn]

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "player_a": self.player_a,
            "player_b": self.player_b,
            "username_a": self.username_a,
            "username_b": self.username_b,
            "final_health_a": self.outcome.health_a,
            "final_health_b": self.outcome.health_b,
            "winner_id": self.winner_id,
            "is_draw": self.outcome.is_draw,
            "turns": [turn.to_dict() for turn in self.turns],
        }
