"""State builders for sessions and challenges."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from .models import Challenge, ChallengeBuckets, Commitment, Session


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_initial_session(
    session_id: int,
    player_a: str,
    player_b: str,
    stake_a: int,
    stake_b: int,
    now: datetime | None = None,
) -> Session:
    """Return a fresh session: both commitment slots empty and no outcome."""
    return Session(
        session_id=session_id,
        player_a=player_a,
        player_b=player_b,
        stake_a=stake_a,
        stake_b=stake_b,
        created_at=now or utc_now(),
        slot_a=Commitment(),
        slot_b=Commitment(),
        outcome=None,
    )


def build_challenge(
    challenge_id: int,
    challenger: str,
    challenged: str,
    points_wagered: int,
    now: datetime,
    ttl: timedelta,
) -> Challenge:
    return Challenge(
        challenge_id=challenge_id,
        challenger=challenger,
        challenged=challenged,
        points_wagered=points_wagered,
        created_at=now,
        expires_at=now + ttl,
    )


def partition_challenges(challenges: Iterable[Challenge], now: datetime) -> ChallengeBuckets:
    """Split challenges into active, completed and expired lists, each ordered by id."""
    active: list[Challenge] = []
    completed: list[Challenge] = []
    expired: list[Challenge] = []
    for challenge in sorted(challenges, key=lambda item: item.challenge_id):
        if challenge.is_completed:
            completed.append(challenge)
        elif challenge.is_expired(now):
            expired.append(challenge)
        else:
            active.append(challenge)
    return ChallengeBuckets(active=active, completed=completed, expired=expired)
