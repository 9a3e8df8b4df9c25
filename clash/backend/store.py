"""Persistence interfaces and implementations for clash data.

Sessions and challenges live in bounded-retention storage: a record past its
expiry is invisible to readers and may be overwritten. Players, usernames and
the challenge indices are kept without expiry. Every write method persists
all of its records together, so an operation is either stored whole or not
at all.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

from .models import Challenge, Session
from .state import build_challenge, utc_now

DEFAULT_RETENTION = timedelta(days=30)


class ClashStore(Protocol):
    def create_player(self, player_id: str, token_hash: str) -> None:
        """Persist a newly registered player and their token hash."""

    def get_player_token_hash(self, player_id: str) -> str | None:
        """Return the stored token hash, or None for unknown players."""

    def get_session(self, session_id: int) -> Session | None:
        """Return a live session, or None when missing or expired."""

    def insert_session(self, session: Session, challenge: Challenge | None = None) -> None:
        """Store a new session, optionally with the challenge that produced it."""

    def update_session(self, session: Session, challenge: Challenge | None = None) -> None:
        """Replace a session's state, optionally updating its linked challenge."""

    def create_challenge(
        self,
        challenger: str,
        challenged: str,
        points_wagered: int,
        now: datetime,
        ttl: timedelta,
    ) -> Challenge:
        """Allocate the next challenge id and persist the challenge plus both player indices."""

    def get_challenge(self, challenge_id: int) -> Challenge | None:
        """Return a retained challenge or None."""

    def list_player_challenges(self, player: str) -> list[Challenge]:
        """Return every retained challenge a player sent or received."""

    def get_challenge_for_session(self, session_id: int) -> Challenge | None:
        """Return the challenge linked to a session, if any."""

    def claim_challenge(self, challenge_id: int, session_id: int) -> Challenge | None:
        """Mark a retained, unaccepted challenge accepted for a session.

        Returns the updated challenge, or None when it is gone or another caller
        claimed it first. Check and write happen as one step.
        """

    def release_challenge(self, challenge_id: int) -> None:
        """Undo a claim whose game could not be started."""

    def set_username(self, player: str, username: str) -> bool:
        """Assign a username; False when another player owns it."""

    def get_username(self, player: str) -> str | None:
        """Return a player's username."""

    def get_player_by_username(self, username: str) -> str | None:
        """Return the player owning a username."""


@dataclass
class InMemoryClashStore:
    retention: timedelta = DEFAULT_RETENTION
    clock: Callable[[], datetime] = utc_now

    def __post_init__(self) -> None:
        self._players: dict[str, str] = {}
        self._sessions: dict[int, tuple[Session, datetime]] = {}
        self._challenges: dict[int, tuple[Challenge, datetime]] = {}
        self._challenge_counter = 0
        self._player_challenges: dict[str, list[int]] = {}
        self._session_challenges: dict[int, int] = {}
        self._usernames: dict[str, str] = {}
        self._players_by_username: dict[str, str] = {}
        self._claim_lock = threading.Lock()

    def create_player(self, player_id: str, token_hash: str) -> None:
        self._players[player_id] = token_hash

    def get_player_token_hash(self, player_id: str) -> str | None:
        return self._players.get(player_id)

    def get_session(self, session_id: int) -> Session | None:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        session, expires_at = entry
        if self.clock() >= expires_at:
            del self._sessions[session_id]
            return None
        return session

    def insert_session(self, session: Session, challenge: Challenge | None = None) -> None:
        self._sessions[session.session_id] = (session, self.clock() + self.retention)
        if challenge is not None:
            self._put_challenge(challenge)
            self._session_challenges[session.session_id] = challenge.challenge_id

    def update_session(self, session: Session, challenge: Challenge | None = None) -> None:
        _, expires_at = self._sessions[session.session_id]
        self._sessions[session.session_id] = (session, expires_at)
        if challenge is not None:
            self._put_challenge(challenge)

    def create_challenge(
        self,
        challenger: str,
        challenged: str,
        points_wagered: int,
        now: datetime,
        ttl: timedelta,
    ) -> Challenge:
        challenge_id = self._challenge_counter + 1
        challenge = build_challenge(
            challenge_id=challenge_id,
            challenger=challenger,
            challenged=challenged,
            points_wagered=points_wagered,
            now=now,
            ttl=ttl,
        )
        self._challenge_counter = challenge_id
        self._challenges[challenge_id] = (challenge, self.clock() + self.retention)
        self._player_challenges.setdefault(challenger, []).append(challenge_id)
        self._player_challenges.setdefault(challenged, []).append(challenge_id)
        return challenge

    def get_challenge(self, challenge_id: int) -> Challenge | None:
        entry = self._challenges.get(challenge_id)
        if entry is None:
            return None
        challenge, retained_until = entry
        if self.clock() >= retained_until:
            del self._challenges[challenge_id]
            return None
        return challenge

    def list_player_challenges(self, player: str) -> list[Challenge]:
        challenges: list[Challenge] = []
        for challenge_id in self._player_challenges.get(player, []):
            challenge = self.get_challenge(challenge_id)
            if challenge is not None:
                challenges.append(challenge)
        return challenges

    def get_challenge_for_session(self, session_id: int) -> Challenge | None:
        challenge_id = self._session_challenges.get(session_id)
        if challenge_id is None:
            return None
        return self.get_challenge(challenge_id)

    def claim_challenge(self, challenge_id: int, session_id: int) -> Challenge | None:
        with self._claim_lock:
            challenge = self.get_challenge(challenge_id)
            if challenge is None or challenge.is_accepted:
                return None
            claimed = replace(challenge, is_accepted=True, session_id=session_id)
            self._put_challenge(claimed)
            return claimed

    def release_challenge(self, challenge_id: int) -> None:
        with self._claim_lock:
            challenge = self.get_challenge(challenge_id)
            if challenge is not None:
                self._put_challenge(replace(challenge, is_accepted=False, session_id=None))

    def set_username(self, player: str, username: str) -> bool:
        owner = self._players_by_username.get(username)
        if owner is not None and owner != player:
            return False
        previous = self._usernames.get(player)
        if previous is not None:
            self._players_by_username.pop(previous, None)
        self._usernames[player] = username
        self._players_by_username[username] = player
        return True

    def get_username(self, player: str) -> str | None:
        return self._usernames.get(player)

    def get_player_by_username(self, username: str) -> str | None:
        return self._players_by_username.get(username)

    def _put_challenge(self, challenge: Challenge) -> None:
        entry = self._challenges.get(challenge.challenge_id)
        retained_until = entry[1] if entry is not None else self.clock() + self.retention
        self._challenges[challenge.challenge_id] = (challenge, retained_until)


@dataclass
class PostgresClashStore:
    database_url: str
    retention: timedelta = DEFAULT_RETENTION
    clock: Callable[[], datetime] = utc_now

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def create_player(self, player_id: str, token_hash: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO players (id, token_hash, created_at) VALUES (%s, %s, %s)",
                    (player_id, token_hash, self.clock()),
                )
            conn.commit()

    def get_player_token_hash(self, player_id: str) -> str | None:
        row = self._fetch_one("SELECT token_hash FROM players WHERE id = %s", (player_id,))
        return None if row is None else row[0]

    def get_session(self, session_id: int) -> Session | None:
        row = self._fetch_one(
            "SELECT state_json FROM sessions WHERE id = %s AND expires_at > %s",
            (session_id, self.clock()),
        )
        if row is None:
            return None
        return Session.from_dict(_load_json(row[0]))

    def insert_session(self, session: Session, challenge: Challenge | None = None) -> None:
        now = self.clock()
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO sessions (id, state_json, expires_at, updated_at)
                    VALUES (%s, %s::jsonb, %s, %s)
                    ON CONFLICT (id) DO UPDATE
                    SET state_json = EXCLUDED.state_json,
                        expires_at = EXCLUDED.expires_at,
                        updated_at = EXCLUDED.updated_at
                    """,
                    (session.session_id, json.dumps(session.to_dict()), now + self.retention, now),
                )
                if challenge is not None:
                    self._write_challenge(cur, challenge)
                    cur.execute(
                        """
                        INSERT INTO session_challenges (session_id, challenge_id)
                        VALUES (%s, %s)
                        ON CONFLICT (session_id) DO UPDATE SET challenge_id = EXCLUDED.challenge_id
                        """,
                        (session.session_id, challenge.challenge_id),
                    )
            conn.commit()

    def update_session(self, session: Session, challenge: Challenge | None = None) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE sessions SET state_json = %s::jsonb, updated_at = %s WHERE id = %s",
                    (json.dumps(session.to_dict()), self.clock(), session.session_id),
                )
                if challenge is not None:
                    self._write_challenge(cur, challenge)
            conn.commit()

    def create_challenge(
        self,
        challenger: str,
        challenged: str,
        points_wagered: int,
        now: datetime,
        ttl: timedelta,
    ) -> Challenge:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO counters (name, value) VALUES ('challenge', 1)
                    ON CONFLICT (name) DO UPDATE SET value = counters.value + 1
                    RETURNING value
                    """,
                    (),
                )
                challenge_id = int(cur.fetchone()[0])
                challenge = build_challenge(
                    challenge_id=challenge_id,
                    challenger=challenger,
                    challenged=challenged,
                    points_wagered=points_wagered,
                    now=now,
                    ttl=ttl,
                )
                cur.execute(
                    """
                    INSERT INTO challenges (id, state_json, retained_until)
                    VALUES (%s, %s::jsonb, %s)
                    """,
                    (challenge_id, json.dumps(challenge.to_dict()), self.clock() + self.retention),
                )
                cur.execute(
                    """
                    INSERT INTO player_challenges (player_id, challenge_id)
                    VALUES (%s, %s), (%s, %s)
                    """,
                    (challenger, challenge_id, challenged, challenge_id),
                )
            conn.commit()
        return challenge

    def get_challenge(self, challenge_id: int) -> Challenge | None:
        row = self._fetch_one(
            "SELECT state_json FROM challenges WHERE id = %s AND retained_until > %s",
            (challenge_id, self.clock()),
        )
        if row is None:
            return None
        return Challenge.from_dict(_load_json(row[0]))

    def list_player_challenges(self, player: str) -> list[Challenge]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT c.state_json
                    FROM player_challenges p
                    JOIN challenges c ON c.id = p.challenge_id
                    WHERE p.player_id = %s AND c.retained_until > %s
                    ORDER BY c.id
                    """,
                    (player, self.clock()),
                )
                rows = cur.fetchall()
        return [Challenge.from_dict(_load_json(row[0])) for row in rows]

    def get_challenge_for_session(self, session_id: int) -> Challenge | None:
        row = self._fetch_one(
            """
            SELECT c.state_json
            FROM session_challenges s
            JOIN challenges c ON c.id = s.challenge_id
            WHERE s.session_id = %s AND c.retained_until > %s
            """,
            (session_id, self.clock()),
        )
        if row is None:
            return None
        return Challenge.from_dict(_load_json(row[0]))

    def claim_challenge(self, challenge_id: int, session_id: int) -> Challenge | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE challenges
                    SET state_json = state_json || jsonb_build_object('is_accepted', true, 'session_id', %s::bigint)
                    WHERE id = %s
                      AND retained_until > %s
                      AND NOT (state_json->>'is_accepted')::boolean
                    RETURNING state_json
                    """,
                    (session_id, challenge_id, self.clock()),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            return None
        return Challenge.from_dict(_load_json(row[0]))

    def release_challenge(self, challenge_id: int) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE challenges
                    SET state_json = state_json || jsonb_build_object('is_accepted', false, 'session_id', NULL)
                    WHERE id = %s
                    """,
                    (challenge_id,),
                )
            conn.commit()

    def set_username(self, player: str, username: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT player_id FROM usernames WHERE username = %s", (username,))
                row = cur.fetchone()
                if row is not None and row[0] != player:
                    return False
                cur.execute("DELETE FROM usernames WHERE player_id = %s", (player,))
                cur.execute(
                    "INSERT INTO usernames (player_id, username) VALUES (%s, %s)",
                    (player, username),
                )
            conn.commit()
        return True

    def get_username(self, player: str) -> str | None:
        row = self._fetch_one("SELECT username FROM usernames WHERE player_id = %s", (player,))
        return None if row is None else row[0]

    def get_player_by_username(self, username: str) -> str | None:
        row = self._fetch_one("SELECT player_id FROM usernames WHERE username = %s", (username,))
        return None if row is None else row[0]

    def _fetch_one(self, sql: str, params: tuple) -> Any:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()

    def _write_challenge(self, cur: Any, challenge: Challenge) -> None:
        cur.execute(
            "UPDATE challenges SET state_json = %s::jsonb WHERE id = %s",
            (json.dumps(challenge.to_dict()), challenge.challenge_id),
        )


def _load_json(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else json.loads(value)


def create_store(database_url: str | None, retention: timedelta = DEFAULT_RETENTION) -> ClashStore:
    if database_url:
        return PostgresClashStore(database_url=database_url, retention=retention)
    return InMemoryClashStore(retention=retention)
