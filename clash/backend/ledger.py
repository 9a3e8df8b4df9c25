"""Client boundary for the points ledger that escrows and settles wagers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib import error, request

from .config import ClashSettings
from .errors import ExternalServiceError

logger = logging.getLogger(__name__)


class LedgerClient(Protocol):
    def start_game(
        self,
        originator: str,
        session_id: int,
        player_a: str,
        player_b: str,
        stake_a: int,
        stake_b: int,
    ) -> None:
        """Lock both stakes for a new session."""

    def end_game(self, session_id: int, player_a_won: bool) -> None:
        """Settle a session. A draw is reported as ``player_a_won=False``."""


@dataclass
class InMemoryLedgerClient:
    started: list[dict[str, Any]] = field(default_factory=list)
    ended: list[dict[str, Any]] = field(default_factory=list)

    def start_game(
        self,
        originator: str,
        session_id: int,
        player_a: str,
        player_b: str,
        stake_a: int,
        stake_b: int,
    ) -> None:
        self.started.append(
            {
                "originator": originator,
                "session_id": session_id,
                "player_a": player_a,
                "player_b": player_b,
                "stake_a": stake_a,
                "stake_b": stake_b,
            }
        )

    def end_game(self, session_id: int, player_a_won: bool) -> None:
        self.ended.append({"session_id": session_id, "player_a_won": player_a_won})


@dataclass
class HttpLedgerClient:
    base_url: str
    timeout_s: float = 10.0

    def start_game(
        self,
        originator: str,
        session_id: int,
        player_a: str,
        player_b: str,
        stake_a: int,
        stake_b: int,
    ) -> None:
        self._post(
            "/games/start",
            {
                "originator": originator,
                "session_id": session_id,
                "player_a": player_a,
                "player_b": player_b,
                "stake_a": stake_a,
                "stake_b": stake_b,
            },
        )

    def end_game(self, session_id: int, player_a_won: bool) -> None:
        self._post("/games/end", {"session_id": session_id, "player_a_won": player_a_won})

    def _post(self, path: str, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        req = request.Request(url=self.base_url.rstrip("/") + path, data=data, method="POST")
        req.add_header("Content-Type", "application/json")
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                response.read()
        except (error.URLError, OSError) as exc:
            logger.warning("ledger call %s failed: %s", path, exc)
            raise ExternalServiceError("LedgerUnavailable", f"ledger call {path} failed") from exc


def create_ledger(settings: ClashSettings) -> LedgerClient:
    if settings.ledger_url:
        return HttpLedgerClient(base_url=settings.ledger_url)
    return InMemoryLedgerClient()
