"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_VERIFIER_URL = "http://127.0.0.1:4000/verify"


@dataclass(frozen=True)
class ClashSettings:
    server_salt: str
    database_url: str | None
    host: str
    port: int
    verifier_url: str
    ledger_url: str | None
    commit_verification_key: str | None
    reveal_verification_key: str | None
    game_id: str
    session_retention_seconds: int
    challenge_ttl_seconds: int
    log_level: str


def load_settings() -> ClashSettings:
    port_raw = os.getenv("CLASH_PORT", "8000")
    return ClashSettings(
        server_salt=os.getenv("CLASH_SERVER_SALT", "dev-salt"),
        database_url=os.getenv("CLASH_DATABASE_URL"),
        host=os.getenv("CLASH_HOST", "127.0.0.1"),
        port=int(port_raw),
        verifier_url=os.getenv("CLASH_VERIFIER_URL", DEFAULT_VERIFIER_URL),
        ledger_url=os.getenv("CLASH_LEDGER_URL"),
        commit_verification_key=os.getenv("CLASH_COMMIT_VK"),
        reveal_verification_key=os.getenv("CLASH_REVEAL_VK"),
        game_id=os.getenv("CLASH_GAME_ID", "clash"),
        session_retention_seconds=int(os.getenv("CLASH_SESSION_RETENTION_SECONDS", "2592000")),
        challenge_ttl_seconds=int(os.getenv("CLASH_CHALLENGE_TTL_SECONDS", "86400")),
        log_level=os.getenv("CLASH_LOG_LEVEL", "INFO").upper(),
    )


def require_setting(value: str | None, env_name: str) -> str:
    """Return a configured value or fail loudly; missing values are operator errors."""
    if not value:
        raise RuntimeError(f"{env_name} is required")
    return value
