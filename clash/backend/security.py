"""Security helpers for player credentials and authorization checks."""

from __future__ import annotations

import hashlib
import hmac
import secrets

TOKEN_BYTES = 24


def generate_token() -> str:
    """Generate a URL-safe bearer token for a newly registered player."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str, server_salt: str) -> str:
    """Create deterministic token hash via sha256(token + server_salt)."""
    payload = f"{token}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_token(raw_token: str, expected_hash: str | None, server_salt: str) -> bool:
    """Compare raw token against a stored hash; a missing hash never matches."""
    if expected_hash is None:
        return False
    return hmac.compare_digest(hash_token(raw_token, server_salt), expected_hash)


def sign_start_grant(token_hash: str, server_salt: str, player: str, session_id: int, stake: int) -> str:
    """HMAC over player, session id and stake, keyed by the player's stored token hash.

    Only the server holds the key, so a grant can only be minted through an
    authenticated request and is valid for exactly one session and stake.
    """
    key = f"{token_hash}{server_salt}".encode("utf-8")
    message = f"{player}:{session_id}:{stake}".encode("utf-8")
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def verify_start_grant(
    grant: str,
    token_hash: str | None,
    server_salt: str,
    player: str,
    session_id: int,
    stake: int,
) -> bool:
    if token_hash is None:
        return False
    expected = sign_start_grant(token_hash, server_salt, player, session_id, stake)
    return hmac.compare_digest(expected.encode("utf-8"), grant.encode("utf-8"))


def bindings_equal(expected: bytes, actual: bytes) -> bool:
    return hmac.compare_digest(expected, actual)
