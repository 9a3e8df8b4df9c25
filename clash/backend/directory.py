"""Username rules for the player directory."""

from __future__ import annotations

import re

from .errors import InputValidationError

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
RESERVED_USERNAMES = frozenset({"admin", "clash", "system", "root", "null"})

_USERNAME_PATTERN = re.compile(r"[a-z0-9_]+")


def normalize_username(raw: str) -> str:
    """Trim and lower-case a username, then validate it."""
    username = raw.strip().lower()
    if len(username) < USERNAME_MIN_LENGTH:
        raise InputValidationError("UsernameTooShort", f"username needs at least {USERNAME_MIN_LENGTH} characters")
    if len(username) > USERNAME_MAX_LENGTH:
        raise InputValidationError("UsernameTooLong", f"username allows at most {USERNAME_MAX_LENGTH} characters")
    if not _USERNAME_PATTERN.fullmatch(username):
        raise InputValidationError("InvalidUsernameFormat", "username may only contain a-z, 0-9 and _")
    if username in RESERVED_USERNAMES:
        raise InputValidationError("UsernameReserved", f"username {username!r} is reserved")
    return username
