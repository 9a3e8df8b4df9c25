"""Typed failures reported by clash operations."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    AUTHORIZATION = "authorization"
    STATE_VIOLATION = "state_violation"
    PROTOCOL_INTEGRITY = "protocol_integrity"
    INPUT_VALIDATION = "input_validation"
    EXTERNAL = "external"


class ClashError(Exception):
    """Base class for every expected, caller-visible failure.

    ``code`` is a stable machine-readable name (``GameNotFound``,
    ``CommitmentMismatch``...) and ``kind`` groups codes for transport mapping.
    """

    kind: ErrorKind = ErrorKind.STATE_VIOLATION

    def __init__(self, code: str, message: str | None = None) -> None:
        self.code = code
        self.message = message or code
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(ClashError):
    kind = ErrorKind.NOT_FOUND


class AuthorizationError(ClashError):
    kind = ErrorKind.AUTHORIZATION


class StateViolationError(ClashError):
    kind = ErrorKind.STATE_VIOLATION


class ProtocolIntegrityError(ClashError):
    kind = ErrorKind.PROTOCOL_INTEGRITY


class VerificationFailure(ProtocolIntegrityError):
    """Raised by the proof gateway: rejected proof, failed call or malformed inputs."""


class InputValidationError(ClashError):
    kind = ErrorKind.INPUT_VALIDATION


class ExternalServiceError(ClashError):
    kind = ErrorKind.EXTERNAL
