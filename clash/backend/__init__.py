"""Backend package for the clash commit-reveal battle game."""

from .config import ClashSettings, load_settings
from .engine import resolve_battle
from .errors import ClashError, ErrorKind
from .security import generate_token, hash_token, verify_token
from .service import ClashService, create_service
from .state import build_initial_session
from .store import ClashStore, InMemoryClashStore, PostgresClashStore, create_store
from .verifier import ProofVerifierGateway

__all__ = [
    "build_initial_session",
    "ClashError",
    "ClashService",
    "ClashSettings",
    "ClashStore",
    "create_service",
    "create_store",
    "ErrorKind",
    "generate_token",
    "hash_token",
    "InMemoryClashStore",
    "load_settings",
    "PostgresClashStore",
    "ProofVerifierGateway",
    "resolve_battle",
    "verify_token",
]
