from __future__ import annotations

import pytest

from clash.backend.ledger import InMemoryLedgerClient
from clash.backend.models import RegisteredPlayer
from clash.backend.service import ClashService
from clash.backend.store import InMemoryClashStore
from clash.backend.verifier import ProofVerifierGateway
from fakes import FakeClock, FakeVerifier, grant_for


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def ledger() -> InMemoryLedgerClient:
    return InMemoryLedgerClient()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryClashStore:
    return InMemoryClashStore(clock=clock)


@pytest.fixture
def service(
    store: InMemoryClashStore,
    verifier: FakeVerifier,
    ledger: InMemoryLedgerClient,
    clock: FakeClock,
) -> ClashService:
    return ClashService(
        store=store,
        gateway=ProofVerifierGateway(verifier=verifier),
        ledger=ledger,
        server_salt="test-salt",
        commit_verification_key="commit-vk",
        reveal_verification_key="reveal-vk",
        clock=clock,
    )


@pytest.fixture
def alice(service: ClashService) -> RegisteredPlayer:
    return service.register_player()


@pytest.fixture
def bob(service: ClashService) -> RegisteredPlayer:
    return service.register_player()


@pytest.fixture
def started_game(service: ClashService, alice: RegisteredPlayer, bob: RegisteredPlayer) -> int:
    session_id = 42
    service.start_game(
        session_id=session_id,
        player_a=alice.player_id,
        player_b=bob.player_id,
        stake_a=100,
        stake_b=50,
        grant_a=grant_for(service, alice, session_id, 100),
        grant_b=grant_for(service, bob, session_id, 50),
    )
    return session_id
