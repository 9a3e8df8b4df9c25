"""Session and challenge lifecycle on top of the store, verifier and ledger.

Every operation validates, performs its external calls (proof verification,
ledger notification) and only then writes to the store. A failure at any step
leaves stored state untouched. Resolution is the exception: the outcome is
stored first and the session is marked settled once the ledger has been told,
so a failed settlement is retried by the next resolve and never repeated after
it succeeds.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Sequence

from . import engine, protocol
from .config import ClashSettings, require_setting
from .directory import normalize_username
from .errors import (
    AuthorizationError,
    InputValidationError,
    NotFoundError,
    ProtocolIntegrityError,
    StateViolationError,
    VerificationFailure,
)
from .ledger import LedgerClient, create_ledger
from .models import (
    Challenge,
    ChallengeBuckets,
    DetailedTurn,
    Move,
    Playback,
    RegisteredPlayer,
    Session,
    Side,
    StartAuthorization,
)
from .security import generate_token, hash_token, sign_start_grant, verify_start_grant, verify_token
from .state import build_initial_session, partition_challenges, utc_now
from .store import ClashStore, create_store
from .verifier import ProofVerifierGateway, create_verifier

logger = logging.getLogger(__name__)

# Session ids are unsigned 32-bit values on the ledger.
MAX_SESSION_ID = 2**32 - 1


@dataclass
class ClashService:
    store: ClashStore
    gateway: ProofVerifierGateway
    ledger: LedgerClient
    server_salt: str = "dev-salt"
    game_id: str = "clash"
    commit_verification_key: str | None = None
    reveal_verification_key: str | None = None
    challenge_ttl: timedelta = timedelta(hours=24)
    clock: Callable[[], datetime] = utc_now

    # Players and usernames

    def register_player(self) -> RegisteredPlayer:
        player_id = str(uuid.uuid4())
        token = generate_token()
        self.store.create_player(player_id, hash_token(token, self.server_salt))
        logger.info("registered player %s", player_id)
        return RegisteredPlayer(player_id=player_id, token=token)

    def authenticate(self, player: str, token: str) -> None:
        if not verify_token(token, self.store.get_player_token_hash(player), self.server_salt):
            raise AuthorizationError("InvalidCredentials", "player id or token is invalid")

    def set_username(self, player: str, token: str, username: str) -> str:
        self.authenticate(player, token)
        normalized = normalize_username(username)
        if not self.store.set_username(player, normalized):
            raise InputValidationError("UsernameAlreadyTaken", f"username {normalized!r} is taken")
        return normalized

    def get_username(self, player: str) -> str | None:
        return self.store.get_username(player)

    def get_player_by_username(self, username: str) -> str | None:
        return self.store.get_player_by_username(username.strip().lower())

    # Sessions

    def authorize_start(self, player: str, token: str, session_id: int, stake: int) -> StartAuthorization:
        """Sign a player's consent to join ``session_id`` with ``stake``.

        The returned grant is what the player hands to whoever submits
        ``start_game``; the bearer token itself never leaves the player.
        """
        self.authenticate(player, token)
        _require_session_id(session_id)
        _require_stake(stake)
        grant = sign_start_grant(self.store.get_player_token_hash(player), self.server_salt, player, session_id, stake)
        return StartAuthorization(player=player, session_id=session_id, stake=stake, grant=grant)

    def start_game(
        self,
        session_id: int,
        player_a: str,
        player_b: str,
        stake_a: int,
        stake_b: int,
        grant_a: str,
        grant_b: str,
    ) -> Session:
        if player_a == player_b:
            raise ValueError("Cannot play against yourself")
        self._check_start_grant(grant_a, player_a, session_id, stake_a)
        self._check_start_grant(grant_b, player_b, session_id, stake_b)
        return self._open_session(session_id, player_a, player_b, stake_a, stake_b)

    def get_game(self, session_id: int) -> Session:
        return self._require_session(session_id)

    def commit_moves(self, session_id: int, player: str, token: str, public_inputs: bytes, proof: bytes) -> bytes:
        self.authenticate(player, token)
        session = self._require_session(session_id)
        protocol.check_commit(session, player)

        key = require_setting(self.commit_verification_key, "CLASH_COMMIT_VK")
        binding = self._verify(key, public_inputs, proof, session_id, player)

        self.store.update_session(protocol.apply_commit(session, player, binding))
        logger.info("game %s: %s committed", session_id, player)
        return binding

    def reveal_moves(
        self,
        session_id: int,
        player: str,
        token: str,
        public_inputs: bytes,
        proof: bytes,
        plan: Sequence[Move],
    ) -> Session:
        self.authenticate(player, token)
        protocol.validate_plan(plan)
        session = self._require_session(session_id)
        protocol.check_reveal(session, player, plan)

        key = require_setting(self.reveal_verification_key, "CLASH_REVEAL_VK")
        binding = self._verify(key, public_inputs, proof, session_id, player)

        try:
            revealed = protocol.apply_reveal(session, player, binding, plan)
        except ProtocolIntegrityError:
            logger.warning("game %s: commitment mismatch on reveal by %s", session_id, player)
            raise
        self.store.update_session(revealed)
        logger.info("game %s: %s revealed", session_id, player)
        return revealed

    def resolve_battle(self, session_id: int) -> Session:
        session = self._require_session(session_id)
        challenge = self.store.get_challenge_for_session(session_id)

        if session.outcome is None:
            if not protocol.both_revealed(session):
                raise StateViolationError("BothPlayersNotRevealed", "both players must reveal before resolution")

            outcome = engine.resolve_battle(session.slot_a.plan, session.slot_b.plan)
            session = replace(session, outcome=outcome)
            completed = replace(challenge, is_completed=True) if challenge is not None else None
            self.store.update_session(session, completed)
            logger.info(
                "game %s resolved: health %s/%s winner=%s",
                session_id,
                outcome.health_a,
                outcome.health_b,
                session.winner_id() or "draw",
            )
        elif challenge is not None and not challenge.is_completed:
            self.store.update_session(session, replace(challenge, is_completed=True))

        if not session.settled:
            # A draw is reported as False; the ledger tells draws apart on its side.
            self.ledger.end_game(session_id, session.outcome.winner is Side.A)
            session = replace(session, settled=True)
            self.store.update_session(session)
        return session

    def get_game_playback(self, session_id: int) -> Playback:
        session = self._require_session(session_id)
        if not protocol.both_revealed(session):
            raise StateViolationError("BothPlayersNotRevealed", "playback needs both plans revealed")

        outcome = session.outcome or engine.resolve_battle(session.slot_a.plan, session.slot_b.plan)
        turns = [
            DetailedTurn(turn=turn, move_a=session.slot_a.plan[turn.turn], move_b=session.slot_b.plan[turn.turn])
            for turn in outcome.turns
        ]
        winner_id = session.player(outcome.winner) if outcome.winner is not None else None
        return Playback(
            session_id=session.session_id,
            player_a=session.player_a,
            player_b=session.player_b,
            username_a=self.store.get_username(session.player_a),
            username_b=self.store.get_username(session.player_b),
            outcome=outcome,
            winner_id=winner_id,
            turns=turns,
        )

    # Challenges

    def send_challenge(self, challenger: str, token: str, challenged: str, points_wagered: int) -> Challenge:
        self.authenticate(challenger, token)
        if challenger == challenged:
            raise InputValidationError("CannotChallengeSelf", "cannot challenge yourself")
        _require_stake(points_wagered)
        if self.store.get_player_token_hash(challenged) is None:
            raise NotFoundError("PlayerNotFound", f"player {challenged} does not exist")

        challenge = self.store.create_challenge(
            challenger=challenger,
            challenged=challenged,
            points_wagered=points_wagered,
            now=self.clock(),
            ttl=self.challenge_ttl,
        )
        logger.info("challenge %s sent by %s to %s", challenge.challenge_id, challenger, challenged)
        return challenge

    def accept_challenge(self, challenge_id: int, player: str, token: str, session_id: int) -> Session:
        self.authenticate(player, token)
        challenge = self.store.get_challenge(challenge_id)
        if challenge is None:
            raise NotFoundError("ChallengeNotFound", f"challenge {challenge_id} does not exist")
        if challenge.challenged != player:
            raise AuthorizationError("NotPlayer", f"challenge {challenge_id} was not sent to {player}")
        if challenge.is_accepted:
            raise StateViolationError("ChallengeAlreadyAccepted", f"challenge {challenge_id} was already accepted")
        if challenge.is_expired(self.clock()):
            raise StateViolationError("ChallengeExpired", f"challenge {challenge_id} has expired")

        # Only one acceptance may reach the ledger; the claim is a conditional write.
        claimed = self.store.claim_challenge(challenge_id, session_id)
        if claimed is None:
            raise StateViolationError("ChallengeAlreadyAccepted", f"challenge {challenge_id} was already accepted")

        # The challenger consented to this wager when sending the challenge.
        try:
            session = self._open_session(
                session_id,
                challenge.challenger,
                challenge.challenged,
                challenge.points_wagered,
                challenge.points_wagered,
                challenge=claimed,
            )
        except Exception:
            self.store.release_challenge(challenge_id)
            raise
        logger.info("challenge %s accepted, game %s started", challenge_id, session_id)
        return session

    def get_player_challenges(self, player: str) -> ChallengeBuckets:
        return partition_challenges(self.store.list_player_challenges(player), self.clock())

    # Internals

    def _open_session(
        self,
        session_id: int,
        player_a: str,
        player_b: str,
        stake_a: int,
        stake_b: int,
        challenge: Challenge | None = None,
    ) -> Session:
        _require_session_id(session_id)
        _require_stake(stake_a)
        _require_stake(stake_b)
        if self.store.get_session(session_id) is not None:
            raise StateViolationError("GameAlreadyExists", f"game {session_id} is already in progress")

        self.ledger.start_game(self.game_id, session_id, player_a, player_b, stake_a, stake_b)

        session = build_initial_session(session_id, player_a, player_b, stake_a, stake_b, now=self.clock())
        self.store.insert_session(session, challenge)
        logger.info("game %s started: %s vs %s", session_id, player_a, player_b)
        return session

    def _check_start_grant(self, grant: str, player: str, session_id: int, stake: int) -> None:
        token_hash = self.store.get_player_token_hash(player)
        if not verify_start_grant(grant, token_hash, self.server_salt, player, session_id, stake):
            raise AuthorizationError(
                "StaleAuthorization",
                f"no start grant from {player} for game {session_id} with stake {stake}",
            )

    def _require_session(self, session_id: int) -> Session:
        session = self.store.get_session(session_id)
        if session is None:
            raise NotFoundError("GameNotFound", f"game {session_id} does not exist")
        return session

    def _verify(self, key: str, public_inputs: bytes, proof: bytes, session_id: int, player: str) -> bytes:
        try:
            return self.gateway.verify(key, public_inputs, proof)
        except VerificationFailure:
            logger.warning("game %s: proof from %s rejected", session_id, player)
            raise


def _require_session_id(session_id: int) -> None:
    if not 0 <= session_id <= MAX_SESSION_ID:
        raise InputValidationError("InvalidSessionId", f"session ids must lie in 0..{MAX_SESSION_ID}")


def _require_stake(stake: int) -> None:
    if stake < 0:
        raise InputValidationError("InvalidStake", "stakes cannot be negative")


def create_service(settings: ClashSettings) -> ClashService:
    return ClashService(
        store=create_store(settings.database_url, retention=timedelta(seconds=settings.session_retention_seconds)),
        gateway=create_verifier(settings),
        ledger=create_ledger(settings),
        server_salt=settings.server_salt,
        game_id=settings.game_id,
        commit_verification_key=settings.commit_verification_key,
        reveal_verification_key=settings.reveal_verification_key,
        challenge_ttl=timedelta(seconds=settings.challenge_ttl_seconds),
    )
