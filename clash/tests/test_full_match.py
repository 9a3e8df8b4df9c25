from __future__ import annotations

import hashlib
import unittest
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from clash.backend.api import create_app
from clash.backend.ledger import InMemoryLedgerClient
from clash.backend.service import ClashService
from clash.backend.store import InMemoryClashStore
from clash.backend.verifier import ProofVerifierGateway


class AcceptingVerifier:
    def verify_proof(self, verification_key: str, public_inputs: bytes, proof: bytes) -> bool:
        return True


class ManualClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def public_inputs(label: str) -> str:
    commitment = hashlib.sha256(label.encode("utf-8")).digest()
    return (bytes(64) + commitment).hex()


class FullMatchTests(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.ledger = InMemoryLedgerClient()
        self.service = ClashService(
            store=InMemoryClashStore(clock=self.clock),
            gateway=ProofVerifierGateway(verifier=AcceptingVerifier()),
            ledger=self.ledger,
            server_salt="salt",
            commit_verification_key="commit",
            reveal_verification_key="reveal",
            clock=self.clock,
        )
        self.client = TestClient(create_app(service=self.service))
        self.alice = self.client.post("/api/players").json()
        self.bob = self.client.post("/api/players").json()

    def _send(self, path: str, player: dict, **extra):
        body = {"player": player["player_id"], "token": player["token"], **extra}
        return self.client.post(path, json=body)

    def test_challenge_to_settlement(self):
        self.client.put(
            f"/api/players/{self.alice['player_id']}/username",
            json={"token": self.alice["token"], "username": "alice"},
        )
        challenge = self.client.post(
            "/api/challenges",
            json={
                "challenger": self.alice["player_id"],
                "token": self.alice["token"],
                "challenged": self.bob["player_id"],
                "points_wagered": 20,
            },
        ).json()["challenge"]
        accepted = self._send(f"/api/challenges/{challenge['challenge_id']}/accept", self.bob, session_id=3)
        self.assertEqual(accepted.status_code, 200)

        lightning = [{"attack": "lightning", "defense": "block"}] * 3
        mixed = [
            {"attack": "slash", "defense": "dodge"},
            {"attack": "fireball", "defense": "dodge"},
            {"attack": "lightning", "defense": "counter"},
        ]
        for player, label in ((self.bob, "bob"), (self.alice, "alice")):
            response = self._send("/api/games/3/commit", player, public_inputs=public_inputs(label), proof="ab")
            self.assertEqual(response.status_code, 200)
        self._send("/api/games/3/reveal", self.bob, public_inputs=public_inputs("bob"), proof="cd", moves=mixed)
        self._send("/api/games/3/reveal", self.alice, public_inputs=public_inputs("alice"), proof="cd", moves=lightning)

        game = self.client.post("/api/games/3/resolve").json()["game"]
        playback = self.client.get("/api/games/3/playback").json()["playback"]
        buckets = self.client.get(f"/api/players/{self.alice['player_id']}/challenges").json()

        # alice: 35, 45, 60 against no successful defense; bob: 30, 40, then lightning blocked.
        self.assertEqual(game["outcome"]["health_a"], 30)
        self.assertEqual(game["outcome"]["health_b"], -40)
        self.assertEqual(game["winner_id"], self.alice["player_id"])
        self.assertEqual(playback["username_a"], "alice")
        self.assertEqual([turn["damage_taken_b"] for turn in playback["turns"]], [35, 45, 60])
        self.assertEqual([turn["damage_taken_a"] for turn in playback["turns"]], [30, 40, 0])
        self.assertEqual([c["challenge_id"] for c in buckets["completed"]], [challenge["challenge_id"]])
        self.assertEqual(self.ledger.ended, [{"session_id": 3, "player_a_won": True}])

    def test_expired_challenge_cannot_be_accepted(self):
        challenge = self.client.post(
            "/api/challenges",
            json={
                "challenger": self.alice["player_id"],
                "token": self.alice["token"],
                "challenged": self.bob["player_id"],
                "points_wagered": 1,
            },
        ).json()["challenge"]
        self.clock.now += timedelta(days=1)

        response = self._send(f"/api/challenges/{challenge['challenge_id']}/accept", self.bob, session_id=4)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "ChallengeExpired")
        self.assertEqual(self.ledger.started, [])


if __name__ == "__main__":
    unittest.main()
