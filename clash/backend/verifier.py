"""Proof verification gateway around an external zero-knowledge verifier."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Protocol
from urllib import error, request

from .config import ClashSettings
from .errors import VerificationFailure

logger = logging.getLogger(__name__)

BINDING_VALUE_BYTES = 32


class ExternalVerifier(Protocol):
    def verify_proof(self, verification_key: str, public_inputs: bytes, proof: bytes) -> bool:
        """Return whether the proof verifies; raise when the verifier cannot be reached."""


@dataclass
class HttpExternalVerifier:
    url: str
    timeout_s: float = 10.0

    def verify_proof(self, verification_key: str, public_inputs: bytes, proof: bytes) -> bool:
        payload = json.dumps(
            {
                "verification_key": verification_key,
                "public_inputs": public_inputs.hex(),
                "proof": proof.hex(),
            }
        ).encode("utf-8")
        req = request.Request(url=self.url, data=payload, method="POST")
        req.add_header("Content-Type", "application/json")
        with request.urlopen(req, timeout=self.timeout_s) as response:
            raw = response.read().decode("utf-8")
        body = json.loads(raw) if raw else {}
        return isinstance(body, dict) and body.get("verified") is True


@dataclass
class ProofVerifierGateway:
    verifier: ExternalVerifier

    def verify(self, verification_key: str, public_inputs: bytes, proof: bytes) -> bytes:
        """Verify a proof and return its binding value.

        The binding value is the last 32 bytes of ``public_inputs``; the
        circuits place their commitment hash output there.
        """
        if len(public_inputs) < BINDING_VALUE_BYTES:
            raise VerificationFailure(
                "InvalidPublicInputs",
                f"public inputs must be at least {BINDING_VALUE_BYTES} bytes, got {len(public_inputs)}",
            )

        try:
            verified = self.verifier.verify_proof(verification_key, public_inputs, proof)
        except (error.URLError, OSError, ValueError) as exc:
            logger.warning("verifier call failed: %s", exc)
            raise VerificationFailure("ProofVerificationFailed", "external verifier call failed") from exc

        if not verified:
            raise VerificationFailure("InvalidProof", "proof rejected by verifier")

        binding = bytes(public_inputs[-BINDING_VALUE_BYTES:])
        logger.debug("proof verified, binding=%s", binding.hex())
        return binding


def create_verifier(settings: ClashSettings) -> ProofVerifierGateway:
    return ProofVerifierGateway(verifier=HttpExternalVerifier(url=settings.verifier_url))
