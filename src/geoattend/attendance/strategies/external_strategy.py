from __future__ import annotations

from datetime import datetime

from ...core.exceptions import VerificationFailed
from ...sessions.model import Session
from ..model import CheckInAttempt
from ..verifier import VerifierGateway
from .base import ProofStrategy


class ExternalProofStrategy(ProofStrategy):
    """Biometric, Facial and NFC proofs are judged by the external verifier."""

    def __init__(self, gateway: VerifierGateway):
        self._gateway = gateway

    def verify(self, *, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        if not self._gateway.verify(attempt.method, attempt):
            raise VerificationFailed(f"{attempt.method.value} verification failed")
