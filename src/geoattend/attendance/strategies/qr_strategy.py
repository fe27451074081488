from __future__ import annotations

from datetime import datetime

from ...core.exceptions import InvalidOrExpiredToken
from ...sessions.model import Session
from ...sessions.tokens import TokenRotator
from ..model import CheckInAttempt
from .base import ProofStrategy


class QrProofStrategy(ProofStrategy):
    """Scanned token must be the session's current, unexpired token."""

    def __init__(self, tokens: TokenRotator):
        self._tokens = tokens

    def verify(self, *, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        if not self._tokens.validate(session, attempt.token, now):
            raise InvalidOrExpiredToken("QR code is invalid or has expired")
