from __future__ import annotations

from datetime import datetime

from ...sessions.model import Session
from ..model import CheckInAttempt
from .base import ProofStrategy


class ManualProofStrategy(ProofStrategy):
    """Authority-recorded check-in; no proof required."""

    def verify(self, *, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        return None
