from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict

from ..core.enums import EXTERNALLY_VERIFIED_METHODS, AttendanceStatus, VerificationMethod
from ..sessions.model import Session
from ..sessions.tokens import TokenRotator
from .strategies.base import ProofStrategy, StatusDecision
from .strategies.external_strategy import ExternalProofStrategy
from .strategies.location_strategy import LocationProofStrategy
from .strategies.manual_strategy import ManualProofStrategy
from .strategies.qr_strategy import QrProofStrategy
from .verifier import VerifierGateway


class CheckInStrategyFactory:
    """Factory Pattern: choose the proof strategy for a method and the status for a time."""

    def __init__(self, tokens: TokenRotator, gateway: VerifierGateway):
        external = ExternalProofStrategy(gateway)
        self._strategies: Dict[VerificationMethod, ProofStrategy] = {
            VerificationMethod.QR: QrProofStrategy(tokens),
            VerificationMethod.LOCATION: LocationProofStrategy(),
            VerificationMethod.MANUAL: ManualProofStrategy(),
        }
        for method in EXTERNALLY_VERIFIED_METHODS:
            self._strategies[method] = external

    def for_method(self, method: VerificationMethod) -> ProofStrategy:
        return self._strategies[method]

    def status_for(self, *, session: Session, now: datetime) -> StatusDecision:
        elapsed = now - session.start_time
        grace = timedelta(minutes=session.grace_period_minutes)
        if elapsed <= grace:
            return StatusDecision(status=AttendanceStatus.PRESENT)

        late_minutes = int(elapsed.total_seconds() // 60)
        return StatusDecision(status=AttendanceStatus.LATE, note=f"{late_minutes} minutes late")
