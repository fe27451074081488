"""Check-in arbitration.

Checks run in a fixed order and the first failure wins:

1. the attempt is not earlier than the session's creation,
2. the session is Open,
3. the method is one the session accepts,
4. the method's proof holds (token, geofence, external verifier, manual),
5. the device was not used by another attendee,
6. the attendee has no record yet (atomic conditional insert).

Present/Late is decided once, in ``record``, and never recomputed.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime

from ..core.enums import EXTERNALLY_VERIFIED_METHODS, SessionStatus, VerificationMethod
from ..core.exceptions import AlreadyCheckedIn, ClockSkew, DeviceAlreadyUsed, MethodNotAccepted, SessionNotOpen
from ..sessions.model import Session
from .factory import CheckInStrategyFactory
from .model import AttendanceRecord, CheckInAttempt
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


def proof_runs_unlocked(method: VerificationMethod) -> bool:
    """External proofs wait on I/O and are checked outside the session lock."""
    return method in EXTERNALLY_VERIFIED_METHODS


class CheckInArbiter:
    def __init__(self, attendance: AttendanceRepository, factory: CheckInStrategyFactory):
        self._attendance = attendance
        self._factory = factory

    def arbitrate(self, session: Session, attempt: CheckInAttempt, now: datetime) -> AttendanceRecord:
        """All checks in one pass; the caller holds the session lock."""
        self.admit(session, attempt, now)
        self.prove(session, attempt, now)
        return self.record(session, attempt, now)

    def admit(self, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        if now < session.created_at:
            raise ClockSkew("Check-in time is earlier than the session creation time")

        if session.status != SessionStatus.OPEN:
            raise SessionNotOpen(f"Session is {session.status.value}, check-in is not open")

        if not session.accepts(attempt.method):
            raise MethodNotAccepted(f"{attempt.method.value} check-in is not accepted for this session")

    def prove(self, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        self._factory.for_method(attempt.method).verify(session=session, attempt=attempt, now=now)

    def record(self, session: Session, attempt: CheckInAttempt, now: datetime) -> AttendanceRecord:
        if attempt.device_id:
            other = self._attendance.find_by_device(session.session_id, attempt.device_id)
            if other is not None and other.attendee_id != attempt.attendee_id:
                raise DeviceAlreadyUsed("Attendance has already been marked from this device")

        decision = self._factory.status_for(session=session, now=now)
        record = AttendanceRecord(
            record_id=uuid.uuid4().hex,
            session_id=session.session_id,
            attendee_id=attempt.attendee_id,
            check_in_time=now,
            status=decision.status,
            verification_method=attempt.method,
            verified_location=attempt.location if attempt.method == VerificationMethod.LOCATION else None,
            device_id=attempt.device_id,
            note=decision.note,
        )

        if not self._attendance.insert_if_absent(record):
            raise AlreadyCheckedIn("Attendance already recorded for this session")

        logger.info(
            "check-in accepted session=%s attendee=%s method=%s status=%s note=%s",
            session.session_id,
            attempt.attendee_id,
            attempt.method.value,
            decision.status.value,
            decision.note,
        )
        return record
