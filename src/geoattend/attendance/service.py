from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import now_local
from ..common.validators import require_non_empty
from ..core.constants import DEFAULT_HISTORY_LIMIT
from ..core.enums import AttendanceStatus, SessionStatus, VerificationMethod
from ..core.exceptions import CheckInError, ValidationError
from ..sessions.lifecycle import SessionLifecycle
from .arbiter import CheckInArbiter, proof_runs_unlocked
from .model import AttendanceRecord, CheckInAttempt
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class AttendanceService:
    def __init__(self, attendance: AttendanceRepository, lifecycle: SessionLifecycle, arbiter: CheckInArbiter):
        self._attendance = attendance
        self._lifecycle = lifecycle
        self._arbiter = arbiter

    def check_in(self, session_id: str, attempt: CheckInAttempt, *, now: Optional[datetime] = None) -> AttendanceRecord:
        require_non_empty(attempt.attendee_id, "attendee_id")
        now = now or now_local()

        try:
            return self._check_in(session_id, attempt, now)
        except CheckInError as e:
            logger.info(
                "check-in rejected session=%s attendee=%s method=%s code=%s",
                session_id,
                attempt.attendee_id,
                attempt.method.value,
                e.code,
            )
            raise

    def _check_in(self, session_id: str, attempt: CheckInAttempt, now: datetime) -> AttendanceRecord:
        if not proof_runs_unlocked(attempt.method):
            # Status read, token check and insert happen under one session lock.
            with self._lifecycle.locked(session_id) as session:
                return self._arbiter.arbitrate(session, attempt, now)

        session = self._lifecycle.snapshot(session_id)
        self._arbiter.admit(session, attempt, now)
        self._arbiter.prove(session, attempt, now)

        # The session may have closed while the verifier was answering.
        with self._lifecycle.locked(session_id) as session:
            self._arbiter.admit(session, attempt, now)
            return self._arbiter.record(session, attempt, now)

    def mark_absentees(self, session_id: str, roster: Iterable[str], *, now: Optional[datetime] = None) -> int:
        """Record Absent for every roster attendee without a record once a session closed.

        Returns the number of records created.
        """
        now = now or now_local()
        session = self._lifecycle.snapshot(session_id)
        if session.status != SessionStatus.CLOSED:
            raise ValidationError("Absentees can only be marked after the session has closed")

        marked_at = session.closed_at or now
        created = 0
        for attendee_id in dict.fromkeys(a.strip() for a in roster if a and a.strip()):
            record = AttendanceRecord(
                record_id=uuid.uuid4().hex,
                session_id=session_id,
                attendee_id=attendee_id,
                check_in_time=marked_at,
                status=AttendanceStatus.ABSENT,
                verification_method=VerificationMethod.MANUAL,
            )
            if self._attendance.insert_if_absent(record):
                created += 1

        logger.info("absentees marked session=%s count=%s", session_id, created)
        return created

    def list_for_session(self, session_id: str) -> Sequence[AttendanceRecord]:
        return self._attendance.list_for_session(session_id)

    def history(self, attendee_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[AttendanceRecord]:
        return self._attendance.get_recent_for_attendee(attendee_id, int(limit))
