from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from ..common.datetime_utils import now_local, sunday_first_weekday
from ..common.validators import require_min, require_non_empty
from ..core.enums import Frequency, ScheduleType, SessionStatus, VerificationMethod
from ..core.exceptions import InvalidRecurrenceSpec, InvalidTransition, MethodNotAccepted, StorageConflict, ValidationError
from .lifecycle import SessionLifecycle
from .model import RecurrencePattern, Session, SessionDraft, VerificationToken
from .recurrence import RecurrenceResolver
from .repository import SessionRepository

logger = logging.getLogger(__name__)

_FREQUENCY_FOR_TYPE = {
    ScheduleType.DAILY: Frequency.DAILY,
    ScheduleType.WEEKLY: Frequency.WEEKLY,
}


class SessionService:
    """Use cases driven by the authority (lecturer): create, edit, force transitions."""

    def __init__(
        self,
        sessions: SessionRepository,
        lifecycle: SessionLifecycle,
        *,
        resolver: Optional[RecurrenceResolver] = None,
    ):
        self._sessions = sessions
        self._lifecycle = lifecycle
        self._resolver = resolver or RecurrenceResolver()

    def get(self, session_id: str) -> Session:
        return self._lifecycle.snapshot(session_id)

    def list_for_owner(self, owner_id: str) -> Sequence[Session]:
        return self._sessions.list_for_owner(owner_id)

    def create_session(self, draft: SessionDraft, *, now: Optional[datetime] = None) -> Session:
        now = now or now_local()
        pattern = self._validate(draft)

        session_id = uuid.uuid4().hex
        session = Session(
            session_id=session_id,
            owner_id=draft.owner_id.strip(),
            name=draft.name.strip(),
            start_time=draft.start_time,
            verification_methods=frozenset(draft.verification_methods),
            created_at=now,
            geofence=draft.geofence,
            end_time=draft.end_time,
            duration_minutes=int(draft.duration_minutes),
            grace_period_minutes=int(draft.grace_period_minutes),
            schedule_type=draft.schedule_type,
            recurrence=pattern,
            auto_start=bool(draft.auto_start),
            auto_end=bool(draft.auto_end),
            series_id=session_id if pattern else None,
            series_start=draft.start_time if pattern else None,
            occurrence_index=1,
        )
        session = replace(session, next_occurrence=self._next_after(session))

        self._sessions.add(session)
        logger.info(
            "session created session=%s owner=%s schedule=%s next=%s",
            session.session_id,
            session.owner_id,
            session.schedule_type.value,
            session.next_occurrence.isoformat() if session.next_occurrence else None,
        )
        return session

    def edit_session(self, session_id: str, draft: SessionDraft) -> Session:
        """Replace the authority-editable fields; only allowed while Scheduled."""
        pattern = self._validate(draft)

        with self._lifecycle.locked(session_id) as session:
            if session.status != SessionStatus.SCHEDULED:
                raise InvalidTransition("Only scheduled sessions can be edited")
            if session.occurrence_index > 1 and pattern != session.recurrence:
                raise ValidationError("Recurrence can only be changed on the first occurrence of a series")

            first = session.occurrence_index == 1
            updated = replace(
                session,
                name=draft.name.strip(),
                start_time=draft.start_time,
                verification_methods=frozenset(draft.verification_methods),
                geofence=draft.geofence,
                end_time=draft.end_time,
                duration_minutes=int(draft.duration_minutes),
                grace_period_minutes=int(draft.grace_period_minutes),
                schedule_type=draft.schedule_type,
                recurrence=pattern,
                auto_start=bool(draft.auto_start),
                auto_end=bool(draft.auto_end),
                series_id=(session.series_id or session.session_id) if pattern else None,
                series_start=(draft.start_time if first else session.series_start) if pattern else None,
            )
            updated = replace(updated, next_occurrence=self._next_after(updated))
            self._sessions.update(updated)
            logger.info("session edited session=%s", session_id)
            return updated

    def force_open(self, session_id: str, *, now: Optional[datetime] = None) -> Session:
        return self._lifecycle.open(session_id, now or now_local(), manual=True)

    def force_close(self, session_id: str, *, now: Optional[datetime] = None) -> Session:
        now = now or now_local()
        closed = self._lifecycle.close(session_id, now, manual=True)
        self._materialize_after_close(session_id, now)
        return closed

    def cancel(self, session_id: str, *, now: Optional[datetime] = None) -> Session:
        now = now or now_local()
        cancelled = self._lifecycle.cancel(session_id, now)
        self._materialize_after_close(session_id, now)
        return cancelled

    def archive(self, session_id: str, *, now: Optional[datetime] = None) -> Session:
        """Retire a session. Attendance records are kept."""
        now = now or now_local()
        with self._lifecycle.locked(session_id) as session:
            if session.status == SessionStatus.OPEN:
                raise InvalidTransition("Close the session before archiving it")
            if session.status == SessionStatus.SCHEDULED:
                session = self._lifecycle.cancel(session_id, now)

            archived = replace(session, archived=True, next_occurrence=None)
            if not self._sessions.compare_and_set(archived, expected_status=SessionStatus.CLOSED):
                raise StorageConflict(f"Session {session_id} changed concurrently")
            logger.info("session archived session=%s", session_id)
            return archived

    def current_token(self, session_id: str, *, now: Optional[datetime] = None) -> Optional[VerificationToken]:
        return self._lifecycle.current_token(session_id, now or now_local())

    def materialize_next(self, session_id: str, *, now: Optional[datetime] = None) -> Optional[Session]:
        """Create the next occurrence of a closed recurring session.

        Idempotent per (series, occurrence index).
        """
        now = now or now_local()
        session = self._sessions.get(session_id)
        if (
            session is None
            or session.status != SessionStatus.CLOSED
            or session.archived
            or not session.is_recurring
            or session.next_occurrence is None
        ):
            return None

        index = session.occurrence_index + 1
        existing = self._sessions.find_occurrence(session.series_id, index)
        if existing is not None:
            return existing

        start = session.next_occurrence
        shift = start - session.start_time
        upcoming = replace(
            session,
            session_id=uuid.uuid4().hex,
            start_time=start,
            end_time=session.end_time + shift if session.end_time else None,
            status=SessionStatus.SCHEDULED,
            token=None,
            occurrence_index=index,
            closing_soon_sent=False,
            opened_at=None,
            closed_at=None,
            created_at=min(now, start),
        )
        upcoming = replace(upcoming, next_occurrence=self._next_after(upcoming))

        try:
            self._sessions.add(upcoming)
        except StorageConflict:
            return self._sessions.find_occurrence(session.series_id, index)

        logger.info(
            "occurrence materialized series=%s index=%s session=%s start=%s",
            session.series_id,
            index,
            upcoming.session_id,
            start.isoformat(),
        )
        return upcoming

    def _materialize_after_close(self, session_id: str, now: datetime) -> None:
        # The close is already stored; a failed occurrence is picked up by the scheduler.
        try:
            self.materialize_next(session_id, now=now)
        except Exception:
            logger.exception("Next occurrence deferred to the scheduler session=%s", session_id)

    def _next_after(self, session: Session) -> Optional[datetime]:
        if not session.is_recurring:
            return None
        return self._resolver.next_occurrence(
            session.recurrence,
            session.start_time,
            session.series_start or session.start_time,
            emitted=session.occurrence_index,
        )

    def _validate(self, draft: SessionDraft) -> Optional[RecurrencePattern]:
        require_non_empty(draft.owner_id, "owner_id")
        require_non_empty(draft.name, "name")
        require_min(draft.duration_minutes, "duration_minutes", 1)
        require_min(draft.grace_period_minutes, "grace_period_minutes", 0)

        if draft.end_time is not None and draft.end_time <= draft.start_time:
            raise ValidationError("end_time must be after start_time")

        methods = frozenset(draft.verification_methods)
        if not methods:
            raise ValidationError("At least one verification method is required")
        if VerificationMethod.LOCATION in methods and draft.geofence is None:
            raise MethodNotAccepted("Location check-in requires a geofence")

        return self._effective_pattern(draft)

    def _effective_pattern(self, draft: SessionDraft) -> Optional[RecurrencePattern]:
        if draft.schedule_type == ScheduleType.ONE_TIME:
            if draft.recurrence is not None:
                raise InvalidRecurrenceSpec("One-time sessions cannot carry a recurrence pattern")
            return None

        pattern = draft.recurrence
        if pattern is None:
            if draft.schedule_type == ScheduleType.DAILY:
                pattern = RecurrencePattern(frequency=Frequency.DAILY)
            elif draft.schedule_type == ScheduleType.WEEKLY:
                pattern = RecurrencePattern(
                    frequency=Frequency.WEEKLY,
                    days_of_week=frozenset({sunday_first_weekday(draft.start_time.date())}),
                )
            else:
                raise InvalidRecurrenceSpec("Custom schedules require a recurrence pattern")

        expected = _FREQUENCY_FOR_TYPE.get(draft.schedule_type)
        if expected is not None and pattern.frequency != expected:
            raise InvalidRecurrenceSpec(
                f"{draft.schedule_type.value} schedules require {expected.value} recurrence"
            )
        if pattern.end_date is not None and pattern.end_date < draft.start_time.date():
            raise InvalidRecurrenceSpec("end_date is before the first occurrence")

        return self._resolver.validate(pattern)
