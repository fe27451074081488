from __future__ import annotations

import threading
import time as _time
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

import pytest

from geoattend.attendance.model import AttendanceRecord, AttendanceReportRow, CheckInAttempt
from geoattend.container import assemble
from geoattend.core.enums import SessionStatus, VerificationMethod
from geoattend.core.exceptions import StorageConflict
from geoattend.geo.distance import Coordinate, Geofence
from geoattend.notifications.events import CollectingNotificationRequester
from geoattend.sessions.model import Session, SessionDraft


class InMemorySessions:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[str, Session] = {}
        self.fail_writes = False

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._by_id.get(session_id)

    def add(self, session: Session) -> None:
        with self._lock:
            if session.session_id in self._by_id:
                raise StorageConflict(f"Session {session.session_id} already exists")
            if session.series_id and any(
                s.series_id == session.series_id and s.occurrence_index == session.occurrence_index
                for s in self._by_id.values()
            ):
                raise StorageConflict("Occurrence already exists")
            self._by_id[session.session_id] = session

    def update(self, session: Session) -> None:
        with self._lock:
            self._by_id[session.session_id] = session

    def compare_and_set(self, session: Session, *, expected_status: SessionStatus) -> bool:
        with self._lock:
            if self.fail_writes:
                return False
            current = self._by_id.get(session.session_id)
            if current is None or current.status != expected_status:
                return False
            self._by_id[session.session_id] = session
            return True

    def list_by_status(self, statuses: Iterable[SessionStatus]):
        wanted = set(statuses)
        with self._lock:
            items = [s for s in self._by_id.values() if s.status in wanted and not s.archived]
        return sorted(items, key=lambda s: s.start_time)

    def list_for_owner(self, owner_id: str):
        with self._lock:
            items = [s for s in self._by_id.values() if s.owner_id == owner_id]
        return sorted(items, key=lambda s: s.start_time, reverse=True)

    def find_occurrence(self, series_id: str, occurrence_index: int) -> Optional[Session]:
        with self._lock:
            for s in self._by_id.values():
                if s.series_id == series_id and s.occurrence_index == occurrence_index:
                    return s
        return None

    def list_awaiting_next_occurrence(self):
        with self._lock:
            stored = {(s.series_id, s.occurrence_index) for s in self._by_id.values() if s.series_id}
            items = [
                s
                for s in self._by_id.values()
                if s.status == SessionStatus.CLOSED
                and not s.archived
                and s.series_id
                and s.next_occurrence is not None
                and (s.series_id, s.occurrence_index + 1) not in stored
            ]
        return sorted(items, key=lambda s: s.closed_at)

    def all(self) -> list[Session]:
        with self._lock:
            return list(self._by_id.values())


class InMemoryAttendance:
    def __init__(self, sessions: InMemorySessions):
        self._sessions = sessions
        self._lock = threading.Lock()
        self._by_key: dict[tuple[str, str], AttendanceRecord] = {}

    def insert_if_absent(self, record: AttendanceRecord) -> bool:
        key = (record.session_id, record.attendee_id)
        with self._lock:
            if key in self._by_key:
                return False
            self._by_key[key] = record
            return True

    def get_for_session_and_attendee(self, session_id: str, attendee_id: str) -> Optional[AttendanceRecord]:
        with self._lock:
            return self._by_key.get((session_id, attendee_id))

    def find_by_device(self, session_id: str, device_id: str) -> Optional[AttendanceRecord]:
        with self._lock:
            matches = [r for r in self._by_key.values() if r.session_id == session_id and r.device_id == device_id]
        matches.sort(key=lambda r: r.check_in_time)
        return matches[0] if matches else None

    def list_for_session(self, session_id: str):
        with self._lock:
            items = [r for r in self._by_key.values() if r.session_id == session_id]
        return sorted(items, key=lambda r: r.check_in_time)

    def get_recent_for_attendee(self, attendee_id: str, limit: int):
        with self._lock:
            items = [r for r in self._by_key.values() if r.attendee_id == attendee_id]
        items.sort(key=lambda r: r.check_in_time, reverse=True)
        return items[:limit]

    def get_report_rows(self, *, start: datetime, end: datetime, owner_id=None, session_id=None):
        rows = []
        with self._lock:
            records = list(self._by_key.values())
        for r in records:
            s = self._sessions.get(r.session_id)
            if s is None or not (start <= s.start_time <= end):
                continue
            if owner_id is not None and s.owner_id != owner_id:
                continue
            if session_id is not None and s.session_id != session_id:
                continue
            rows.append(
                AttendanceReportRow(
                    session_id=s.session_id,
                    session_name=s.name,
                    owner_id=s.owner_id,
                    session_start=s.start_time,
                    attendee_id=r.attendee_id,
                    check_in_time=r.check_in_time,
                    status=r.status,
                    verification_method=r.verification_method,
                    device_id=r.device_id,
                )
            )
        rows.sort(key=lambda x: (x.session_start, x.check_in_time))
        return rows


class FakeVerifier:
    """Answers with ``result`` after ``delay`` seconds, or raises ``error``."""

    def __init__(self, result: bool = True, *, delay: float = 0.0, error: Optional[Exception] = None):
        self.result = result
        self.delay = delay
        self.error = error
        self.calls: list[tuple[VerificationMethod, CheckInAttempt]] = []

    def verify(self, method: VerificationMethod, attempt: CheckInAttempt) -> bool:
        self.calls.append((method, attempt))
        if self.delay:
            _time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fixed_now() -> datetime:
    # Monday
    return datetime(2024, 1, 1, 9, 0, 0)


@pytest.fixture
def sessions_repo() -> InMemorySessions:
    return InMemorySessions()


@pytest.fixture
def attendance_repo(sessions_repo) -> InMemoryAttendance:
    return InMemoryAttendance(sessions_repo)


@pytest.fixture
def notifier() -> CollectingNotificationRequester:
    return CollectingNotificationRequester()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def container(sessions_repo, attendance_repo, notifier, verifier):
    c = assemble(
        sessions_repo,
        attendance_repo,
        token_rotation_seconds=45,
        verifier=verifier,
        verifier_timeout_seconds=0.2,
        closing_soon_minutes=10,
        scheduler_interval_seconds=0.05,
        notifier=notifier,
    )
    yield c
    c.scheduler.stop(timeout=1)
    c.verifier_gateway.shutdown()


@pytest.fixture
def campus() -> Geofence:
    return Geofence(center=Coordinate(0.0, 0.0), radius_meters=100)


@pytest.fixture
def make_session(container, fixed_now, campus) -> Callable[..., Session]:
    """Create a session starting at ``fixed_now``, created an hour before."""

    def _make(**overrides) -> Session:
        created_at = overrides.pop("created_at", fixed_now - timedelta(hours=1))
        fields = dict(
            owner_id="lecturer-1",
            name="Distributed Systems",
            start_time=fixed_now,
            duration_minutes=60,
            grace_period_minutes=5,
            verification_methods=frozenset(
                {VerificationMethod.QR, VerificationMethod.LOCATION, VerificationMethod.MANUAL}
            ),
            geofence=campus,
        )
        fields.update(overrides)
        return container.session_service.create_session(SessionDraft(**fields), now=created_at)

    return _make


@pytest.fixture
def open_session(container, make_session, fixed_now) -> Callable[..., Session]:
    def _open(**overrides) -> Session:
        opened_at = overrides.pop("opened_at", fixed_now)
        session = make_session(**overrides)
        return container.session_service.force_open(session.session_id, now=opened_at)

    return _open

