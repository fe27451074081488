from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import FrozenSet, Optional

from ..core.constants import DEFAULT_DURATION_MINUTES, DEFAULT_GRACE_MINUTES
from ..core.enums import Frequency, ScheduleType, SessionStatus, VerificationMethod
from ..geo.distance import Geofence


@dataclass(frozen=True)
class RecurrencePattern:
    """How a recurring session repeats.

    ``days_of_week`` uses 0 = Sunday ... 6 = Saturday. Termination is either
    ``end_date`` or ``occurrences`` (or neither for an open-ended series).
    """

    frequency: Frequency
    interval: int = 1
    days_of_week: FrozenSet[int] = frozenset()
    days_of_month: FrozenSet[int] = frozenset()
    end_date: Optional[date] = None
    occurrences: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "days_of_week": sorted(self.days_of_week),
            "days_of_month": sorted(self.days_of_month),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "occurrences": self.occurrences,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrencePattern":
        end_date = data.get("end_date")
        occurrences = data.get("occurrences")
        return cls(
            frequency=Frequency(data["frequency"]),
            interval=int(data.get("interval", 1)),
            days_of_week=frozenset(int(d) for d in data.get("days_of_week") or ()),
            days_of_month=frozenset(int(d) for d in data.get("days_of_month") or ()),
            end_date=date.fromisoformat(end_date[:10]) if end_date else None,
            occurrences=int(occurrences) if occurrences is not None else None,
        )


@dataclass(frozen=True)
class VerificationToken:
    value: str
    issued_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class Session:
    """One occurrence of a class.

    Instances are immutable snapshots; SessionLifecycle replaces the stored
    snapshot on every transition.
    """

    session_id: str
    owner_id: str
    name: str
    start_time: datetime
    verification_methods: FrozenSet[VerificationMethod]
    created_at: datetime
    geofence: Optional[Geofence] = None
    end_time: Optional[datetime] = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    grace_period_minutes: int = DEFAULT_GRACE_MINUTES
    schedule_type: ScheduleType = ScheduleType.ONE_TIME
    recurrence: Optional[RecurrencePattern] = None
    auto_start: bool = False
    auto_end: bool = False
    status: SessionStatus = SessionStatus.SCHEDULED
    token: Optional[VerificationToken] = None
    next_occurrence: Optional[datetime] = None
    series_id: Optional[str] = None
    series_start: Optional[datetime] = None
    occurrence_index: int = 1
    closing_soon_sent: bool = False
    archived: bool = False
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def end_boundary(self) -> datetime:
        if self.end_time is not None:
            return self.end_time
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def is_recurring(self) -> bool:
        return self.schedule_type != ScheduleType.ONE_TIME and self.recurrence is not None

    def accepts(self, method: VerificationMethod) -> bool:
        return method in self.verification_methods


@dataclass(frozen=True)
class SessionDraft:
    """Authority input for creating or editing a session."""

    owner_id: str
    name: str
    start_time: datetime
    verification_methods: FrozenSet[VerificationMethod] = field(
        default_factory=lambda: frozenset({VerificationMethod.QR})
    )
    geofence: Optional[Geofence] = None
    end_time: Optional[datetime] = None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    grace_period_minutes: int = DEFAULT_GRACE_MINUTES
    schedule_type: ScheduleType = ScheduleType.ONE_TIME
    recurrence: Optional[RecurrencePattern] = None
    auto_start: bool = False
    auto_end: bool = False
