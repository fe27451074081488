from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle state of a session occurrence."""

    SCHEDULED = "Scheduled"
    OPEN = "Open"
    CLOSED = "Closed"


class ScheduleType(str, Enum):
    ONE_TIME = "one-time"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class VerificationMethod(str, Enum):
    """How an attendee proves presence."""

    QR = "QR"
    LOCATION = "Location"
    BIOMETRIC = "Biometric"
    FACIAL = "Facial"
    NFC = "NFC"
    MANUAL = "Manual"


EXTERNALLY_VERIFIED_METHODS = frozenset(
    {VerificationMethod.BIOMETRIC, VerificationMethod.FACIAL, VerificationMethod.NFC}
)


class AttendanceStatus(str, Enum):
    """Status stored on an attendance record."""

    PRESENT = "Present"
    LATE = "Late"
    ABSENT = "Absent"


class NotificationKind(str, Enum):
    SESSION_OPENED = "SessionOpened"
    SESSION_CLOSING_SOON = "SessionClosingSoon"
    SESSION_CLOSED = "SessionClosed"
