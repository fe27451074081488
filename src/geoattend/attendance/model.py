from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import AttendanceStatus, VerificationMethod
from ..geo.distance import Coordinate


@dataclass(frozen=True)
class CheckInAttempt:
    """Raw check-in request as submitted by an attendee's device."""

    attendee_id: str
    method: VerificationMethod
    token: Optional[str] = None
    location: Optional[Coordinate] = None
    device_id: Optional[str] = None
    proof: Optional[dict] = None


@dataclass(frozen=True)
class AttendanceRecord:
    """Accepted check-in. References its session by id only."""

    record_id: str
    session_id: str
    attendee_id: str
    check_in_time: datetime
    status: AttendanceStatus
    verification_method: VerificationMethod
    verified_location: Optional[Coordinate] = None
    device_id: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class AttendanceReportRow:
    """Read-model for reports/exports (record joined with its session)."""

    session_id: str
    session_name: str
    owner_id: str
    session_start: datetime
    attendee_id: str
    check_in_time: datetime
    status: AttendanceStatus
    verification_method: VerificationMethod
    device_id: Optional[str] = None
