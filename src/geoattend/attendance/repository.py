from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol, Sequence

from .model import AttendanceRecord, AttendanceReportRow


class AttendanceRepository(Protocol):
    def insert_if_absent(self, record: AttendanceRecord) -> bool:
        """Atomically insert unless (session_id, attendee_id) already has a record.

        Returns False when a record already exists; never overwrites.
        """

        raise NotImplementedError

    def get_for_session_and_attendee(self, session_id: str, attendee_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def find_by_device(self, session_id: str, device_id: str) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def list_for_session(self, session_id: str) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def get_recent_for_attendee(self, attendee_id: str, limit: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def get_report_rows(
        self,
        *,
        start: datetime,
        end: datetime,
        owner_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Sequence[AttendanceReportRow]:
        raise NotImplementedError
