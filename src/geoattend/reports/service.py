from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..attendance.repository import AttendanceRepository
from ..core.enums import AttendanceStatus
from ..core.exceptions import ValidationError

REPORT_FIELDS = [
    "session_start",
    "session_id",
    "session_name",
    "attendee_id",
    "check_in",
    "status",
    "verification_method",
    "device_id",
]


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: list[dict]


class AttendanceReportService:
    """Read-only export over attendance records joined with their sessions."""

    def __init__(self, attendance: AttendanceRepository):
        self._attendance = attendance

    def build_attendance_report(
        self,
        *,
        start: datetime,
        end: datetime,
        owner_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ReportData:
        if end < start:
            raise ValidationError("Report end must not be before its start")

        query_rows = self._attendance.get_report_rows(start=start, end=end, owner_id=owner_id, session_id=session_id)

        summary_map: dict[str, dict] = {}
        out_rows: list[dict] = []

        for r in query_rows:
            out_rows.append(
                {
                    "session_start": r.session_start.strftime("%Y-%m-%d %H:%M"),
                    "session_id": r.session_id,
                    "session_name": r.session_name,
                    "attendee_id": r.attendee_id,
                    "check_in": r.check_in_time.strftime("%Y-%m-%d %H:%M:%S") if r.status != AttendanceStatus.ABSENT else "-",
                    "status": r.status.value,
                    "verification_method": r.verification_method.value,
                    "device_id": r.device_id or "",
                }
            )

            s = summary_map.get(r.session_id)
            if not s:
                s = {
                    "session_id": r.session_id,
                    "session_name": r.session_name,
                    "session_start": r.session_start.strftime("%Y-%m-%d %H:%M"),
                    "present": 0,
                    "late": 0,
                    "absent": 0,
                }
                summary_map[r.session_id] = s
            s[r.status.value.lower()] += 1

        summary = []
        for s in summary_map.values():
            attended = s["present"] + s["late"]
            total = attended + s["absent"]
            summary.append({**s, "total": total, "attendance_rate": f"{(attended * 100 / total) if total else 0:.0f}%"})

        summary.sort(key=lambda x: x["session_start"])
        return ReportData(rows=out_rows, summary=summary)

    @staticmethod
    def to_csv(report: ReportData) -> bytes:
        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=REPORT_FIELDS)
        writer.writeheader()
        for row in report.rows:
            writer.writerow(row)
        return out.getvalue().encode("utf-8-sig")
