from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError

from ..core.enums import AttendanceStatus, VerificationMethod
from ..database.connection import DatabaseConnection
from ..database.mysql_base import all_rows, db_cursor, single_row
from ..geo.distance import Coordinate
from .model import AttendanceRecord, AttendanceReportRow
from .repository import AttendanceRepository

_SELECT = """
    SELECT record_id, session_id, attendee_id, check_in_time, status,
           verification_method, latitude, longitude, device_id, note
    FROM attendance_records
"""


def _from_row(r: Dict[str, Any]) -> AttendanceRecord:
    location = None
    if r.get("latitude") is not None and r.get("longitude") is not None:
        location = Coordinate(float(r["latitude"]), float(r["longitude"]))
    return AttendanceRecord(
        record_id=r["record_id"],
        session_id=r["session_id"],
        attendee_id=r["attendee_id"],
        check_in_time=r["check_in_time"],
        status=AttendanceStatus(r["status"]),
        verification_method=VerificationMethod(r["verification_method"]),
        verified_location=location,
        device_id=r.get("device_id"),
        note=r.get("note"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def insert_if_absent(self, record: AttendanceRecord) -> bool:
        # uq_attendance_session_attendee makes the duplicate check atomic.
        try:
            with db_cursor(self._conn_factory) as cur:
                cur.execute(
                    """
                    INSERT INTO attendance_records(
                        record_id, session_id, attendee_id, check_in_time, status,
                        verification_method, latitude, longitude, device_id, note
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        record.record_id,
                        record.session_id,
                        record.attendee_id,
                        record.check_in_time,
                        record.status.value,
                        record.verification_method.value,
                        record.verified_location.latitude if record.verified_location else None,
                        record.verified_location.longitude if record.verified_location else None,
                        record.device_id,
                        record.note,
                    ),
                )
        except IntegrityError as e:
            if e.errno == errorcode.ER_DUP_ENTRY:
                return False
            raise
        return True

    def get_for_session_and_attendee(self, session_id: str, attendee_id: str) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(f"{_SELECT} WHERE session_id=%s AND attendee_id=%s", (session_id, attendee_id))
            r = single_row(cur)
            return _from_row(r) if r else None

    def find_by_device(self, session_id: str, device_id: str) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"{_SELECT} WHERE session_id=%s AND device_id=%s ORDER BY check_in_time ASC LIMIT 1",
                (session_id, device_id),
            )
            r = single_row(cur)
            return _from_row(r) if r else None

    def list_for_session(self, session_id: str) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(f"{_SELECT} WHERE session_id=%s ORDER BY check_in_time ASC", (session_id,))
            return [_from_row(r) for r in all_rows(cur)]

    def get_recent_for_attendee(self, attendee_id: str, limit: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"{_SELECT} WHERE attendee_id=%s ORDER BY check_in_time DESC LIMIT %s",
                (attendee_id, int(limit)),
            )
            return [_from_row(r) for r in all_rows(cur)]

    def get_report_rows(
        self,
        *,
        start: datetime,
        end: datetime,
        owner_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Sequence[AttendanceReportRow]:
        clauses = ["s.start_time BETWEEN %s AND %s"]
        params: list[object] = [start, end]

        if owner_id is not None:
            clauses.append("s.owner_id=%s")
            params.append(owner_id)
        if session_id is not None:
            clauses.append("s.session_id=%s")
            params.append(session_id)

        where = " AND ".join(clauses)

        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"""
                SELECT
                    s.session_id, s.name AS session_name, s.owner_id, s.start_time AS session_start,
                    ar.attendee_id, ar.check_in_time, ar.status, ar.verification_method, ar.device_id
                FROM attendance_records ar
                JOIN sessions s ON s.session_id = ar.session_id
                WHERE {where}
                ORDER BY s.start_time ASC, ar.check_in_time ASC
                """,
                tuple(params),
            )
            return [
                AttendanceReportRow(
                    session_id=r["session_id"],
                    session_name=r["session_name"],
                    owner_id=r["owner_id"],
                    session_start=r["session_start"],
                    attendee_id=r["attendee_id"],
                    check_in_time=r["check_in_time"],
                    status=AttendanceStatus(r["status"]),
                    verification_method=VerificationMethod(r["verification_method"]),
                    device_id=r.get("device_id"),
                )
                for r in all_rows(cur)
            ]
