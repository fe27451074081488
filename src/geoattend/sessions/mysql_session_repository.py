from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional, Sequence

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError

from ..core.enums import ScheduleType, SessionStatus, VerificationMethod
from ..core.exceptions import StorageConflict
from ..database.connection import DatabaseConnection
from ..database.mysql_base import all_rows, as_bool, db_cursor, single_row
from ..geo.distance import Coordinate, Geofence
from .model import RecurrencePattern, Session, VerificationToken
from .repository import SessionRepository

_COLUMNS = (
    "session_id",
    "owner_id",
    "name",
    "latitude",
    "longitude",
    "radius_meters",
    "start_time",
    "end_time",
    "duration_minutes",
    "grace_period_minutes",
    "schedule_type",
    "recurrence_pattern",
    "auto_start",
    "auto_end",
    "verification_methods",
    "token_value",
    "token_issued_at",
    "token_expires_at",
    "status",
    "next_occurrence",
    "series_id",
    "series_start",
    "occurrence_index",
    "closing_soon_sent",
    "archived",
    "created_at",
    "opened_at",
    "closed_at",
)

_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM sessions"

# Columns SessionLifecycle writes.
_LIFECYCLE_COLUMNS = (
    "status",
    "token_value",
    "token_issued_at",
    "token_expires_at",
    "next_occurrence",
    "closing_soon_sent",
    "archived",
    "opened_at",
    "closed_at",
)


def _to_row(s: Session) -> Dict[str, Any]:
    return {
        "session_id": s.session_id,
        "owner_id": s.owner_id,
        "name": s.name,
        "latitude": s.geofence.center.latitude if s.geofence else None,
        "longitude": s.geofence.center.longitude if s.geofence else None,
        "radius_meters": s.geofence.radius_meters if s.geofence else None,
        "start_time": s.start_time,
        "end_time": s.end_time,
        "duration_minutes": int(s.duration_minutes),
        "grace_period_minutes": int(s.grace_period_minutes),
        "schedule_type": s.schedule_type.value,
        "recurrence_pattern": json.dumps(s.recurrence.to_dict()) if s.recurrence else None,
        "auto_start": int(s.auto_start),
        "auto_end": int(s.auto_end),
        "verification_methods": ",".join(sorted(m.value for m in s.verification_methods)),
        "token_value": s.token.value if s.token else None,
        "token_issued_at": s.token.issued_at if s.token else None,
        "token_expires_at": s.token.expires_at if s.token else None,
        "status": s.status.value,
        "next_occurrence": s.next_occurrence,
        "series_id": s.series_id,
        "series_start": s.series_start,
        "occurrence_index": int(s.occurrence_index),
        "closing_soon_sent": int(s.closing_soon_sent),
        "archived": int(s.archived),
        "created_at": s.created_at,
        "opened_at": s.opened_at,
        "closed_at": s.closed_at,
    }


def _from_row(r: Dict[str, Any]) -> Session:
    geofence = None
    if r.get("latitude") is not None and r.get("longitude") is not None and r.get("radius_meters") is not None:
        geofence = Geofence(
            center=Coordinate(float(r["latitude"]), float(r["longitude"])),
            radius_meters=float(r["radius_meters"]),
        )

    token = None
    if r.get("token_value") and r.get("token_expires_at"):
        token = VerificationToken(
            value=r["token_value"],
            issued_at=r.get("token_issued_at") or r["token_expires_at"],
            expires_at=r["token_expires_at"],
        )

    recurrence = None
    if r.get("recurrence_pattern"):
        recurrence = RecurrencePattern.from_dict(json.loads(r["recurrence_pattern"]))

    methods = frozenset(VerificationMethod(m) for m in str(r["verification_methods"]).split(",") if m)

    return Session(
        session_id=r["session_id"],
        owner_id=r["owner_id"],
        name=r["name"],
        start_time=r["start_time"],
        verification_methods=methods,
        created_at=r["created_at"],
        geofence=geofence,
        end_time=r.get("end_time"),
        duration_minutes=int(r.get("duration_minutes") or 0),
        grace_period_minutes=int(r.get("grace_period_minutes") or 0),
        schedule_type=ScheduleType(r["schedule_type"]),
        recurrence=recurrence,
        auto_start=as_bool(r.get("auto_start")),
        auto_end=as_bool(r.get("auto_end")),
        status=SessionStatus(r["status"]),
        token=token,
        next_occurrence=r.get("next_occurrence"),
        series_id=r.get("series_id"),
        series_start=r.get("series_start"),
        occurrence_index=int(r.get("occurrence_index") or 1),
        closing_soon_sent=as_bool(r.get("closing_soon_sent")),
        archived=as_bool(r.get("archived")),
        opened_at=r.get("opened_at"),
        closed_at=r.get("closed_at"),
    )


class MySQLSessionRepository(SessionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, session_id: str) -> Optional[Session]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(f"{_SELECT} WHERE session_id=%s", (session_id,))
            r = single_row(cur)
            return _from_row(r) if r else None

    def add(self, session: Session) -> None:
        row = _to_row(session)
        placeholders = ", ".join(["%s"] * len(_COLUMNS))
        try:
            with db_cursor(self._conn_factory) as cur:
                cur.execute(
                    f"INSERT INTO sessions ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                    tuple(row[c] for c in _COLUMNS),
                )
        except IntegrityError as e:
            if e.errno == errorcode.ER_DUP_ENTRY:
                raise StorageConflict(f"Session {session.session_id} already exists") from e
            raise

    def update(self, session: Session) -> None:
        row = _to_row(session)
        columns = [c for c in _COLUMNS if c != "session_id"]
        assignments = ", ".join(f"{c}=%s" for c in columns)
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"UPDATE sessions SET {assignments} WHERE session_id=%s",
                tuple(row[c] for c in columns) + (session.session_id,),
            )

    def compare_and_set(self, session: Session, *, expected_status: SessionStatus) -> bool:
        row = _to_row(session)
        assignments = ", ".join(f"{c}=%s" for c in _LIFECYCLE_COLUMNS)
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"UPDATE sessions SET {assignments} WHERE session_id=%s AND status=%s",
                tuple(row[c] for c in _LIFECYCLE_COLUMNS) + (session.session_id, expected_status.value),
            )
            return cur.rowcount > 0

    def list_by_status(self, statuses: Iterable[SessionStatus]) -> Sequence[Session]:
        values = [s.value for s in statuses]
        if not values:
            return []
        placeholders = ", ".join(["%s"] * len(values))
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"{_SELECT} WHERE status IN ({placeholders}) AND archived=0 ORDER BY start_time ASC",
                tuple(values),
            )
            return [_from_row(r) for r in all_rows(cur)]

    def list_for_owner(self, owner_id: str) -> Sequence[Session]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(f"{_SELECT} WHERE owner_id=%s ORDER BY start_time DESC", (owner_id,))
            return [_from_row(r) for r in all_rows(cur)]

    def find_occurrence(self, series_id: str, occurrence_index: int) -> Optional[Session]:
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"{_SELECT} WHERE series_id=%s AND occurrence_index=%s",
                (series_id, int(occurrence_index)),
            )
            r = single_row(cur)
            return _from_row(r) if r else None

    def list_awaiting_next_occurrence(self) -> Sequence[Session]:
        columns = ", ".join(f"s.{c}" for c in _COLUMNS)
        with db_cursor(self._conn_factory) as cur:
            cur.execute(
                f"""
                SELECT {columns}
                FROM sessions s
                LEFT JOIN sessions n
                    ON n.series_id = s.series_id AND n.occurrence_index = s.occurrence_index + 1
                WHERE s.status=%s AND s.archived=0
                    AND s.series_id IS NOT NULL AND s.next_occurrence IS NOT NULL
                    AND n.session_id IS NULL
                ORDER BY s.closed_at ASC
                """,
                (SessionStatus.CLOSED.value,),
            )
            return [_from_row(r) for r in all_rows(cur)]
