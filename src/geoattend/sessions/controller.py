from __future__ import annotations

import io
from dataclasses import replace
from typing import Optional

import qrcode
from flask import Flask, jsonify, request, send_file

from ..common.datetime_utils import now_local
from ..common.http import as_bool, as_float, as_int, iso, json_body, optional_datetime, required_datetime
from ..core.constants import DEFAULT_DURATION_MINUTES, DEFAULT_GEOFENCE_RADIUS_METERS, DEFAULT_GRACE_MINUTES
from ..core.enums import ScheduleType, VerificationMethod
from ..core.exceptions import InvalidRecurrenceSpec, ValidationError
from ..geo.distance import Coordinate, Geofence
from .model import RecurrencePattern, Session, SessionDraft


def session_to_dict(s: Session) -> dict:
    return {
        "session_id": s.session_id,
        "owner_id": s.owner_id,
        "name": s.name,
        "status": s.status.value,
        "start_time": iso(s.start_time),
        "end_time": iso(s.end_boundary),
        "duration_minutes": s.duration_minutes,
        "grace_period_minutes": s.grace_period_minutes,
        "schedule_type": s.schedule_type.value,
        "recurrence": s.recurrence.to_dict() if s.recurrence else None,
        "auto_start": s.auto_start,
        "auto_end": s.auto_end,
        "verification_methods": sorted(m.value for m in s.verification_methods),
        "geofence": (
            {
                "latitude": s.geofence.center.latitude,
                "longitude": s.geofence.center.longitude,
                "radius_meters": s.geofence.radius_meters,
            }
            if s.geofence
            else None
        ),
        "next_occurrence": iso(s.next_occurrence),
        "series_id": s.series_id,
        "occurrence_index": s.occurrence_index,
        "archived": s.archived,
        "opened_at": iso(s.opened_at),
        "closed_at": iso(s.closed_at),
    }


def _parse_geofence(data: dict) -> Optional[Geofence]:
    raw = data.get("geofence")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("geofence must be an object")
    center = Coordinate(as_float(raw.get("latitude"), "latitude"), as_float(raw.get("longitude"), "longitude"))
    radius = raw.get("radius_meters", DEFAULT_GEOFENCE_RADIUS_METERS)
    return Geofence(center=center, radius_meters=as_float(radius, "radius_meters"))


def _parse_recurrence(data: dict) -> Optional[RecurrencePattern]:
    raw = data.get("recurrence")
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise InvalidRecurrenceSpec("recurrence must be an object")
    try:
        return RecurrencePattern.from_dict(raw)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidRecurrenceSpec(f"Malformed recurrence pattern: {e}") from e


def _parse_methods(data: dict) -> frozenset:
    raw = data.get("verification_methods")
    if raw is None:
        return frozenset({VerificationMethod.QR})
    if not isinstance(raw, list):
        raise ValidationError("verification_methods must be a list")
    try:
        return frozenset(VerificationMethod(m) for m in raw)
    except ValueError as e:
        raise ValidationError(f"Unknown verification method: {e}") from e


def _parse_schedule_type(value) -> ScheduleType:
    try:
        return ScheduleType(value)
    except ValueError as e:
        raise ValidationError(f"Unknown schedule_type: {value}") from e


def draft_from_payload(data: dict) -> SessionDraft:
    return SessionDraft(
        owner_id=str(data.get("owner_id") or ""),
        name=str(data.get("name") or ""),
        start_time=required_datetime(data, "start_time"),
        verification_methods=_parse_methods(data),
        geofence=_parse_geofence(data),
        end_time=optional_datetime(data, "end_time"),
        duration_minutes=as_int(data.get("duration_minutes", DEFAULT_DURATION_MINUTES), "duration_minutes"),
        grace_period_minutes=as_int(data.get("grace_period_minutes", DEFAULT_GRACE_MINUTES), "grace_period_minutes"),
        schedule_type=_parse_schedule_type(data.get("schedule_type", ScheduleType.ONE_TIME.value)),
        recurrence=_parse_recurrence(data),
        auto_start=as_bool(data.get("auto_start", False), "auto_start"),
        auto_end=as_bool(data.get("auto_end", False), "auto_end"),
    )


def apply_changes(current: Session, data: dict) -> SessionDraft:
    """Overlay a partial payload on the stored session."""
    draft = SessionDraft(
        owner_id=current.owner_id,
        name=current.name,
        start_time=current.start_time,
        verification_methods=current.verification_methods,
        geofence=current.geofence,
        end_time=current.end_time,
        duration_minutes=current.duration_minutes,
        grace_period_minutes=current.grace_period_minutes,
        schedule_type=current.schedule_type,
        recurrence=current.recurrence,
        auto_start=current.auto_start,
        auto_end=current.auto_end,
    )

    changes: dict = {}
    if "name" in data:
        changes["name"] = str(data.get("name") or "")
    if "start_time" in data:
        changes["start_time"] = required_datetime(data, "start_time")
    if "end_time" in data:
        changes["end_time"] = optional_datetime(data, "end_time")
    if "duration_minutes" in data:
        changes["duration_minutes"] = as_int(data["duration_minutes"], "duration_minutes")
    if "grace_period_minutes" in data:
        changes["grace_period_minutes"] = as_int(data["grace_period_minutes"], "grace_period_minutes")
    if "verification_methods" in data:
        changes["verification_methods"] = _parse_methods(data)
    if "geofence" in data:
        changes["geofence"] = _parse_geofence(data)
    if "schedule_type" in data:
        changes["schedule_type"] = _parse_schedule_type(data["schedule_type"])
    if "recurrence" in data:
        changes["recurrence"] = _parse_recurrence(data)
    if "auto_start" in data:
        changes["auto_start"] = as_bool(data["auto_start"], "auto_start")
    if "auto_end" in data:
        changes["auto_end"] = as_bool(data["auto_end"], "auto_end")

    return replace(draft, **changes)


def register(app: Flask, container) -> None:
    sessions = container.session_service

    @app.route("/api/sessions", methods=["POST"], endpoint="create_session")
    def create_session():
        created = sessions.create_session(draft_from_payload(json_body()))
        return jsonify({"success": True, "session": session_to_dict(created)}), 201

    @app.route("/api/sessions", methods=["GET"], endpoint="list_sessions")
    def list_sessions():
        owner_id = (request.args.get("owner_id") or "").strip()
        if not owner_id:
            raise ValidationError("owner_id is required")
        return jsonify({"success": True, "sessions": [session_to_dict(s) for s in sessions.list_for_owner(owner_id)]})

    @app.route("/api/sessions/<session_id>", methods=["GET"], endpoint="get_session")
    def get_session(session_id: str):
        return jsonify({"success": True, "session": session_to_dict(sessions.get(session_id))})

    @app.route("/api/sessions/<session_id>", methods=["PATCH"], endpoint="edit_session")
    def edit_session(session_id: str):
        draft = apply_changes(sessions.get(session_id), json_body())
        return jsonify({"success": True, "session": session_to_dict(sessions.edit_session(session_id, draft))})

    @app.route("/api/sessions/<session_id>/open", methods=["POST"], endpoint="open_session")
    def open_session(session_id: str):
        return jsonify({"success": True, "session": session_to_dict(sessions.force_open(session_id))})

    @app.route("/api/sessions/<session_id>/close", methods=["POST"], endpoint="close_session")
    def close_session(session_id: str):
        return jsonify({"success": True, "session": session_to_dict(sessions.force_close(session_id))})

    @app.route("/api/sessions/<session_id>/cancel", methods=["POST"], endpoint="cancel_session")
    def cancel_session(session_id: str):
        return jsonify({"success": True, "session": session_to_dict(sessions.cancel(session_id))})

    @app.route("/api/sessions/<session_id>/archive", methods=["POST"], endpoint="archive_session")
    def archive_session(session_id: str):
        return jsonify({"success": True, "session": session_to_dict(sessions.archive(session_id))})

    @app.route("/api/sessions/<session_id>/token", methods=["GET"], endpoint="session_token")
    def session_token(session_id: str):
        token = sessions.current_token(session_id)
        if token is None:
            return jsonify({"success": True, "token": None})
        return jsonify(
            {
                "success": True,
                "token": {
                    "value": token.value,
                    "issued_at": iso(token.issued_at),
                    "expires_at": iso(token.expires_at),
                    "expires_in_seconds": max(0, int((token.expires_at - now_local()).total_seconds())),
                },
            }
        )

    @app.route("/api/sessions/<session_id>/qr.png", methods=["GET"], endpoint="session_qr_image")
    def session_qr_image(session_id: str):
        """Render the session's current QR token for display in the room."""
        token = sessions.current_token(session_id)
        if token is None:
            return jsonify({"success": False, "code": "NO_ACTIVE_TOKEN", "message": "Session has no active QR token"}), 404

        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=2,
        )
        qr.add_data(token.value)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)

        response = send_file(buf, mimetype="image/png")
        response.headers["Cache-Control"] = "no-store"
        return response
