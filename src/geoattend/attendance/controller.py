from __future__ import annotations

from datetime import datetime, time, timedelta

from flask import Flask, jsonify, request

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.http import as_float, as_int, iso, json_body
from ..core.constants import DEFAULT_HISTORY_LIMIT, DEFAULT_REPORT_DAYS
from ..core.enums import VerificationMethod
from ..core.exceptions import ValidationError
from ..geo.distance import Coordinate
from ..reports.service import AttendanceReportService
from .model import AttendanceRecord, CheckInAttempt


def record_to_dict(r: AttendanceRecord) -> dict:
    return {
        "record_id": r.record_id,
        "session_id": r.session_id,
        "attendee_id": r.attendee_id,
        "check_in_time": iso(r.check_in_time),
        "status": r.status.value,
        "verification_method": r.verification_method.value,
        "verified_location": (
            {"latitude": r.verified_location.latitude, "longitude": r.verified_location.longitude}
            if r.verified_location
            else None
        ),
        "device_id": r.device_id,
        "note": r.note,
    }


def attempt_from_payload(data: dict) -> CheckInAttempt:
    try:
        method = VerificationMethod(data.get("method"))
    except ValueError as e:
        raise ValidationError(f"Unknown verification method: {data.get('method')}") from e

    location = None
    raw_location = data.get("location")
    if raw_location is not None:
        if not isinstance(raw_location, dict):
            raise ValidationError("location must be an object")
        location = Coordinate(
            as_float(raw_location.get("latitude"), "latitude"),
            as_float(raw_location.get("longitude"), "longitude"),
        )

    proof = data.get("proof")
    if proof is not None and not isinstance(proof, dict):
        raise ValidationError("proof must be an object")

    return CheckInAttempt(
        attendee_id=str(data.get("attendee_id") or "").strip(),
        method=method,
        token=data.get("token"),
        location=location,
        device_id=(str(data["device_id"]).strip() or None) if data.get("device_id") else None,
        proof=proof,
    )


def _parse_report_range(args) -> tuple[datetime, datetime]:
    """Default range: last 7 days (inclusive)."""
    today = now_local().date()
    try:
        end_date = parse_iso_date(args["end"]) if args.get("end") else today
        start_date = parse_iso_date(args["start"]) if args.get("start") else end_date - timedelta(days=DEFAULT_REPORT_DAYS - 1)
    except ValueError as e:
        raise ValidationError("start/end must be YYYY-MM-DD dates") from e
    return datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)


def register(app: Flask, container) -> None:
    attendance = container.attendance_service
    reports = container.report_service

    @app.route("/api/sessions/<session_id>/checkin", methods=["POST"], endpoint="check_in")
    def check_in(session_id: str):
        record = attendance.check_in(session_id, attempt_from_payload(json_body()))
        return jsonify({"success": True, "record": record_to_dict(record)}), 201

    @app.route("/api/sessions/<session_id>/attendance", methods=["GET"], endpoint="session_attendance")
    def session_attendance(session_id: str):
        records = attendance.list_for_session(session_id)
        return jsonify({"success": True, "records": [record_to_dict(r) for r in records]})

    @app.route("/api/sessions/<session_id>/absentees", methods=["POST"], endpoint="mark_absentees")
    def mark_absentees(session_id: str):
        roster = json_body().get("roster")
        if not isinstance(roster, list):
            raise ValidationError("roster must be a list of attendee ids")
        created = attendance.mark_absentees(session_id, [str(a) for a in roster])
        return jsonify({"success": True, "created": created})

    @app.route("/api/attendees/<attendee_id>/history", methods=["GET"], endpoint="attendee_history")
    def attendee_history(attendee_id: str):
        limit = as_int(request.args.get("limit", DEFAULT_HISTORY_LIMIT), "limit")
        records = attendance.history(attendee_id, limit=limit)
        return jsonify({"success": True, "records": [record_to_dict(r) for r in records]})

    @app.route("/api/reports/attendance", methods=["GET"], endpoint="attendance_report")
    def attendance_report():
        start, end = _parse_report_range(request.args)
        data = reports.build_attendance_report(
            start=start,
            end=end,
            owner_id=request.args.get("owner_id") or None,
            session_id=request.args.get("session_id") or None,
        )
        return jsonify({"success": True, "rows": data.rows, "summary": data.summary})

    @app.route("/api/reports/attendance.csv", methods=["GET"], endpoint="attendance_report_csv")
    def attendance_report_csv():
        start, end = _parse_report_range(request.args)
        data = reports.build_attendance_report(
            start=start,
            end=end,
            owner_id=request.args.get("owner_id") or None,
            session_id=request.args.get("session_id") or None,
        )
        filename = f"attendance_report_{start.strftime('%Y%m%d')}_{end.strftime('%Y%m%d')}.csv"
        return app.response_class(
            AttendanceReportService.to_csv(data),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
