from datetime import timedelta

import pytest

from geoattend.core.enums import SessionStatus
from geoattend.main import create_app


@pytest.fixture
def client(container, monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    app = create_app(container=container)
    return app.test_client()


@pytest.fixture
def created(client):
    resp = client.post(
        "/api/sessions",
        json={
            "owner_id": "lecturer-1",
            "name": "Networks",
            "start_time": "2030-01-07T09:00:00",
            "duration_minutes": 90,
            "verification_methods": ["QR", "Location", "Manual"],
            "geofence": {"latitude": 0.0, "longitude": 0.0, "radius_meters": 100},
            "schedule_type": "weekly",
            "recurrence": {"frequency": "weekly", "days_of_week": [1, 3]},
        },
    )
    assert resp.status_code == 201
    return resp.get_json()["session"]


def test_create_session(created):
    assert created["status"] == "Scheduled"
    assert created["next_occurrence"] == "2030-01-09T09:00:00"
    assert created["verification_methods"] == ["Location", "Manual", "QR"]


def test_create_session_validation_error(client):
    resp = client.post(
        "/api/sessions",
        json={"owner_id": "lecturer-1", "name": "Networks", "start_time": "not a date"},
    )

    assert resp.status_code == 400
    assert resp.get_json() == {
        "success": False,
        "code": "VALIDATION_ERROR",
        "message": "start_time must be an ISO-8601 timestamp",
    }


def test_invalid_recurrence_rejected(client):
    resp = client.post(
        "/api/sessions",
        json={
            "owner_id": "lecturer-1",
            "name": "Networks",
            "start_time": "2030-01-07T09:00:00",
            "schedule_type": "custom",
            "recurrence": {"frequency": "weekly", "interval": 0, "days_of_week": [1]},
        },
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "INVALID_RECURRENCE_SPEC"


def test_unknown_session_is_404(client):
    resp = client.get("/api/sessions/missing")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "SESSION_NOT_FOUND"


def test_edit_then_open_then_edit_conflicts(client, created):
    sid = created["session_id"]

    resp = client.patch(f"/api/sessions/{sid}", json={"name": "Computer Networks"})
    assert resp.status_code == 200
    assert resp.get_json()["session"]["name"] == "Computer Networks"

    assert client.post(f"/api/sessions/{sid}/open").status_code == 200

    resp = client.patch(f"/api/sessions/{sid}", json={"name": "Again"})
    assert resp.status_code == 409
    assert resp.get_json()["code"] == "INVALID_TRANSITION"


def test_qr_check_in_flow(client, created):
    sid = created["session_id"]
    client.post(f"/api/sessions/{sid}/open")

    token = client.get(f"/api/sessions/{sid}/token").get_json()["token"]
    assert token["value"]

    resp = client.post(
        f"/api/sessions/{sid}/checkin",
        json={"attendee_id": "student-1", "method": "QR", "token": token["value"], "device_id": "phone-1"},
    )
    assert resp.status_code == 201
    record = resp.get_json()["record"]
    assert record["attendee_id"] == "student-1"
    assert record["verification_method"] == "QR"

    again = client.post(
        f"/api/sessions/{sid}/checkin",
        json={"attendee_id": "student-1", "method": "QR", "token": token["value"]},
    )
    assert again.status_code == 409
    assert again.get_json()["code"] == "ALREADY_CHECKED_IN"


def test_check_in_rejections_map_to_codes(client, created):
    sid = created["session_id"]

    not_open = client.post(f"/api/sessions/{sid}/checkin", json={"attendee_id": "s-1", "method": "Manual"})
    assert not_open.status_code == 422
    assert not_open.get_json()["code"] == "SESSION_NOT_OPEN"

    client.post(f"/api/sessions/{sid}/open")

    far = client.post(
        f"/api/sessions/{sid}/checkin",
        json={"attendee_id": "s-1", "method": "Location", "location": {"latitude": 0.0, "longitude": 0.002}},
    )
    assert far.status_code == 422
    assert far.get_json()["code"] == "OUTSIDE_GEOFENCE"

    nfc = client.post(f"/api/sessions/{sid}/checkin", json={"attendee_id": "s-1", "method": "NFC"})
    assert nfc.status_code == 422
    assert nfc.get_json()["code"] == "METHOD_NOT_ACCEPTED"

    bogus = client.post(f"/api/sessions/{sid}/checkin", json={"attendee_id": "s-1", "method": "Telepathy"})
    assert bogus.status_code == 400


def test_qr_image_only_while_token_active(client, created):
    sid = created["session_id"]

    assert client.get(f"/api/sessions/{sid}/qr.png").status_code == 404

    client.post(f"/api/sessions/{sid}/open")
    resp = client.get(f"/api/sessions/{sid}/qr.png")
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data.startswith(b"\x89PNG")


def test_close_materializes_and_absentees(client, container, created):
    sid = created["session_id"]
    client.post(f"/api/sessions/{sid}/open")
    client.post(f"/api/sessions/{sid}/checkin", json={"attendee_id": "s-1", "method": "Manual"})

    closed = client.post(f"/api/sessions/{sid}/close").get_json()["session"]
    assert closed["status"] == SessionStatus.CLOSED.value

    listed = client.get("/api/sessions", query_string={"owner_id": "lecturer-1"}).get_json()["sessions"]
    assert {s["occurrence_index"] for s in listed} == {1, 2}

    resp = client.post(f"/api/sessions/{sid}/absentees", json={"roster": ["s-1", "s-2"]})
    assert resp.get_json() == {"success": True, "created": 1}

    records = client.get(f"/api/sessions/{sid}/attendance").get_json()["records"]
    assert {r["attendee_id"]: r["status"] for r in records} == {"s-1": "Present", "s-2": "Absent"}

    history = client.get("/api/attendees/s-2/history").get_json()["records"]
    assert [r["status"] for r in history] == ["Absent"]


def test_report_csv_download(client, created):
    sid = created["session_id"]
    client.post(f"/api/sessions/{sid}/open")
    client.post(f"/api/sessions/{sid}/checkin", json={"attendee_id": "s-1", "method": "Manual"})

    resp = client.get(
        "/api/reports/attendance.csv",
        query_string={"start": "2030-01-01", "end": "2030-01-31", "owner_id": "lecturer-1"},
    )

    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "attachment; filename=attendance_report_20300101_20300131.csv" in resp.headers["Content-Disposition"]
    assert "s-1" in resp.data.decode("utf-8-sig")


def test_report_bad_dates(client):
    resp = client.get("/api/reports/attendance", query_string={"start": "yesterday"})
    assert resp.status_code == 400


@pytest.mark.parametrize("flag", ["false", "true", 0, 1, None])
def test_non_boolean_flags_rejected(client, flag):
    resp = client.post(
        "/api/sessions",
        json={
            "owner_id": "lecturer-1",
            "name": "Networks",
            "start_time": "2030-01-07T09:00:00",
            "auto_start": flag,
        },
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"


def test_patch_rejects_string_flag(client, created):
    resp = client.patch(f"/api/sessions/{created['session_id']}", json={"auto_end": "false"})

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "auto_end must be true or false"


@pytest.mark.parametrize("radius", [float("nan"), float("inf")])
def test_non_finite_radius_rejected(client, radius):
    resp = client.post(
        "/api/sessions",
        json={
            "owner_id": "lecturer-1",
            "name": "Networks",
            "start_time": "2030-01-07T09:00:00",
            "verification_methods": ["Location"],
            "geofence": {"latitude": 0.0, "longitude": 0.0, "radius_meters": radius},
        },
    )

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "VALIDATION_ERROR"
