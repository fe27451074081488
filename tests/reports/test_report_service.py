from datetime import datetime, timedelta

import pytest

from geoattend.attendance.model import CheckInAttempt
from geoattend.core.enums import VerificationMethod
from geoattend.core.exceptions import ValidationError
from geoattend.reports.service import AttendanceReportService


def _manual(attendee_id, device_id=None):
    return CheckInAttempt(attendee_id=attendee_id, method=VerificationMethod.MANUAL, device_id=device_id)


@pytest.fixture
def closed_class(container, open_session, fixed_now):
    session = open_session()
    service = container.attendance_service
    service.check_in(session.session_id, _manual("a-1", "phone-1"), now=fixed_now + timedelta(minutes=1))
    service.check_in(session.session_id, _manual("a-2"), now=fixed_now + timedelta(minutes=20))
    container.session_service.force_close(session.session_id, now=fixed_now + timedelta(hours=1))
    service.mark_absentees(session.session_id, ["a-1", "a-2", "a-3"])
    return session


def test_report_rows_and_summary(container, closed_class, fixed_now):
    report = container.report_service.build_attendance_report(
        start=fixed_now - timedelta(days=1),
        end=fixed_now + timedelta(days=1),
    )

    assert [r["attendee_id"] for r in report.rows] == ["a-1", "a-2", "a-3"]
    assert report.rows[0]["check_in"] == "2024-01-01 09:01:00"
    assert report.rows[0]["device_id"] == "phone-1"
    assert report.rows[2]["check_in"] == "-"

    (summary,) = report.summary
    assert summary["session_id"] == closed_class.session_id
    assert (summary["present"], summary["late"], summary["absent"], summary["total"]) == (1, 1, 1, 3)
    assert summary["attendance_rate"] == "67%"


def test_report_filters_by_owner(container, closed_class, fixed_now):
    report = container.report_service.build_attendance_report(
        start=fixed_now - timedelta(days=1),
        end=fixed_now + timedelta(days=1),
        owner_id="someone-else",
    )

    assert report.rows == []
    assert report.summary == []


def test_report_excludes_sessions_outside_range(container, closed_class, fixed_now):
    report = container.report_service.build_attendance_report(
        start=datetime(2024, 2, 1),
        end=datetime(2024, 2, 29),
    )

    assert report.rows == []


def test_report_rejects_inverted_range(container, fixed_now):
    with pytest.raises(ValidationError):
        container.report_service.build_attendance_report(start=fixed_now, end=fixed_now - timedelta(days=1))


def test_csv_has_bom_and_header(container, closed_class, fixed_now):
    report = container.report_service.build_attendance_report(
        start=fixed_now - timedelta(days=1),
        end=fixed_now + timedelta(days=1),
    )

    data = AttendanceReportService.to_csv(report)

    assert data.startswith(b"\xef\xbb\xbf")
    lines = data.decode("utf-8-sig").splitlines()
    assert lines[0] == "session_start,session_id,session_name,attendee_id,check_in,status,verification_method,device_id"
    assert len(lines) == 4
