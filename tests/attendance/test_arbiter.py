from datetime import timedelta

import pytest

from geoattend.attendance.model import CheckInAttempt
from geoattend.container import assemble
from geoattend.core.enums import AttendanceStatus, VerificationMethod
from geoattend.core.exceptions import (
    AlreadyCheckedIn,
    ClockSkew,
    DeviceAlreadyUsed,
    InvalidOrExpiredToken,
    MethodNotAccepted,
    OutsideGeofence,
    SessionNotOpen,
    ValidationError,
    VerificationFailed,
    VerifierUnavailable,
)
from geoattend.geo.distance import Coordinate

ALL_METHODS = frozenset(VerificationMethod)


def manual(attendee_id: str, **kwargs) -> CheckInAttempt:
    return CheckInAttempt(attendee_id=attendee_id, method=VerificationMethod.MANUAL, **kwargs)


@pytest.fixture
def check_in(container):
    def _check_in(session, attempt, now):
        return container.attendance_service.check_in(session.session_id, attempt, now=now)

    return _check_in


def test_status_follows_grace_period(open_session, check_in, fixed_now):
    session = open_session(opened_at=fixed_now - timedelta(minutes=2))

    early = check_in(session, manual("early"), fixed_now - timedelta(minutes=1))
    on_time = check_in(session, manual("on-time"), fixed_now + timedelta(minutes=3))
    at_grace = check_in(session, manual("at-grace"), fixed_now + timedelta(minutes=5))
    late = check_in(session, manual("late"), fixed_now + timedelta(minutes=10))

    assert early.status == AttendanceStatus.PRESENT
    assert on_time.status == AttendanceStatus.PRESENT
    assert at_grace.status == AttendanceStatus.PRESENT
    assert late.status == AttendanceStatus.LATE
    assert late.check_in_time == fixed_now + timedelta(minutes=10)
    assert late.note == "10 minutes late"
    assert on_time.note is None


def test_scheduled_session_rejects_before_method_check(make_session, check_in, fixed_now):
    session = make_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.NFC)

    with pytest.raises(SessionNotOpen):
        check_in(session, attempt, fixed_now)


def test_closed_session_rejects_check_in(container, open_session, check_in, fixed_now):
    session = open_session()
    container.session_service.force_close(session.session_id, now=fixed_now + timedelta(minutes=1))

    with pytest.raises(SessionNotOpen):
        check_in(session, manual("a-1"), fixed_now + timedelta(minutes=2))


def test_method_checked_before_proof(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.BIOMETRIC)

    with pytest.raises(MethodNotAccepted):
        check_in(session, attempt, fixed_now)


def test_qr_current_token_is_accepted(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.QR, token=session.token.value)

    record = check_in(session, attempt, fixed_now + timedelta(seconds=10))

    assert record.verification_method == VerificationMethod.QR
    assert record.status == AttendanceStatus.PRESENT
    assert record.verified_location is None


def test_qr_wrong_token_rejected(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.QR, token="guess")

    with pytest.raises(InvalidOrExpiredToken):
        check_in(session, attempt, fixed_now)


def test_qr_expired_token_rejected(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.QR, token=session.token.value)

    with pytest.raises(InvalidOrExpiredToken):
        check_in(session, attempt, fixed_now + timedelta(seconds=45))


def test_qr_superseded_token_rejected(container, open_session, check_in, fixed_now):
    session = open_session()
    later = fixed_now + timedelta(seconds=50)
    current = container.session_service.current_token(session.session_id, now=later)

    stale = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.QR, token=session.token.value)
    with pytest.raises(InvalidOrExpiredToken):
        check_in(session, stale, later)

    fresh = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.QR, token=current.value)
    assert check_in(session, fresh, later).attendee_id == "a-1"


def test_location_inside_geofence_accepted(open_session, check_in, fixed_now):
    session = open_session()
    point = Coordinate(0.0, 0.0009)
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.LOCATION, location=point)

    record = check_in(session, attempt, fixed_now)

    assert record.verified_location == point


def test_location_outside_geofence_rejected(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.LOCATION, location=Coordinate(0.0, 0.002))

    with pytest.raises(OutsideGeofence, match="222m"):
        check_in(session, attempt, fixed_now)


def test_location_missing_rejected(open_session, check_in, fixed_now):
    session = open_session()
    attempt = CheckInAttempt(attendee_id="a-1", method=VerificationMethod.LOCATION)

    with pytest.raises(OutsideGeofence):
        check_in(session, attempt, fixed_now)


@pytest.mark.parametrize("method", [VerificationMethod.BIOMETRIC, VerificationMethod.FACIAL, VerificationMethod.NFC])
def test_external_proof_delegated_to_verifier(open_session, check_in, verifier, fixed_now, method):
    session = open_session(verification_methods=ALL_METHODS)
    attempt = CheckInAttempt(attendee_id="a-1", method=method, proof={"template": "abc"})

    record = check_in(session, attempt, fixed_now)

    assert record.verification_method == method
    assert verifier.calls == [(method, attempt)]


def test_external_rejection_is_verification_failure(open_session, check_in, verifier, fixed_now):
    session = open_session(verification_methods=ALL_METHODS)
    verifier.result = False

    with pytest.raises(VerificationFailed):
        check_in(session, CheckInAttempt(attendee_id="a-1", method=VerificationMethod.FACIAL), fixed_now)


def test_verifier_timeout_is_unavailable(open_session, check_in, verifier, attendance_repo, fixed_now):
    session = open_session(verification_methods=ALL_METHODS)
    verifier.delay = 1.0

    with pytest.raises(VerifierUnavailable):
        check_in(session, CheckInAttempt(attendee_id="a-1", method=VerificationMethod.NFC), fixed_now)
    assert attendance_repo.get_for_session_and_attendee(session.session_id, "a-1") is None


def test_verifier_error_is_unavailable(open_session, check_in, verifier, fixed_now):
    session = open_session(verification_methods=ALL_METHODS)
    verifier.error = ConnectionError("reader offline")

    with pytest.raises(VerifierUnavailable):
        check_in(session, CheckInAttempt(attendee_id="a-1", method=VerificationMethod.BIOMETRIC), fixed_now)


def test_missing_verifier_is_unavailable(sessions_repo, attendance_repo, make_session, fixed_now):
    engine = assemble(sessions_repo, attendance_repo, verifier=None)
    session = make_session(verification_methods=ALL_METHODS)
    engine.session_service.force_open(session.session_id, now=fixed_now)

    try:
        with pytest.raises(VerifierUnavailable):
            engine.attendance_service.check_in(
                session.session_id,
                CheckInAttempt(attendee_id="a-1", method=VerificationMethod.NFC),
                now=fixed_now,
            )
    finally:
        engine.verifier_gateway.shutdown()


def test_second_check_in_rejected_and_first_kept(open_session, check_in, attendance_repo, fixed_now):
    session = open_session()
    first = check_in(session, manual("a-1"), fixed_now)

    with pytest.raises(AlreadyCheckedIn):
        check_in(session, manual("a-1"), fixed_now + timedelta(minutes=20))

    assert attendance_repo.get_for_session_and_attendee(session.session_id, "a-1") == first


def test_device_reused_by_another_attendee_rejected(open_session, check_in, fixed_now):
    session = open_session()
    check_in(session, manual("a-1", device_id="phone-1"), fixed_now)

    with pytest.raises(DeviceAlreadyUsed):
        check_in(session, manual("a-2", device_id="phone-1"), fixed_now + timedelta(minutes=1))
    with pytest.raises(AlreadyCheckedIn):
        check_in(session, manual("a-1", device_id="phone-1"), fixed_now + timedelta(minutes=1))


def test_same_device_allowed_across_sessions(open_session, check_in, fixed_now):
    first = open_session()
    second = open_session(name="Compilers")

    check_in(first, manual("a-1", device_id="phone-1"), fixed_now)
    assert check_in(second, manual("a-2", device_id="phone-1"), fixed_now).attendee_id == "a-2"


def test_check_in_before_session_creation_is_clock_skew(open_session, check_in, fixed_now):
    session = open_session()

    with pytest.raises(ClockSkew):
        check_in(session, manual("a-1"), session.created_at - timedelta(seconds=1))


def test_attendee_id_required(open_session, check_in, fixed_now):
    session = open_session()

    with pytest.raises(ValidationError):
        check_in(session, manual("  "), fixed_now)
