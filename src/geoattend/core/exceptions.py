class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidRecurrenceSpec(ValidationError):
    """Raised when a recurrence pattern is malformed."""


class SessionNotFound(DomainError):
    """Raised when a session id does not resolve to a stored session."""


class InvalidTransition(DomainError):
    """Raised when a lifecycle transition is not allowed from the current state."""


class StorageConflict(DomainError):
    """Raised when a conditional write lost a race; retried on the next tick."""


class CheckInError(DomainError):
    """Base class for typed check-in rejections."""

    code = "CHECK_IN_REJECTED"


class SessionNotOpen(CheckInError):
    code = "SESSION_NOT_OPEN"


class MethodNotAccepted(CheckInError):
    code = "METHOD_NOT_ACCEPTED"


class InvalidOrExpiredToken(CheckInError):
    code = "INVALID_OR_EXPIRED_TOKEN"


class OutsideGeofence(CheckInError):
    code = "OUTSIDE_GEOFENCE"


class VerifierUnavailable(CheckInError):
    code = "VERIFIER_UNAVAILABLE"


class VerificationFailed(CheckInError):
    code = "VERIFICATION_FAILED"


class AlreadyCheckedIn(CheckInError):
    code = "ALREADY_CHECKED_IN"


class DeviceAlreadyUsed(CheckInError):
    code = "DEVICE_ALREADY_USED"


class ClockSkew(CheckInError):
    code = "CLOCK_SKEW"
