"""JSON helpers shared by the Flask controllers."""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from ..core.exceptions import (
    AlreadyCheckedIn,
    CheckInError,
    DeviceAlreadyUsed,
    DomainError,
    InvalidTransition,
    SessionNotFound,
    StorageConflict,
    ValidationError,
    VerifierUnavailable,
)
from .datetime_utils import parse_iso_datetime

logger = logging.getLogger(__name__)


def status_code_for(error: DomainError) -> int:
    if isinstance(error, (AlreadyCheckedIn, DeviceAlreadyUsed)):
        return 409
    if isinstance(error, VerifierUnavailable):
        return 503
    if isinstance(error, CheckInError):
        return 422
    if isinstance(error, SessionNotFound):
        return 404
    if isinstance(error, (InvalidTransition, StorageConflict)):
        return 409
    return 400


def error_code_for(error: DomainError) -> str:
    code = getattr(error, "code", None)
    if code:
        return code
    # InvalidRecurrenceSpec -> INVALID_RECURRENCE_SPEC
    name = type(error).__name__
    return "".join(f"_{c}" if c.isupper() and i else c for i, c in enumerate(name)).upper()


def error_response(error: DomainError):
    return (
        jsonify({"success": False, "code": error_code_for(error), "message": str(error)}),
        status_code_for(error),
    )


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(DomainError)
    def handle_domain_error(e: DomainError):
        return error_response(e)

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"success": False, "code": e.name.upper().replace(" ", "_"), "message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "code": "INTERNAL_ERROR", "message": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def optional_datetime(data: dict, key: str) -> Optional[datetime]:
    try:
        return parse_iso_datetime(data.get(key))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be an ISO-8601 timestamp") from e


def required_datetime(data: dict, key: str) -> datetime:
    value = optional_datetime(data, key)
    if value is None:
        raise ValidationError(f"{key} is required")
    return value


def as_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be an integer") from e


def as_float(value: Any, key: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be a number") from e
    if not math.isfinite(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def as_bool(value: Any, key: str) -> bool:
    """JSON booleans only; strings such as "false" are rejected."""
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be true or false")
    return value


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
