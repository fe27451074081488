from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

from ..core.constants import DEFAULT_TOKEN_BYTES, DEFAULT_TOKEN_ROTATION_SECONDS
from ..core.enums import SessionStatus, VerificationMethod
from .model import Session, VerificationToken


class TokenRotator:
    """Issues and validates the scannable one-time token of an open session.

    The rotator never stores anything itself: the issued token is written onto
    the session snapshot by SessionLifecycle, which replaces any prior token.
    """

    def __init__(self, *, rotation_seconds: int = DEFAULT_TOKEN_ROTATION_SECONDS, token_bytes: int = DEFAULT_TOKEN_BYTES):
        if rotation_seconds <= 0:
            raise ValueError("rotation_seconds must be positive")
        self._window = timedelta(seconds=int(rotation_seconds))
        self._token_bytes = int(token_bytes)

    @property
    def rotation_window(self) -> timedelta:
        return self._window

    def issue(self, session: Session, now: datetime) -> VerificationToken:
        expires_at = min(now + self._window, session.end_boundary)
        return VerificationToken(
            value=secrets.token_urlsafe(self._token_bytes),
            issued_at=now,
            expires_at=expires_at,
        )

    def validate(self, session: Session, presented_value: Optional[str], now: datetime) -> bool:
        token = session.token
        if token is None or not presented_value:
            return False
        if not token.is_active(now):
            return False
        return hmac.compare_digest(token.value.encode("utf-8"), str(presented_value).encode("utf-8"))

    def needs_rotation(self, session: Session, now: datetime) -> bool:
        if session.status != SessionStatus.OPEN or not session.accepts(VerificationMethod.QR):
            return False
        if now >= session.end_boundary:
            return False
        return session.token is None or not session.token.is_active(now)
