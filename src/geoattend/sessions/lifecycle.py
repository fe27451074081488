"""Session state machine: Scheduled -> Open -> Closed.

SessionLifecycle is the only writer of ``status`` and ``token``. Every
mutation happens under the session's lock and is persisted with a
compare-and-set on the previous status, so a lost race surfaces as
StorageConflict instead of a speculative write.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterator, List, Optional

from ..core.constants import DEFAULT_CLOSING_SOON_MINUTES
from ..core.enums import NotificationKind, SessionStatus, VerificationMethod
from ..core.exceptions import InvalidTransition, SessionNotFound, StorageConflict
from ..notifications.events import LoggingNotificationRequester, NotificationEvent, NotificationRequester, fire_and_forget
from .locks import SessionLockRegistry
from .model import Session, VerificationToken
from .repository import SessionRepository
from .tokens import TokenRotator

logger = logging.getLogger(__name__)


class Transition(str, Enum):
    OPENED = "opened"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    TOKEN_ROTATED = "token_rotated"
    CLOSING_SOON = "closing_soon"


class SessionLifecycle:
    def __init__(
        self,
        sessions: SessionRepository,
        tokens: TokenRotator,
        *,
        locks: Optional[SessionLockRegistry] = None,
        notifier: Optional[NotificationRequester] = None,
        closing_soon_minutes: int = DEFAULT_CLOSING_SOON_MINUTES,
    ):
        self._sessions = sessions
        self._tokens = tokens
        self._locks = locks or SessionLockRegistry()
        self._notifier = notifier or LoggingNotificationRequester()
        self._closing_soon = timedelta(minutes=int(closing_soon_minutes))

    @property
    def tokens(self) -> TokenRotator:
        return self._tokens

    @contextmanager
    def locked(self, session_id: str) -> Iterator[Session]:
        """Hold the session lock and yield a consistent snapshot."""
        with self._locks.hold(session_id):
            yield self._load(session_id)

    def snapshot(self, session_id: str) -> Session:
        with self.locked(session_id) as session:
            return session

    def open(self, session_id: str, now: datetime, *, manual: bool = False) -> Session:
        """Scheduled -> Open.

        Automatic opening needs ``auto_start`` and ``now >= start_time``; an
        authority may open at any time.
        """
        with self.locked(session_id) as session:
            if session.status != SessionStatus.SCHEDULED:
                raise InvalidTransition(f"Cannot open a session that is {session.status.value}")
            if not manual:
                if not session.auto_start:
                    raise InvalidTransition("Session does not start automatically")
                if now < session.start_time:
                    raise InvalidTransition("Session has not reached its start time")
            return self._open(session, now)

    def close(self, session_id: str, now: datetime, *, manual: bool = False) -> Session:
        """Open -> Closed.

        Automatic closing needs ``auto_end`` and ``now >= end boundary``; an
        authority may close at any time.
        """
        with self.locked(session_id) as session:
            if session.status != SessionStatus.OPEN:
                raise InvalidTransition(f"Cannot close a session that is {session.status.value}")
            if not manual:
                if not session.auto_end:
                    raise InvalidTransition("Session does not end automatically")
                if now < session.end_boundary:
                    raise InvalidTransition("Session has not reached its end time")
            return self._close(session, now)

    def cancel(self, session_id: str, now: datetime) -> Session:
        """Authority override: Scheduled -> Closed without ever opening."""
        with self.locked(session_id) as session:
            if session.status != SessionStatus.SCHEDULED:
                raise InvalidTransition(f"Cannot cancel a session that is {session.status.value}")
            closed = replace(session, status=SessionStatus.CLOSED, token=None, closed_at=now)
            self._save(closed, expected_status=SessionStatus.SCHEDULED)
            logger.info("session cancelled session=%s", session.session_id)
            return closed

    def current_token(self, session_id: str, now: datetime) -> Optional[VerificationToken]:
        """Active token of an open QR session, rotating it first when expired."""
        with self.locked(session_id) as session:
            if self._tokens.needs_rotation(session, now):
                session = self._rotate(session, now)
            if session.token is not None and session.token.is_active(now):
                return session.token
            return None

    def tick(self, session_id: str, now: datetime) -> List[Transition]:
        """Evaluate everything due for one session.

        Safe to call repeatedly: a second call at the same instant finds
        nothing left to do.
        """
        transitions: List[Transition] = []
        with self.locked(session_id) as session:
            if session.archived:
                return transitions

            if session.status == SessionStatus.SCHEDULED and session.auto_start and now >= session.start_time:
                session = self._open(session, now)
                transitions.append(Transition.OPENED)

            if session.status != SessionStatus.OPEN:
                return transitions

            if session.auto_end and now >= session.end_boundary:
                self._close(session, now)
                transitions.append(Transition.CLOSED)
                return transitions

            if self._tokens.needs_rotation(session, now):
                session = self._rotate(session, now)
                transitions.append(Transition.TOKEN_ROTATED)

            if not session.closing_soon_sent and now >= session.end_boundary - self._closing_soon:
                session = replace(session, closing_soon_sent=True)
                self._save(session, expected_status=SessionStatus.OPEN)
                fire_and_forget(
                    self._notifier,
                    NotificationEvent.for_session(NotificationKind.SESSION_CLOSING_SOON, session, now),
                )
                transitions.append(Transition.CLOSING_SOON)

        return transitions

    def _load(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    def _save(self, session: Session, *, expected_status: SessionStatus) -> None:
        if not self._sessions.compare_and_set(session, expected_status=expected_status):
            raise StorageConflict(f"Session {session.session_id} changed concurrently")

    def _open(self, session: Session, now: datetime) -> Session:
        opened = replace(session, status=SessionStatus.OPEN, opened_at=now, token=None)
        if opened.accepts(VerificationMethod.QR):
            opened = replace(opened, token=self._tokens.issue(opened, now))
        self._save(opened, expected_status=SessionStatus.SCHEDULED)
        logger.info("session opened session=%s at=%s", session.session_id, now.isoformat())
        fire_and_forget(self._notifier, NotificationEvent.for_session(NotificationKind.SESSION_OPENED, opened, now))
        return opened

    def _close(self, session: Session, now: datetime) -> Session:
        closed = replace(session, status=SessionStatus.CLOSED, token=None, closed_at=now)
        self._save(closed, expected_status=SessionStatus.OPEN)
        logger.info("session closed session=%s at=%s", session.session_id, now.isoformat())
        fire_and_forget(self._notifier, NotificationEvent.for_session(NotificationKind.SESSION_CLOSED, closed, now))
        return closed

    def _rotate(self, session: Session, now: datetime) -> Session:
        rotated = replace(session, token=self._tokens.issue(session, now))
        self._save(rotated, expected_status=SessionStatus.OPEN)
        logger.debug("token rotated session=%s expires=%s", session.session_id, rotated.token.expires_at.isoformat())
        return rotated
