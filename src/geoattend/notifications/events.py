"""Notification requests.

The engine only decides that a notification should go out; a separate
delivery subsystem implements ``NotificationRequester`` and does the sending.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Protocol

from ..core.enums import NotificationKind
from ..sessions.model import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    kind: NotificationKind
    session_id: str
    owner_id: str
    occurred_at: datetime
    payload: dict = field(default_factory=dict)

    @classmethod
    def for_session(cls, kind: NotificationKind, session: Session, now: datetime) -> "NotificationEvent":
        return cls(
            kind=kind,
            session_id=session.session_id,
            owner_id=session.owner_id,
            occurred_at=now,
            payload={
                "name": session.name,
                "start_time": session.start_time.isoformat(),
                "end_time": session.end_boundary.isoformat(),
            },
        )


class NotificationRequester(Protocol):
    def request(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationRequester:
    """Default requester: records the request in the log only."""

    def request(self, event: NotificationEvent) -> None:
        logger.info("notification requested kind=%s session=%s", event.kind.value, event.session_id)


class CollectingNotificationRequester:
    """Keeps requested events in memory, e.g. for an in-process delivery worker."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[NotificationEvent] = []

    def request(self, event: NotificationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> List[NotificationEvent]:
        with self._lock:
            events, self._events = self._events, []
        return events


def fire_and_forget(requester: NotificationRequester, event: NotificationEvent) -> None:
    """Hand an event to the requester; delivery problems never reach the caller."""
    try:
        requester.request(event)
    except Exception:
        logger.exception("notification request failed kind=%s session=%s", event.kind.value, event.session_id)
