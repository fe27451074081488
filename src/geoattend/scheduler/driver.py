"""Periodic driver for automatic session transitions."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_SCHEDULER_INTERVAL_SECONDS
from ..core.enums import SessionStatus
from ..sessions.lifecycle import SessionLifecycle, Transition
from ..sessions.repository import SessionRepository
from ..sessions.service import SessionService

logger = logging.getLogger(__name__)


class SessionScheduler:
    """Polls due sessions on a fixed interval and feeds SessionLifecycle.

    Owns its worker thread; create one per process and ``start``/``stop`` it
    explicitly. ``tick`` can also be called directly for a single pass.
    """

    def __init__(
        self,
        lifecycle: SessionLifecycle,
        sessions: SessionRepository,
        *,
        session_service: Optional[SessionService] = None,
        interval_seconds: float = DEFAULT_SCHEDULER_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = now_local,
    ):
        self._lifecycle = lifecycle
        self._sessions = sessions
        self._session_service = session_service
        self._interval = float(interval_seconds)
        self._clock = clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._tick_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="geoattend-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started interval=%ss", self._interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)
            logger.info("Scheduler stopped")

    def tick(self, now: Optional[datetime] = None) -> Dict[str, List[Transition]]:
        """One pass over every session that may need a transition.

        Failures are logged per session and retried on the next tick.
        """
        now = now or self._clock()
        results: Dict[str, List[Transition]] = {}

        with self._tick_lock:
            for session in self._sessions.list_by_status([SessionStatus.SCHEDULED, SessionStatus.OPEN]):
                if session.archived:
                    continue
                if session.status == SessionStatus.SCHEDULED and not session.auto_start:
                    continue

                try:
                    transitions = self._lifecycle.tick(session.session_id, now)
                except Exception:
                    logger.exception("Scheduler tick failed session=%s", session.session_id)
                    continue

                if transitions:
                    results[session.session_id] = transitions

            self._materialize_pending(now)

        return results

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Error in scheduler loop")
            self._stop.wait(self._interval)

    def _materialize_pending(self, now: datetime) -> None:
        """Create missing next occurrences, whoever closed the session.

        Pending work is read from storage, so an occurrence that failed to
        materialize after a manual close or a restart is still picked up.
        """
        if self._session_service is None:
            return

        try:
            waiting = self._sessions.list_awaiting_next_occurrence()
        except Exception:
            logger.exception("Could not list sessions awaiting their next occurrence")
            return

        for session in waiting:
            try:
                self._session_service.materialize_next(session.session_id, now=now)
            except Exception:
                logger.exception("Could not materialize next occurrence session=%s", session.session_id)
