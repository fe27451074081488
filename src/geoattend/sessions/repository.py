from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence

from ..core.enums import SessionStatus
from .model import Session


class SessionRepository(Protocol):
    def get(self, session_id: str) -> Optional[Session]:
        raise NotImplementedError

    def add(self, session: Session) -> None:
        raise NotImplementedError

    def update(self, session: Session) -> None:
        """Overwrite an authority-editable session (Scheduled only)."""

        raise NotImplementedError

    def compare_and_set(self, session: Session, *, expected_status: SessionStatus) -> bool:
        """Persist a lifecycle snapshot only if the stored status still matches.

        Returns False when another writer got there first.
        """

        raise NotImplementedError

    def list_by_status(self, statuses: Iterable[SessionStatus]) -> Sequence[Session]:
        raise NotImplementedError

    def list_for_owner(self, owner_id: str) -> Sequence[Session]:
        raise NotImplementedError

    def find_occurrence(self, series_id: str, occurrence_index: int) -> Optional[Session]:
        raise NotImplementedError

    def list_awaiting_next_occurrence(self) -> Sequence[Session]:
        """Closed, unarchived recurring sessions whose next occurrence is not stored yet."""

        raise NotImplementedError
