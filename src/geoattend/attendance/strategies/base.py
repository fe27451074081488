from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...core.enums import AttendanceStatus
from ...sessions.model import Session
from ..model import CheckInAttempt


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    note: Optional[str] = None


class ProofStrategy(ABC):
    """Strategy Pattern: encapsulate how a verification method's proof is checked."""

    @abstractmethod
    def verify(self, *, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        """Return normally when the proof holds, raise a CheckInError otherwise."""
        raise NotImplementedError
