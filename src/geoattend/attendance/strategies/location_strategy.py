from __future__ import annotations

from datetime import datetime

from ...core.exceptions import MethodNotAccepted, OutsideGeofence
from ...geo.distance import distance, whole_meters, within_geofence
from ...sessions.model import Session
from ..model import CheckInAttempt
from .base import ProofStrategy


class LocationProofStrategy(ProofStrategy):
    """Reported position must lie inside the session geofence."""

    def verify(self, *, session: Session, attempt: CheckInAttempt, now: datetime) -> None:
        if session.geofence is None:
            raise MethodNotAccepted("Session has no geofence configured")
        if attempt.location is None:
            raise OutsideGeofence("No location was provided")

        if not within_geofence(attempt.location, session.geofence):
            meters = distance(attempt.location, session.geofence.center)
            raise OutsideGeofence(
                f"You are too far from the class location ({whole_meters(meters)}m away, "
                f"threshold is {session.geofence.radius_meters:g}m)"
            )
