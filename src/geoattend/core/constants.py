"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

EARTH_RADIUS_METERS = 6_371_000.0

DEFAULT_GEOFENCE_RADIUS_METERS = 100.0
DEFAULT_DURATION_MINUTES = 60
DEFAULT_GRACE_MINUTES = 5

DEFAULT_TOKEN_ROTATION_SECONDS = 45
DEFAULT_TOKEN_BYTES = 24

DEFAULT_SCHEDULER_INTERVAL_SECONDS = 5
DEFAULT_CLOSING_SOON_MINUTES = 10
DEFAULT_VERIFIER_TIMEOUT_SECONDS = 5.0

DEFAULT_HISTORY_LIMIT = 30
DEFAULT_REPORT_DAYS = 7

# Upper bound on candidate windows scanned when resolving the next occurrence.
MAX_RECURRENCE_SCAN_STEPS = 400
