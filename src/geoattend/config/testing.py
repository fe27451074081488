import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "geoattend_test"),
}

DEBUG = False
TESTING = True

AUTO_INIT_DB = False

TOKEN_ROTATION_SECONDS = 45
SCHEDULER_ENABLED = False
SCHEDULER_INTERVAL_SECONDS = 1.0
VERIFIER_TIMEOUT_SECONDS = 0.5
CLOSING_SOON_MINUTES = 10

LOG_LEVEL = "WARNING"
LOG_FORMAT = "standard"
