from __future__ import annotations

import atexit
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from .attendance.controller import register as register_attendance
from .common.http import register_error_handlers
from .config import get_settings_module, load_settings
from .container import Container, build_container
from .database.bootstrap import apply_schema, list_tables
from .logging_config import configure_logging
from .sessions.controller import register as register_sessions

logger = logging.getLogger(__name__)


def create_app(container: Optional[Container] = None) -> Flask:
    load_dotenv(override=False)
    settings = load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FORMAT", "standard"))

    app = Flask(__name__)
    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    if container is None:
        db_config = getattr(settings, "DB_CONFIG")
        logger.info(
            "settings=%s db=%s@%s:%s/%s",
            get_settings_module(),
            db_config.get("user"),
            db_config.get("host"),
            db_config.get("port", 3306),
            db_config.get("database"),
        )

        if bool(getattr(settings, "AUTO_INIT_DB", False)):
            apply_schema(db_config)
            logger.info("schema ready tables=%s", len(list_tables(db_config)))

        container = build_container(settings)

    app.extensions["geoattend"] = container

    register_error_handlers(app)
    register_sessions(app, container)
    register_attendance(app, container)

    if bool(getattr(settings, "SCHEDULER_ENABLED", False)):
        container.scheduler.start()
        atexit.register(container.scheduler.stop)

    return app
