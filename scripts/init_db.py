from __future__ import annotations

import logging

from dotenv import load_dotenv

from geoattend.config import get_settings_module, load_settings
from geoattend.database.bootstrap import apply_schema, list_tables
from geoattend.logging_config import configure_logging

logger = logging.getLogger("geoattend.scripts.init_db")


def main() -> None:
    load_dotenv(override=False)
    settings = load_settings()
    configure_logging(getattr(settings, "LOG_LEVEL", "INFO"), getattr(settings, "LOG_FORMAT", "standard"))
    db_config = dict(settings.DB_CONFIG)

    apply_schema(db_config)
    tables = list_tables(db_config)
    logger.info(
        "Applied schema.sql settings=%s target=%s@%s:%s/%s tables=%s",
        get_settings_module(),
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
        len(tables),
    )


if __name__ == "__main__":
    main()
