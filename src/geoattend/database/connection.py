from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import mysql.connector
from mysql.connector.constants import ClientFlag


@dataclass(frozen=True)
class DBConfig:
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "geoattend"
    connect_timeout: int = 10

    @classmethod
    def from_dict(cls, db_config: Dict[str, Any]) -> "DBConfig":
        defaults = cls()
        return cls(
            host=str(db_config.get("host") or defaults.host),
            port=int(db_config.get("port") or defaults.port),
            user=str(db_config.get("user") or defaults.user),
            password=str(db_config.get("password") or ""),
            database=str(db_config.get("database") or defaults.database),
            connect_timeout=int(db_config.get("connect_timeout") or defaults.connect_timeout),
        )


class DatabaseConnection:
    """Hands out a short-lived MySQL connection per unit of work.

    FOUND_ROWS makes UPDATE report matched rows rather than changed rows.
    """

    def __init__(self, config: DBConfig):
        self._config = config

    def connect(self, *, with_database: bool = True):
        options: Dict[str, Any] = {
            "host": self._config.host,
            "port": self._config.port,
            "user": self._config.user,
            "password": self._config.password,
            "connection_timeout": self._config.connect_timeout,
            "autocommit": False,
            "client_flags": [ClientFlag.FOUND_ROWS],
        }
        if with_database:
            options["database"] = self._config.database
        return mysql.connector.connect(**options)
