from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from .connection import DatabaseConnection, DBConfig

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def split_statements(sql: str) -> List[str]:
    """Split a schema script into statements.

    Full-line ``--`` comments are dropped. The schema has no semicolons
    inside literals, so a plain split is enough.
    """
    lines = [line for line in sql.splitlines() if not line.lstrip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


def create_database(config: DBConfig) -> None:
    conn = DatabaseConnection(config).connect(with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{config.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        cur.close()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: Optional[Union[str, Path]] = None) -> None:
    config = DBConfig.from_dict(db_config)
    create_database(config)

    statements = split_statements(Path(schema_path or SCHEMA_PATH).read_text(encoding="utf-8"))
    conn = DatabaseConnection(config).connect()
    try:
        cur = conn.cursor()
        for stmt in statements:
            cur.execute(stmt)
        conn.commit()
        cur.close()
    finally:
        conn.close()
    logger.info("schema applied database=%s statements=%s", config.database, len(statements))


def list_tables(db_config: dict) -> List[str]:
    conn = DatabaseConnection(DBConfig.from_dict(db_config)).connect()
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        tables = [row[0] for row in cur.fetchall()]
        cur.close()
        return tables
    finally:
        conn.close()
