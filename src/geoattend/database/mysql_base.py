from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .connection import DatabaseConnection

Row = Dict[str, Any]


@contextmanager
def db_cursor(conn_factory: DatabaseConnection) -> Iterator[Any]:
    """Yield a dictionary cursor on a fresh connection.

    The statement batch is committed when the block exits cleanly and rolled
    back when it raises. The connection is always closed.
    """
    conn = conn_factory.connect()
    cur = conn.cursor(dictionary=True)
    try:
        yield cur
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
    finally:
        cur.close()
        conn.close()


def single_row(cur) -> Optional[Row]:
    return cur.fetchone() or None


def all_rows(cur) -> List[Row]:
    return list(cur.fetchall() or ())


def as_bool(value: Any) -> bool:
    # TINYINT(1) columns arrive as 0/1.
    return value is not None and int(value) != 0
