"""
Database connection, initialization and the unit-of-work transaction.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from tournament_results.config import get_settings
from tournament_results.errors import TransientStoreError

from .schema import all_schema_sql

logger = logging.getLogger(__name__)

_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using the configured one."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path (explicit override, else RESULTS_DB_PATH)."""
    if _db_path is not None:
        return _db_path
    return get_settings().db_path


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection in autocommit mode; writes are grouped
    with `transaction`. Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=get_settings().db_timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(all_schema_sql())
        conn.commit()
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one atomic unit: BEGIN IMMEDIATE, COMMIT on success,
    ROLLBACK on any exception. When a transaction is already open on `conn`
    the block joins it and the outermost caller decides.
    Any sqlite3.Error (locked database, I/O, constraint, corrupt file) surfaces
    as TransientStoreError.
    """
    if conn.in_transaction:
        try:
            yield conn
        except sqlite3.Error as e:
            raise TransientStoreError(str(e)) from e
        return

    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        raise TransientStoreError(f"could not begin transaction: {e}") from e
    try:
        yield conn
    except sqlite3.Error as e:
        conn.rollback()
        logger.warning("Transaction rolled back after store error: %s", e)
        raise TransientStoreError(str(e)) from e
    except BaseException:
        conn.rollback()
        raise
    else:
        try:
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise TransientStoreError(f"commit failed: {e}") from e
