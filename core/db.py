"""
core/db.py -- Engine construction and timestamp format shared by every store.

Both repositories (auth/store.py, content/store.py) build their engines here
so SQLite gets the same per-connection setup everywhere. Swapping SQLite for
PostgreSQL is a DATABASE_URL change, not a rewrite.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign key enforcement on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def make_engine(db_url: str) -> Engine:
    """Create an Engine with the SQLite tweaks applied when relevant."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a threadpool.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    return engine


def iso_utc(dt: datetime | None = None) -> str:
    """Return dt (default: now) as a fixed-width ISO 8601 UTC string.

    Fixed width keeps string comparison in SQL equal to chronological order.
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")
