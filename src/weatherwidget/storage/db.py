from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

WEATHER_CACHE_SCHEMA = """
CREATE TABLE IF NOT EXISTS weather_cache (
    cache_key TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    stored_at REAL NOT NULL,
    expires_at REAL NOT NULL,
    CHECK (expires_at >= stored_at)
);
CREATE INDEX IF NOT EXISTS idx_weather_cache_expires_at ON weather_cache (expires_at);
"""

BUSY_TIMEOUT_SECONDS = 5.0


def open_connection(db_path: Path) -> sqlite3.Connection:
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Request threads and scheduler jobs each open their own short-lived connection.
    connection = sqlite3.connect(path, timeout=BUSY_TIMEOUT_SECONDS)
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA journal_mode = WAL;")
    connection.execute("PRAGMA synchronous = NORMAL;")
    return connection


@contextmanager
def cache_db(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Yield a connection with the cache schema in place; commits on success."""
    connection = open_connection(db_path)
    try:
        connection.executescript(WEATHER_CACHE_SCHEMA)
        yield connection
        connection.commit()
    finally:
        connection.close()


def initialize_database(db_path: Path) -> None:
    with cache_db(db_path):
        pass
