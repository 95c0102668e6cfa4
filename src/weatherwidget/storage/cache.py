from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from .db import cache_db

LOGGER = logging.getLogger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None:
        """Return the unexpired payload stored under ``key``, or None."""

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serializable payload for ``ttl_seconds``."""

    def forget(self, key: str) -> bool:
        """Remove ``key``; return True when an entry was deleted."""


@dataclass(frozen=True, slots=True)
class CachedPayload:
    key: str
    payload: Any
    stored_at: datetime
    expires_at: datetime

    @property
    def ttl_seconds(self) -> int:
        return round((self.expires_at - self.stored_at).total_seconds())

    def is_expired(self, now: datetime | None = None) -> bool:
        return _as_utc(now) > self.expires_at


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


def store_entry(
    db_path: Path,
    key: str,
    payload: Any,
    ttl_seconds: int,
    *,
    stored_at: datetime | None = None,
) -> None:
    if ttl_seconds < 0:
        raise ValueError("ttl_seconds must be >= 0")

    stored = _as_utc(stored_at).timestamp()
    encoded = json.dumps(payload, ensure_ascii=True, separators=(",", ":"))
    with cache_db(db_path) as connection:
        connection.execute(
            """
            INSERT INTO weather_cache (cache_key, payload, stored_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(cache_key) DO UPDATE SET
                payload=excluded.payload,
                stored_at=excluded.stored_at,
                expires_at=excluded.expires_at
            """,
            (key, encoded, stored, stored + ttl_seconds),
        )


def load_entry(db_path: Path, key: str) -> CachedPayload | None:
    with cache_db(db_path) as connection:
        row = connection.execute(
            "SELECT cache_key, payload, stored_at, expires_at FROM weather_cache WHERE cache_key = ?",
            (key,),
        ).fetchone()

    if row is None:
        return None
    return CachedPayload(
        key=row["cache_key"],
        payload=json.loads(row["payload"]),
        stored_at=_from_epoch(row["stored_at"]),
        expires_at=_from_epoch(row["expires_at"]),
    )


def load_payload(db_path: Path, key: str, *, allow_expired: bool = False) -> Any | None:
    entry = load_entry(db_path, key)
    if entry is None:
        return None
    if entry.is_expired() and not allow_expired:
        return None
    return entry.payload


def delete_entry(db_path: Path, key: str) -> bool:
    with cache_db(db_path) as connection:
        cursor = connection.execute("DELETE FROM weather_cache WHERE cache_key = ?", (key,))
    return cursor.rowcount > 0


def list_keys(db_path: Path, *, prefix: str | None = None) -> list[str]:
    query = "SELECT cache_key FROM weather_cache"
    params: tuple[Any, ...] = ()
    if prefix is not None:
        # Keys contain '_', which LIKE would treat as a wildcard.
        query += " WHERE substr(cache_key, 1, ?) = ?"
        params = (len(prefix), prefix)
    with cache_db(db_path) as connection:
        rows = connection.execute(f"{query} ORDER BY cache_key ASC", params).fetchall()
    return [row["cache_key"] for row in rows]


def prune_expired(db_path: Path, *, now: datetime | None = None) -> int:
    with cache_db(db_path) as connection:
        cursor = connection.execute(
            "DELETE FROM weather_cache WHERE expires_at < ?",
            (_as_utc(now).timestamp(),),
        )
    return cursor.rowcount


class SqliteCacheStore:
    """:class:`CacheStore` over the ``weather_cache`` table.

    get, put and forget are each their own transaction; a read followed by
    a write is not atomic as a pair.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def get(self, key: str) -> Any | None:
        return load_payload(self._db_path, key)

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        store_entry(self._db_path, key, value, ttl_seconds)
        LOGGER.debug("Cached '%s' for %ss", key, ttl_seconds)

    def forget(self, key: str) -> bool:
        return delete_entry(self._db_path, key)
