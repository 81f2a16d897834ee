"""
Favorite stops: a get/set key-value store and the add/remove rules on top of it.
"""
import json
import logging
import sqlite3
from pathlib import Path
from typing import Protocol

from sgbus.data.stops import StopRecord

logger = logging.getLogger(__name__)

FAVORITES_KEY = "favoriteBusStops"


class FavoritesStore(Protocol):
    def get(self) -> list[StopRecord]: ...

    def set(self, stops: list[StopRecord]) -> None: ...


class MemoryFavoritesStore:
    def __init__(self, stops: list[StopRecord] | None = None):
        self._stops = list(stops or [])

    def get(self) -> list[StopRecord]:
        return list(self._stops)

    def set(self, stops: list[StopRecord]) -> None:
        self._stops = list(stops)


def init_db(db_path: str | Path) -> None:
    """Create the key-value table if it does not exist."""
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        conn.commit()


class SqliteFavoritesStore:
    """Favorites kept as one JSON list under a single key, like browser local storage."""

    def __init__(self, db_path: str | Path, key: str = FAVORITES_KEY):
        self._db_path = Path(db_path)
        self._key = key
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        init_db(self._db_path)

    def get(self) -> list[StopRecord]:
        with sqlite3.connect(self._db_path) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (self._key,)).fetchone()
        if row is None:
            return []
        try:
            raw = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("telemetry favorites_corrupt key=%s", self._key)
            return []
        stops: list[StopRecord] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                stops.append(StopRecord(**item))
            except TypeError:
                continue
        return stops

    def set(self, stops: list[StopRecord]) -> None:
        value = json.dumps([s._asdict() for s in stops])
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (self._key, value),
            )
            conn.commit()


class Favorites:
    """Favorite stops, unique by stop_code, in insertion order."""

    def __init__(self, store: FavoritesStore):
        self._store = store

    def stops(self) -> list[StopRecord]:
        return self._store.get()

    def is_favorite(self, stop_code: str) -> bool:
        return any(s.stop_code == stop_code for s in self._store.get())

    def add(self, stop: StopRecord) -> bool:
        """Add a stop. Returns False if it was already a favorite."""
        current = self._store.get()
        if any(s.stop_code == stop.stop_code for s in current):
            return False
        self._store.set(current + [stop])
        logger.info("telemetry favorite_added stop_code=%s", stop.stop_code)
        return True

    def remove(self, stop_code: str) -> bool:
        """Remove a stop. Returns False if it was not a favorite."""
        current = self._store.get()
        remaining = [s for s in current if s.stop_code != stop_code]
        if len(remaining) == len(current):
            return False
        self._store.set(remaining)
        logger.info("telemetry favorite_removed stop_code=%s", stop_code)
        return True
