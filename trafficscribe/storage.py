"""Optional persistence collaborator for archive entries and operations.

The store works purely in memory when no adapter is supplied. Adapters
signal failure with StorageUnavailable; the store logs and carries on.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Protocol

from .errors import StorageUnavailable

logger = logging.getLogger(__name__)


class StorageAdapter(Protocol):
    """Interface the store expects from a persistence backend."""

    def init(self) -> None: ...

    def save_entry(self, entry: dict[str, Any]) -> None: ...

    def load_entries(self) -> list[dict[str, Any]]: ...

    def clear(self) -> None: ...

    def upsert_endpoint(self, path: str, method: str, operation: dict[str, Any]) -> None: ...

    def load_endpoints(self) -> list[tuple[str, str, dict[str, Any]]]: ...

    def upsert_security_scheme(self, name: str, scheme: dict[str, Any]) -> None: ...

    def load_security_schemes(self) -> dict[str, dict[str, Any]]: ...

    def close(self) -> None: ...


_SCHEMA = """
CREATE TABLE IF NOT EXISTS har_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_date_time TEXT NOT NULL,
    entry TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_har_started ON har_entries(started_date_time);

CREATE TABLE IF NOT EXISTS endpoints (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    path TEXT NOT NULL,
    method TEXT NOT NULL,
    operation TEXT NOT NULL,
    UNIQUE(path, method)
);

CREATE TABLE IF NOT EXISTS security_schemes (
    name TEXT PRIMARY KEY,
    scheme TEXT NOT NULL
);
"""


class SQLiteStorage:
    """SQLite-backed StorageAdapter."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def init(self) -> None:
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.executescript(_SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise StorageUnavailable(f"Cannot open {self.db_path}: {e}") from e
        self._conn = conn
        logger.info("Initialised storage at %s", self.db_path)

    @property
    def is_ready(self) -> bool:
        return self._conn is not None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageUnavailable("Storage has not been initialised")
        return self._conn

    def save_entry(self, entry: dict[str, Any]) -> None:
        conn = self._connection()
        try:
            with self._lock, conn:
                conn.execute(
                    "INSERT INTO har_entries (started_date_time, entry) VALUES (?, ?)",
                    (entry.get("startedDateTime", ""), json.dumps(entry)),
                )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot save archive entry: {e}") from e

    def load_entries(self) -> list[dict[str, Any]]:
        conn = self._connection()
        try:
            with self._lock:
                rows = conn.execute("SELECT entry FROM har_entries ORDER BY id ASC").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot load archive entries: {e}") from e

        entries = []
        for (raw,) in rows:
            try:
                entries.append(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable archive row")
        return entries

    def clear(self) -> None:
        conn = self._connection()
        try:
            with self._lock, conn:
                conn.execute("DELETE FROM har_entries")
                conn.execute("DELETE FROM endpoints")
                conn.execute("DELETE FROM security_schemes")
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot clear storage: {e}") from e

    def upsert_endpoint(self, path: str, method: str, operation: dict[str, Any]) -> None:
        conn = self._connection()
        try:
            with self._lock, conn:
                conn.execute(
                    "INSERT INTO endpoints (path, method, operation) VALUES (?, ?, ?) "
                    "ON CONFLICT(path, method) DO UPDATE SET operation=excluded.operation",
                    (path, method.lower(), json.dumps(operation, default=str)),
                )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot save endpoint {method} {path}: {e}") from e

    def load_endpoints(self) -> list[tuple[str, str, dict[str, Any]]]:
        conn = self._connection()
        try:
            with self._lock:
                rows = conn.execute("SELECT path, method, operation FROM endpoints").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot load endpoints: {e}") from e

        endpoints = []
        for path, method, raw in rows:
            try:
                endpoints.append((path, method, json.loads(raw)))
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable endpoint row for %s %s", method, path)
        return endpoints

    def upsert_security_scheme(self, name: str, scheme: dict[str, Any]) -> None:
        conn = self._connection()
        try:
            with self._lock, conn:
                conn.execute(
                    "INSERT INTO security_schemes (name, scheme) VALUES (?, ?) "
                    "ON CONFLICT(name) DO UPDATE SET scheme=excluded.scheme",
                    (name, json.dumps(scheme)),
                )
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot save security scheme {name}: {e}") from e

    def load_security_schemes(self) -> dict[str, dict[str, Any]]:
        conn = self._connection()
        try:
            with self._lock:
                rows = conn.execute("SELECT name, scheme FROM security_schemes ORDER BY name").fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Cannot load security schemes: {e}") from e

        schemes = {}
        for name, raw in rows:
            try:
                schemes[name] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Skipping unreadable security scheme row %s", name)
        return schemes

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
