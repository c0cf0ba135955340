"""
Snapshot persistence.

Snapshots are JSON documents kept under two fixed keys of a plain key-value
store. Writes replace the previous document; reads fall back to an empty
default when the stored value is missing or cannot be decoded.
"""

from __future__ import annotations

import copy
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .constants import FAST_SNAPSHOT_KEY, FULL_SNAPSHOT_KEY
from .errors import StorageUnavailableError
from .models import CandidateIP, FastSnapshot, FullSnapshot
from .results import Err, ErrorKind

logger = logging.getLogger(__name__)

EMPTY_FULL_SNAPSHOT: Dict[str, Any] = {"ips": [], "count": 0}
EMPTY_FAST_SNAPSHOT: Dict[str, Any] = {"fastIPs": [], "count": 0}


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Dictionary-backed store for tests and one-off runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value


class SQLiteKeyValueStore:
    """SQLite-backed string key-value store."""

    def __init__(self, db_path: str | Path = "data/bestip.db") -> None:
        """
        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path, timeout=5)

    def _init_db(self) -> None:
        """Initialize the SQLite database with the required schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                    """
                )
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailableError(f"Cannot open store at {self.db_path}: {e}") from e
        logger.info("Key-value store initialized at %s", self.db_path)

    def get(self, key: str) -> Optional[str]:
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Read of {key!r} failed: {e}") from e
        return row[0] if row else None

    def put(self, key: str, value: str) -> None:
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    "INSERT INTO kv (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StorageUnavailableError(f"Write of {key!r} failed: {e}") from e


class SnapshotStore:
    """Reads and writes the full and fast snapshots."""

    def __init__(self, kv: Optional[KeyValueStore]) -> None:
        self.kv = kv
        self.recovered: List[Err] = []

    def _require(self) -> KeyValueStore:
        if self.kv is None:
            raise StorageUnavailableError("Key-value store is not configured")
        return self.kv

    def _load(self, key: str, default: Dict[str, Any]) -> Dict[str, Any]:
        raw = self._require().get(key)
        if not raw:
            return copy.deepcopy(default)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Stored value under %r is not valid JSON (%s); using default", key, e)
            self.recovered.append(Err(ErrorKind.MALFORMED_STORED_DATA, str(e), key))
            return copy.deepcopy(default)
        if not isinstance(data, dict):
            logger.warning("Stored value under %r is not an object; using default", key)
            self.recovered.append(Err(ErrorKind.MALFORMED_STORED_DATA, "not an object", key))
            return copy.deepcopy(default)
        return data

    def save_full(self, snapshot: FullSnapshot) -> None:
        self._require().put(FULL_SNAPSHOT_KEY, json.dumps(snapshot.to_dict()))
        logger.info("Stored full snapshot with %d IPs", snapshot.count)

    def save_fast(self, snapshot: FastSnapshot) -> None:
        self._require().put(FAST_SNAPSHOT_KEY, json.dumps(snapshot.to_dict()))
        logger.info("Stored fast snapshot with %d IPs", snapshot.count)

    def load_full(self) -> Dict[str, Any]:
        return self._load(FULL_SNAPSHOT_KEY, EMPTY_FULL_SNAPSHOT)

    def load_fast(self) -> Dict[str, Any]:
        return self._load(FAST_SNAPSHOT_KEY, EMPTY_FAST_SNAPSHOT)

    def load_candidates(self) -> List[CandidateIP]:
        """Candidates from the stored full snapshot, skipping unusable entries."""
        candidates: List[CandidateIP] = []
        for item in self.load_full().get("ips") or []:
            try:
                candidates.append(CandidateIP.from_dict(item))
            except (KeyError, TypeError, AttributeError):
                continue
        return candidates
