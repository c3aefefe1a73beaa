"""
State Storage Module

Provides the abstract storage interface for the lending aggregate and
implementations for in-memory (testing), single JSON file and SQLite
persistence. The aggregate is always read and written wholesale.

Every saved aggregate carries a "version" number. A save names the version it
was loaded at; if another writer saved in between, the save is refused with
ConcurrentModificationError instead of silently overwriting.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Optional, Union
from datetime import datetime, timezone
from pathlib import Path
import sqlite3
import fcntl
import json
import os
import tempfile
import threading

from .errors import ConcurrentModificationError


VERSION_KEY = "version"


def _copy(state: Dict[str, Any]) -> Dict[str, Any]:
    # Deep copy through JSON to prevent external mutation
    return json.loads(json.dumps(state, default=str))


def _check_version(current_version: int, expected_version: Optional[int]) -> None:
    if expected_version is not None and current_version != expected_version:
        raise ConcurrentModificationError(
            f"State was modified concurrently: expected version {expected_version}, "
            f"found {current_version}"
        )


class StateStorage(ABC):
    """Abstract interface for aggregate storage backends"""

    @abstractmethod
    def load_state(self) -> Optional[Dict[str, Any]]:
        """Load the aggregate, or None if nothing has been saved yet"""
        pass

    @abstractmethod
    def save_state(self, state: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        """
        Save the aggregate

        Args:
            state: Serialized aggregate
            expected_version: Version the caller loaded; None skips the check

        Returns:
            The new persisted version
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass


class InMemoryStateStorage(StateStorage):
    """In-memory storage implementation for testing"""

    def __init__(self, initial_state: Optional[Dict[str, Any]] = None):
        self._state: Optional[Dict[str, Any]] = _copy(initial_state) if initial_state else None
        self._lock = threading.RLock()

    def load_state(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            if self._state is None:
                return None
            return _copy(self._state)

    def save_state(self, state: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        with self._lock:
            current = self._state.get(VERSION_KEY, 0) if self._state else 0
            _check_version(current, expected_version)
            new_state = _copy(state)
            new_state[VERSION_KEY] = current + 1
            self._state = new_state
            return current + 1

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class JSONFileStateStorage(StateStorage):
    """
    Single JSON document on disk, written atomically via rename

    Saves hold an exclusive lock on a sidecar "<name>.lock" file across the
    version check and the rename, so writers in other processes are serialised.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self._lock = threading.RLock()

    @contextmanager
    def _file_lock(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def load_state(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read()

    def save_state(self, state: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        with self._lock, self._file_lock():
            existing = self._read()
            current = existing.get(VERSION_KEY, 0) if existing else 0
            _check_version(current, expected_version)

            new_state = _copy(state)
            new_state[VERSION_KEY] = current + 1

            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(new_state, fh, indent=2)
                os.replace(tmp_path, self.path)
            except Exception:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
            return current + 1

    def close(self) -> None:
        pass


class SQLiteStateStorage(StateStorage):
    """SQLite storage implementation; one row per aggregate key"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", key: str = "loanPlatformDB"):
        self.db_path = str(db_path)
        self.key = key
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()

        with self._lock:
            if self.db_path != ":memory:":
                self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("""
                CREATE TABLE IF NOT EXISTS state_snapshots (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    version INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.commit()

    def load_state(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            cursor = self._connection.execute(
                "SELECT data, version FROM state_snapshots WHERE key = ?", (self.key,)
            )
            row = cursor.fetchone()
            if not row:
                return None
            state = json.loads(row['data'])
            state[VERSION_KEY] = row['version']
            return state

    def save_state(self, state: Dict[str, Any], expected_version: Optional[int] = None) -> int:
        with self._lock:
            now = datetime.now(timezone.utc).isoformat()
            data = _copy(state)
            try:
                cursor = self._connection.execute(
                    "SELECT version FROM state_snapshots WHERE key = ?", (self.key,)
                )
                row = cursor.fetchone()
                current = row['version'] if row else 0
                _check_version(current, expected_version)

                new_version = current + 1
                data[VERSION_KEY] = new_version
                data_json = json.dumps(data, default=str)

                if row:
                    # Compare-and-swap on the version guards against other connections
                    cursor = self._connection.execute("""
                        UPDATE state_snapshots SET data = ?, version = ?, updated_at = ?
                        WHERE key = ? AND version = ?
                    """, (data_json, new_version, now, self.key, current))
                    if cursor.rowcount == 0:
                        raise ConcurrentModificationError(
                            f"State was modified concurrently: expected version {current}"
                        )
                else:
                    self._connection.execute("""
                        INSERT INTO state_snapshots (key, data, version, updated_at)
                        VALUES (?, ?, ?, ?)
                    """, (self.key, data_json, new_version, now))
                self._connection.commit()
                return new_version
            except sqlite3.IntegrityError:
                self._connection.rollback()
                raise ConcurrentModificationError("State was created concurrently")
            except Exception:
                self._connection.rollback()
                raise

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(backend: str, path: Optional[str] = None, key: str = "loanPlatformDB") -> StateStorage:
    """Create a storage backend by name (memory, json or sqlite)"""
    if backend == "memory":
        return InMemoryStateStorage()
    if backend == "json":
        return JSONFileStateStorage(path or "lending.json")
    if backend == "sqlite":
        return SQLiteStateStorage(path or "lending.db", key=key)
    raise ValueError(f"Unknown storage backend: {backend}")
