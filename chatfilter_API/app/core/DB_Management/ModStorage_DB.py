from __future__ import annotations

"""
ModStorage_DB
Per-mod key/value storage used as the filter's structured persistence tier.

Table: mod_storage
Columns:
  - modname TEXT   -- namespace; each engine only sees its own keys
  - key TEXT
  - value TEXT     -- every value is stored as text; integers are parsed on read
  PRIMARY KEY (modname, key)

Semantics follow the host game's mod storage: reading a missing key yields ""
(or 0 for integers), and writing "" removes the key.

This module intentionally keeps SQL usage encapsulated within DB_Management, per project guidelines.
"""

import os
import sqlite3
import threading
from typing import Dict, List, Protocol, runtime_checkable

from loguru import logger

from chatfilter_API.app.core.Filter.exceptions import StorageIOError


@runtime_checkable
class ModStorage(Protocol):
    def contains(self, key: str) -> bool: ...

    def get_string(self, key: str) -> str: ...

    def set_string(self, key: str, value: str) -> None: ...

    def get_int(self, key: str) -> int: ...

    def set_int(self, key: str, value: int) -> None: ...

    def keys(self) -> List[str]:
        """Sorted keys in this mod's namespace; used for inspection, never by the engine."""
        ...


def _parse_int(key: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"Mod storage key '{key}' holds a non-integer value; reading it as 0")
        return 0


class MemoryModStorage:
    """Dict-backed storage for tests and hosts without a database."""

    def __init__(self, initial: Dict[str, object] | None = None) -> None:
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set_string(key, str(value))

    def contains(self, key: str) -> bool:
        return key in self._data

    def get_string(self, key: str) -> str:
        return self._data.get(key, "")

    def set_string(self, key: str, value: str) -> None:
        if value == "":
            self._data.pop(key, None)
        else:
            self._data[key] = value

    def get_int(self, key: str) -> int:
        if key not in self._data:
            return 0
        return _parse_int(key, self._data[key])

    def set_int(self, key: str, value: int) -> None:
        self._data[key] = str(int(value))

    def keys(self) -> List[str]:
        return sorted(self._data)


class SQLiteModStorage:
    def __init__(self, db_path: str = "Databases/mod_storage.sqlite", modname: str = "filter") -> None:
        self.db_path = db_path
        self.modname = modname
        self._lock = threading.RLock()
        dirpath = os.path.dirname(self.db_path)
        if dirpath:
            os.makedirs(dirpath, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=10, isolation_level=None)
        conn.row_factory = sqlite3.Row
        # Pragmas to improve robustness
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        except sqlite3.Error:
            pass
        return conn

    def _ensure_schema(self) -> None:
        with self._lock:
            try:
                conn = self._connect()
            except sqlite3.Error as e:
                raise StorageIOError(f"Cannot open mod storage {self.db_path}: {e}") from e
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS mod_storage (
                        modname TEXT NOT NULL,
                        key TEXT NOT NULL,
                        value TEXT NOT NULL,
                        PRIMARY KEY (modname, key)
                    )
                    """
                )
            except sqlite3.Error as e:
                raise StorageIOError(f"Cannot create mod storage schema in {self.db_path}: {e}") from e
            finally:
                conn.close()

    def _read(self, key: str) -> str | bytes | None:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    row = conn.execute(
                        "SELECT value FROM mod_storage WHERE modname = ? AND key = ?",
                        (self.modname, key),
                    ).fetchone()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageIOError(f"Failed to read mod storage key '{key}': {e}") from e
        if row is None:
            return None
        return row["value"]

    @staticmethod
    def _text(value: str | bytes) -> str:
        # Rows written by other tools may carry BLOBs; UnicodeDecodeError is left to the caller.
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    def _write(self, key: str, value: str) -> None:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    if value == "":
                        conn.execute(
                            "DELETE FROM mod_storage WHERE modname = ? AND key = ?",
                            (self.modname, key),
                        )
                    else:
                        conn.execute(
                            """
                            INSERT INTO mod_storage (modname, key, value) VALUES (?, ?, ?)
                            ON CONFLICT(modname, key) DO UPDATE SET value = excluded.value
                            """,
                            (self.modname, key, value),
                        )
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageIOError(f"Failed to write mod storage key '{key}': {e}") from e

    def contains(self, key: str) -> bool:
        return self._read(key) is not None

    def get_string(self, key: str) -> str:
        value = self._read(key)
        return self._text(value) if value is not None else ""

    def set_string(self, key: str, value: str) -> None:
        self._write(key, value)

    def get_int(self, key: str) -> int:
        value = self._read(key)
        if value is None:
            return 0
        return _parse_int(key, self._text(value))

    def set_int(self, key: str, value: int) -> None:
        self._write(key, str(int(value)))

    def keys(self) -> List[str]:
        with self._lock:
            try:
                conn = self._connect()
                try:
                    rows = conn.execute(
                        "SELECT key FROM mod_storage WHERE modname = ? ORDER BY key",
                        (self.modname,),
                    ).fetchall()
                finally:
                    conn.close()
            except sqlite3.Error as e:
                raise StorageIOError(f"Failed to list mod storage keys: {e}") from e
        return [r["key"] for r in rows]
