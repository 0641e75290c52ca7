"""Durable key-value storage for the register.

``LocalStore`` is the seam the offline buffer is written against. The SQLite
implementation is what the agent runs with; ``MemoryStore`` backs tests and
throwaway sessions.
"""

import os
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Protocol


class StoreUnavailable(Exception):
    """The underlying storage could not be opened, read or written."""


class LocalStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list(self) -> list[tuple[str, str]]: ...


SCHEMA = """
CREATE TABLE IF NOT EXISTS offline_sales (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    bill_id TEXT NOT NULL UNIQUE,
    payload_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SqliteStore:
    def __init__(self, path: str):
        self.path = os.path.abspath(path)

    def _connect(self) -> sqlite3.Connection:
        parent = os.path.dirname(self.path)
        conn = None
        try:
            if parent:
                os.makedirs(parent, exist_ok=True)
            conn = sqlite3.connect(self.path, timeout=5.0)
            conn.executescript(SCHEMA)
            return conn
        except (OSError, sqlite3.Error) as ex:
            if conn is not None:
                conn.close()
            raise StoreUnavailable(f"cannot open {self.path}: {ex}") from ex

    def init(self):
        conn = self._connect()
        conn.close()

    def get(self, key: str) -> Optional[str]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT payload_json FROM offline_sales WHERE bill_id = ?", (key,)).fetchone()
            return row[0] if row else None
        except sqlite3.Error as ex:
            raise StoreUnavailable(str(ex)) from ex
        finally:
            conn.close()

    def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            # Upsert keeps the original seq, so overwriting a bill does not
            # move it to the back of the queue.
            with conn:
                conn.execute(
                    """
                    INSERT INTO offline_sales (bill_id, payload_json, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(bill_id) DO UPDATE SET
                      payload_json = excluded.payload_json,
                      updated_at = excluded.updated_at
                    """,
                    (key, value, now, now),
                )
        except sqlite3.Error as ex:
            raise StoreUnavailable(str(ex)) from ex
        finally:
            conn.close()

    def delete(self, key: str) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute("DELETE FROM offline_sales WHERE bill_id = ?", (key,))
                return cur.rowcount > 0
        except sqlite3.Error as ex:
            raise StoreUnavailable(str(ex)) from ex
        finally:
            conn.close()

    def list(self) -> list[tuple[str, str]]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT bill_id, payload_json FROM offline_sales ORDER BY seq").fetchall()
            return [(r[0], r[1]) for r in rows]
        except sqlite3.Error as ex:
            raise StoreUnavailable(str(ex)) from ex
        finally:
            conn.close()


class MemoryStore:
    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def list(self) -> list[tuple[str, str]]:
        return list(self._data.items())
