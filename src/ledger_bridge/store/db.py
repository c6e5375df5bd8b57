"""SQLite record store for records, send attempts, remote map and change log."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ledger_bridge.errors import DuplicateKeyError, StoreError, UnknownCollectionError
from ledger_bridge.store.models import CHANGE_LOG, RECORDS, REMOTE_MAP, SEND_ATTEMPTS
from ledger_bridge.utils.serialization import dumps_document, loads_document


class RecordStore(Protocol):
    def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    def get_all(self, collection: str) -> list[dict[str, Any]]: ...

    def get_all_by_index(
        self, collection: str, index: str, value: object
    ) -> list[dict[str, Any]]: ...

    def add(self, collection: str, item: dict[str, Any]) -> None: ...

    def put(self, collection: str, item: dict[str, Any]) -> None: ...

    def delete(self, collection: str, key: str) -> None: ...


@dataclass(frozen=True)
class _Collection:
    key: str
    indexes: tuple[str, ...] = ()
    append_only: bool = False


_COLLECTIONS: dict[str, _Collection] = {
    RECORDS: _Collection(key="id", indexes=("status",)),
    SEND_ATTEMPTS: _Collection(key="attempt_id", indexes=("record_id", "status", "created_at")),
    REMOTE_MAP: _Collection(key="record_id"),
    CHANGE_LOG: _Collection(key="change_id", indexes=("record_id", "created_at"), append_only=True),
}


class SqliteStore:
    """Document store over SQLite implementing ``RecordStore``.

    Each collection is a table holding the JSON document plus its key and
    index columns. Every call is its own committed statement. ``change_log``
    only accepts ``add``.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS records (
                id TEXT PRIMARY KEY,
                status TEXT,
                doc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS send_attempts (
                attempt_id TEXT PRIMARY KEY,
                record_id TEXT,
                status TEXT,
                created_at TEXT,
                doc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS remote_map (
                record_id TEXT PRIMARY KEY,
                doc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS change_log (
                change_id TEXT PRIMARY KEY,
                record_id TEXT,
                created_at TEXT,
                doc TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_records_status ON records(status);
            CREATE INDEX IF NOT EXISTS idx_send_attempts_record_id ON send_attempts(record_id);
            CREATE INDEX IF NOT EXISTS idx_send_attempts_status ON send_attempts(status);
            CREATE INDEX IF NOT EXISTS idx_change_log_record_id ON change_log(record_id);
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def _collection(self, collection: str) -> _Collection:
        spec = _COLLECTIONS.get(collection)
        if spec is None:
            raise UnknownCollectionError(collection)
        return spec

    def _key_of(self, collection: str, spec: _Collection, item: dict[str, Any]) -> str:
        key = item.get(spec.key)
        if not isinstance(key, str) or not key:
            raise StoreError(f"{collection} item is missing its key field {spec.key!r}")
        return key

    def _row_values(self, spec: _Collection, key: str, item: dict[str, Any]) -> list[Any]:
        values: list[Any] = [key]
        for index in spec.indexes:
            value = item.get(index)
            values.append(None if value is None else str(value))
        values.append(dumps_document(item))
        return values

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        spec = self._collection(collection)
        with self._lock:
            row = self._conn.execute(
                f"SELECT doc FROM {collection} WHERE {spec.key} = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return loads_document(row["doc"])  # type: ignore[return-value]

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        self._collection(collection)
        with self._lock:
            rows = self._conn.execute(f"SELECT doc FROM {collection} ORDER BY rowid").fetchall()
        return [loads_document(row["doc"]) for row in rows]  # type: ignore[misc]

    def get_all_by_index(
        self, collection: str, index: str, value: object
    ) -> list[dict[str, Any]]:
        spec = self._collection(collection)
        if index not in spec.indexes and index != spec.key:
            raise StoreError(f"Unknown index {index!r} on {collection}")
        with self._lock:
            rows = self._conn.execute(
                f"SELECT doc FROM {collection} WHERE {index} = ? ORDER BY rowid",
                (None if value is None else str(value),),
            ).fetchall()
        return [loads_document(row["doc"]) for row in rows]  # type: ignore[misc]

    def add(self, collection: str, item: dict[str, Any]) -> None:
        spec = self._collection(collection)
        key = self._key_of(collection, spec, item)
        columns = (spec.key, *spec.indexes, "doc")
        placeholders = ", ".join("?" for _ in columns)
        with self._lock:
            try:
                self._conn.execute(
                    f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders})",
                    self._row_values(spec, key, item),
                )
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise DuplicateKeyError(collection, key) from exc
            self._conn.commit()

    def put(self, collection: str, item: dict[str, Any]) -> None:
        spec = self._collection(collection)
        if spec.append_only:
            raise StoreError(f"{collection} is append-only")
        key = self._key_of(collection, spec, item)
        columns = (spec.key, *spec.indexes, "doc")
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{column} = excluded.{column}" for column in columns[1:])
        with self._lock:
            self._conn.execute(
                f"INSERT INTO {collection} ({', '.join(columns)}) VALUES ({placeholders}) "
                f"ON CONFLICT({spec.key}) DO UPDATE SET {updates}",
                self._row_values(spec, key, item),
            )
            self._conn.commit()

    def delete(self, collection: str, key: str) -> None:
        spec = self._collection(collection)
        if spec.append_only:
            raise StoreError(f"{collection} is append-only")
        with self._lock:
            self._conn.execute(f"DELETE FROM {collection} WHERE {spec.key} = ?", (key,))
            self._conn.commit()
