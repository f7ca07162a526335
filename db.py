"""
db.py
SQLite-backed remote store gateway: members table, app_config key/value table,
and in-process change notification for subscribers.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import logging
import sqlite3
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Protocol

from models import RECORD_FIELDS, ChangeEvent, EventType

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]

# Fields a partial update may touch (everything but the key)
UPDATABLE_FIELDS = frozenset(RECORD_FIELDS) - {"id"}


class GatewayError(RuntimeError):
    """A read or write against the store failed."""


class Gateway(Protocol):
    async def fetch_all(self) -> list[dict]: ...

    async def upsert(self, records: list[dict]) -> None: ...

    async def update_fields(self, member_id: int, fields: dict) -> None: ...

    async def delete(self, member_id: int) -> None: ...

    def subscribe(self, on_change: ChangeCallback) -> int: ...

    def unsubscribe(self, handle: int) -> None: ...


def _row_to_record(row: sqlite3.Row) -> dict:
    rec = dict(row)
    rec["payments"] = json.loads(rec["payments"]) if rec["payments"] else []
    return rec


def _encode(field_name: str, value):
    if field_name == "payments":
        return json.dumps(value or [])
    return value


class SqliteGateway:
    def __init__(self, db_file: Path | str):
        self.db_file = Path(db_file)
        self._subscribers: dict[int, Callable[[], ChangeCallback | None]] = {}
        self._handles = itertools.count(1)

    # ---------- connection helpers ----------

    @contextmanager
    def get_conn(self):
        conn = sqlite3.connect(self.db_file, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            logger.error("SQLite error in %s: %s", fn.__name__, exc)
            raise GatewayError(str(exc)) from exc

    def init_db(self) -> None:
        with self.get_conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS members (
                    id INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    phone TEXT,
                    email TEXT,
                    committed_amount REAL NOT NULL DEFAULT 0,
                    frequency TEXT NOT NULL CHECK(frequency IN ('Monthly','Yearly','One-time')),
                    payments TEXT NOT NULL DEFAULT '[]',
                    notes TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS app_config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    # ---------- members ----------

    def _fetch_all(self) -> list[dict]:
        with self.get_conn() as conn:
            rows = conn.execute("SELECT * FROM members ORDER BY name").fetchall()
        return [_row_to_record(r) for r in rows]

    def _upsert(self, records: list[dict]) -> list[ChangeEvent]:
        cols = ", ".join(RECORD_FIELDS)
        marks = ", ".join("?" for _ in RECORD_FIELDS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in RECORD_FIELDS if c != "id")
        sql = f"INSERT INTO members({cols}) VALUES({marks}) ON CONFLICT(id) DO UPDATE SET {updates}"

        events: list[ChangeEvent] = []
        with self.get_conn() as conn:
            for rec in records:
                existed = conn.execute("SELECT 1 FROM members WHERE id = ?", (rec["id"],)).fetchone()
                conn.execute(sql, tuple(_encode(c, rec.get(c)) for c in RECORD_FIELDS))
                row = conn.execute("SELECT * FROM members WHERE id = ?", (rec["id"],)).fetchone()
                kind = EventType.UPDATE if existed else EventType.INSERT
                events.append(ChangeEvent(kind, _row_to_record(row)))
        return events

    def _update_fields(self, member_id: int, fields: dict) -> list[ChangeEvent]:
        sets = ", ".join(f"{k} = ?" for k in fields)
        params = tuple(_encode(k, v) for k, v in fields.items()) + (member_id,)
        with self.get_conn() as conn:
            cur = conn.execute(f"UPDATE members SET {sets} WHERE id = ?", params)
            if cur.rowcount == 0:
                return []
            row = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
        return [ChangeEvent(EventType.UPDATE, _row_to_record(row))]

    def _delete(self, member_id: int) -> list[ChangeEvent]:
        with self.get_conn() as conn:
            deleted = conn.execute("DELETE FROM members WHERE id = ?", (member_id,)).rowcount
        if deleted == 0:
            return []
        return [ChangeEvent(EventType.DELETE, {"id": member_id})]

    async def fetch_all(self) -> list[dict]:
        return await self._run(self._fetch_all)

    async def upsert(self, records: list[dict]) -> None:
        if not records:
            return
        self._emit(await self._run(self._upsert, records))

    async def update_fields(self, member_id: int, fields: dict) -> None:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise GatewayError(f"Cannot update fields: {sorted(unknown)}")
        if not fields:
            return
        self._emit(await self._run(self._update_fields, member_id, fields))

    async def delete(self, member_id: int) -> None:
        self._emit(await self._run(self._delete, member_id))

    # ---------- app_config ----------

    def _get_config(self, key: str) -> str | None:
        with self.get_conn() as conn:
            row = conn.execute("SELECT value FROM app_config WHERE key = ?", (key,)).fetchone()
        return str(row["value"]) if row else None

    def _set_config(self, key: str, value: str) -> None:
        with self.get_conn() as conn:
            conn.execute(
                """
                INSERT INTO app_config(key, value) VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )

    async def get_config(self, key: str) -> str | None:
        return await self._run(self._get_config, key)

    async def set_config(self, key: str, value: str) -> None:
        await self._run(self._set_config, key, value)

    # ---------- change notification ----------

    def subscribe(self, on_change: ChangeCallback) -> int:
        """
        Register a change callback. Bound methods are held weakly, so a store
        dropped without unsubscribing leaves the registry on its own.
        """
        handle = next(self._handles)
        if inspect.ismethod(on_change):
            self._subscribers[handle] = weakref.WeakMethod(on_change)
        else:
            self._subscribers[handle] = lambda: on_change
        return handle

    def unsubscribe(self, handle: int) -> None:
        self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        self._prune()
        return len(self._subscribers)

    def _prune(self) -> None:
        for handle, ref in list(self._subscribers.items()):
            if ref() is None:
                self._subscribers.pop(handle, None)

    def _emit(self, events: list[ChangeEvent]) -> None:
        # Runs on the caller's thread, after the write has committed
        self._prune()
        for event in events:
            for handle, ref in list(self._subscribers.items()):
                callback = ref()
                if callback is None:
                    continue
                try:
                    callback(event)
                except Exception:
                    logger.exception("Subscriber %s failed on %s event", handle, event.event_type.value)
