"""SQLite-backed storage adapter."""

from __future__ import annotations

import json
import time
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from recollect.models.config import StoreConfig
from recollect.models.message import Message
from recollect.models.session import SessionEvent, SessionStats
from recollect.store.base import (
    DEFAULT_EVENT_LIMIT,
    MalformedEventError,
    MalformedMessageError,
    StorageAdapter,
    StoreNotInitializedError,
    merge_stats,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dump_message(message: Message) -> str:
    return json.dumps(message.to_wire(), ensure_ascii=False, default=str)


class SQLiteStorageAdapter(StorageAdapter):
    """
    Session storage in a single SQLite database.

    Owns one ``aiosqlite`` connection. Messages are stored as wire-format JSON,
    one row per message, ordered by an autoincrement id. ``replace_messages``
    deletes and re-inserts a session's rows inside one transaction.

    Usage::

        storage = SQLiteStorageAdapter(StoreConfig(db_path="~/.recollect/app.db"))
        await storage.initialize()
        try:
            await storage.append_message("sess-1", Message(role="user", content="hi"))
        finally:
            await storage.dispose()
    """

    def __init__(self, config: StoreConfig | None = None) -> None:
        self._config = config or StoreConfig()
        self._db_path = str(Path(self._config.db_path).expanduser())
        self._conn: aiosqlite.Connection | None = None
        self._logger = structlog.get_logger("recollect.store")

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """
        Open the database connection and apply the schema.

        Raises:
            aiosqlite.Error: If the database cannot be opened or the schema fails.
        """
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self._db_path, timeout=self._config.connection_timeout)
        try:
            conn.row_factory = aiosqlite.Row
            if self._config.wal_mode:
                await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            schema = (Path(__file__).parent / "schema.sql").read_text()
            await conn.executescript(schema)
            await conn.commit()
        except Exception:
            await conn.close()
            raise

        self._conn = conn
        self._logger.info("store_initialized", db_path=self._db_path)

    async def dispose(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        self._logger.info("store_disposed", db_path=self._db_path)

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreNotInitializedError()
        return self._conn

    # ── Messages ───────────────────────────────────────────────────────────────

    async def append_message(self, session_id: str, message: Message) -> None:
        conn = self._conn_or_raise()
        await conn.execute(
            "INSERT INTO messages (session_id, role, data, created_at) VALUES (?, ?, ?, ?)",
            (session_id, message.role, _dump_message(message), _now_ms()),
        )
        await conn.commit()

    async def list_messages(self, session_id: str) -> list[Message]:
        """
        Fetch a session's messages, oldest first.

        Raises:
            MalformedMessageError: If a stored row is not valid message JSON.
        """
        conn = self._conn_or_raise()
        async with conn.execute(
            "SELECT id, data FROM messages WHERE session_id = ? ORDER BY id ASC",
            (session_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_message(session_id, row) for row in rows]

    async def replace_messages(self, session_id: str, messages: Sequence[Message]) -> None:
        conn = self._conn_or_raise()
        now = _now_ms()
        try:
            await conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
            await conn.executemany(
                "INSERT INTO messages (session_id, role, data, created_at) VALUES (?, ?, ?, ?)",
                [(session_id, m.role, _dump_message(m), now) for m in messages],
            )
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise
        self._logger.debug("messages_replaced", session_id=session_id, count=len(messages))

    async def clear_session(self, session_id: str) -> int:
        conn = self._conn_or_raise()
        cursor = await conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        removed = cursor.rowcount
        await cursor.close()
        await conn.commit()
        return max(removed, 0)

    # ── Events ─────────────────────────────────────────────────────────────────

    async def append_event(self, event: SessionEvent) -> None:
        conn = self._conn_or_raise()
        await conn.execute(
            """
            INSERT INTO session_events (id, session_id, type, payload, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.session_id,
                event.type,
                json.dumps(event.payload, ensure_ascii=False, default=str),
                event.created_at,
            ),
        )
        await conn.commit()

    async def list_events(
        self, session_id: str, limit: int = DEFAULT_EVENT_LIMIT
    ) -> list[SessionEvent]:
        """
        Fetch the most recent ``limit`` events of a session, oldest first.

        Raises:
            MalformedEventError: If a stored event payload is not valid JSON.
        """
        conn = self._conn_or_raise()
        if limit <= 0:
            return []
        async with conn.execute(
            """
            SELECT id, session_id, type, payload, created_at FROM session_events
            WHERE session_id = ? ORDER BY seq DESC LIMIT ?
            """,
            (session_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()
        return [self._row_to_event(session_id, row) for row in reversed(rows)]

    def _row_to_event(self, session_id: str, row: aiosqlite.Row) -> SessionEvent:
        try:
            return SessionEvent(
                id=row["id"],
                session_id=row["session_id"],
                type=row["type"],
                payload=json.loads(row["payload"]),
                created_at=row["created_at"],
            )
        except (ValueError, TypeError) as exc:
            raise MalformedEventError(session_id, row["id"], str(exc)) from exc

    # ── Stats ──────────────────────────────────────────────────────────────────

    async def get_stats(self, session_id: str) -> SessionStats:
        conn = self._conn_or_raise()
        async with conn.execute(
            """
            SELECT compaction_count, last_compaction_tokens_before,
                   last_compaction_tokens_after, last_compaction_reason, canonical_context
            FROM session_stats WHERE session_id = ?
            """,
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return SessionStats()

        canonical: list[Message] | None = None
        if row["canonical_context"]:
            try:
                canonical = [
                    Message.model_validate(m) for m in json.loads(row["canonical_context"])
                ]
            except (ValueError, TypeError) as exc:
                raise MalformedMessageError(session_id, "session_stats", str(exc)) from exc

        return SessionStats(
            compaction_count=row["compaction_count"] or 0,
            last_compaction_tokens_before=row["last_compaction_tokens_before"],
            last_compaction_tokens_after=row["last_compaction_tokens_after"],
            last_compaction_reason=row["last_compaction_reason"],
            canonical_context=canonical,
        )

    async def update_stats(
        self, session_id: str, *, reset: Iterable[str] = (), **patch: Any
    ) -> SessionStats:
        conn = self._conn_or_raise()
        merged = merge_stats(await self.get_stats(session_id), patch, reset)
        canonical_json = (
            json.dumps([m.to_wire() for m in merged.canonical_context], ensure_ascii=False, default=str)
            if merged.canonical_context is not None
            else None
        )
        await conn.execute(
            """
            INSERT INTO session_stats (
                session_id, compaction_count, last_compaction_tokens_before,
                last_compaction_tokens_after, last_compaction_reason,
                canonical_context, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(session_id) DO UPDATE SET
                compaction_count = excluded.compaction_count,
                last_compaction_tokens_before = excluded.last_compaction_tokens_before,
                last_compaction_tokens_after = excluded.last_compaction_tokens_after,
                last_compaction_reason = excluded.last_compaction_reason,
                canonical_context = excluded.canonical_context,
                updated_at = excluded.updated_at
            """,
            (
                session_id,
                merged.compaction_count,
                merged.last_compaction_tokens_before,
                merged.last_compaction_tokens_after,
                merged.last_compaction_reason,
                canonical_json,
                _now_ms(),
            ),
        )
        await conn.commit()
        return merged

    # ── Row conversion ─────────────────────────────────────────────────────────

    def _row_to_message(self, session_id: str, row: aiosqlite.Row) -> Message:
        try:
            return Message.model_validate(json.loads(row["data"]))
        except (ValueError, TypeError) as exc:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise MalformedMessageError(session_id, row["id"], str(exc)) from exc
