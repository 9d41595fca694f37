"""PostgreSQL content history.

The synchronous psycopg connection runs in the default executor, so callers
await every method without blocking the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, TypeVar

import psycopg
from psycopg.rows import dict_row

from splitflap.storage.records import ContentRecord, RecordStatus

log = logging.getLogger(__name__)

T = TypeVar("T")

_COLUMNS = (
    "text",
    "update_type",
    "generated_at",
    "sent_at",
    "status",
    "generator_id",
    "generator_name",
    "priority",
    "provider",
    "model",
    "model_tier",
    "tokens_used",
    "failed_over",
    "primary_provider",
    "primary_error",
    "error_type",
    "error_message",
    "output_mode",
    "metadata",
)


class PostgresContentRepository:
    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._conn: psycopg.Connection[Any] | None = None

    async def _run(self, fn: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def initialize(self) -> None:
        """Connect and create the ``content`` table if it does not exist."""
        await self._run(self._connect)

    def _connect(self) -> None:
        self._conn = psycopg.connect(self._dsn, row_factory=dict_row, connect_timeout=3)
        self._ensure_schema()
        log.info("Content repository ready.")

    def _require(self) -> psycopg.Connection[Any]:
        if self._conn is None:
            raise RuntimeError("PostgresContentRepository not initialized. Call initialize() first.")
        return self._conn

    def _ensure_schema(self) -> None:
        conn = self._require()
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS content (
                    id BIGSERIAL PRIMARY KEY,
                    text TEXT NOT NULL,
                    update_type TEXT NOT NULL CHECK (update_type IN ('major', 'minor')),
                    generated_at TIMESTAMPTZ NOT NULL,
                    sent_at TIMESTAMPTZ,
                    status TEXT NOT NULL DEFAULT 'success'
                        CHECK (status IN ('success', 'failed')),
                    generator_id VARCHAR(100),
                    generator_name VARCHAR(200),
                    priority INTEGER DEFAULT 2,
                    provider VARCHAR(50) NOT NULL DEFAULT '',
                    model VARCHAR(100),
                    model_tier VARCHAR(20),
                    tokens_used INTEGER,
                    failed_over BOOLEAN DEFAULT FALSE,
                    primary_provider VARCHAR(50),
                    primary_error TEXT,
                    error_type VARCHAR(100),
                    error_message TEXT,
                    output_mode VARCHAR(10),
                    metadata JSONB NOT NULL DEFAULT '{}'::jsonb
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_content_generated_at ON content (generated_at)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_content_status ON content (status)")
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_content_generator_id ON content (generator_id)"
            )
        conn.commit()

    async def save_content(self, record: ContentRecord) -> int | None:
        """Insert *record* and return its new id."""
        return await self._run(lambda: self._insert(record))

    def _insert(self, record: ContentRecord) -> int | None:
        conn = self._require()
        values = [getattr(record, name) for name in _COLUMNS[:-1]]
        values.append(json.dumps(record.metadata, default=str))
        placeholders = ", ".join(["%s"] * len(_COLUMNS))
        with conn.cursor() as cur:
            cur.execute(
                f"INSERT INTO content ({', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders}) RETURNING id",
                values,
            )
            row = cur.fetchone()
        conn.commit()
        return int(row["id"]) if row else None

    async def find_latest(
        self,
        limit: int = 10,
        status: RecordStatus | None = None,
    ) -> list[ContentRecord]:
        """Return the newest records first, optionally filtered by status."""
        limit = max(1, min(int(limit), 1000))
        return await self._run(lambda: self._select_latest(limit, status))

    def _select_latest(self, limit: int, status: RecordStatus | None) -> list[ContentRecord]:
        conn = self._require()
        with conn.cursor() as cur:
            if status:
                cur.execute(
                    f"SELECT id, {', '.join(_COLUMNS)} FROM content "
                    "WHERE status = %s ORDER BY id DESC LIMIT %s",
                    (status, limit),
                )
            else:
                cur.execute(
                    f"SELECT id, {', '.join(_COLUMNS)} FROM content "
                    "ORDER BY id DESC LIMIT %s",
                    (limit,),
                )
            rows = cur.fetchall()
        return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: dict[str, Any]) -> ContentRecord:
        data = {name: row.get(name) for name in _COLUMNS}
        metadata = data.pop("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        data["provider"] = data["provider"] or ""
        data["failed_over"] = bool(data["failed_over"])
        return ContentRecord(id=row["id"], metadata=metadata, **data)

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await self._run(conn.close)
