"""Tests for the Postgres content repository with a mocked connection."""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from splitflap.storage import ContentRecord, PostgresContentRepository

GENERATED_AT = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def mock_connection(fetchone=None, fetchall=None):
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = fetchone
    cursor.fetchall.return_value = fetchall or []
    return conn, cursor


async def connected_repository(conn):
    repository = PostgresContentRepository("postgresql://test")
    with patch("splitflap.storage.postgres.psycopg.connect", return_value=conn) as connect:
        await repository.initialize()
    connect.assert_called_once()
    return repository


@pytest.mark.asyncio
async def test_initialize_creates_schema():
    conn, cursor = mock_connection()
    await connected_repository(conn)

    statements = [c.args[0] for c in cursor.execute.call_args_list]
    assert any("CREATE TABLE IF NOT EXISTS content" in s for s in statements)
    assert sum("CREATE INDEX" in s for s in statements) == 3
    conn.commit.assert_called_once()


@pytest.mark.asyncio
async def test_save_content_returns_new_id():
    conn, cursor = mock_connection(fetchone={"id": 17})
    repository = await connected_repository(conn)
    record = ContentRecord(
        text="",
        update_type="major",
        generated_at=GENERATED_AT,
        status="failed",
        error_type="RateLimitError",
        error_message="throttled",
        metadata={"errors": ["throttled"]},
    )

    assert await repository.save_content(record) == 17

    sql, values = cursor.execute.call_args.args
    assert sql.startswith("INSERT INTO content")
    assert "RETURNING id" in sql
    assert "failed" in values
    assert json.loads(values[-1]) == {"errors": ["throttled"]}


@pytest.mark.asyncio
async def test_find_latest_clamps_limit_and_filters_status():
    row = {
        "id": 3,
        "text": "HELLO",
        "update_type": "major",
        "generated_at": GENERATED_AT,
        "status": "success",
        "provider": None,
        "failed_over": None,
        "metadata": '{"model": "gpt"}',
    }
    conn, cursor = mock_connection(fetchall=[row])
    repository = await connected_repository(conn)

    records = await repository.find_latest(limit=5000, status="success")

    sql, params = cursor.execute.call_args.args
    assert "WHERE status = %s" in sql
    assert params == ("success", 1000)
    assert records[0].id == 3
    assert records[0].provider == ""
    assert records[0].failed_over is False
    assert records[0].metadata == {"model": "gpt"}


@pytest.mark.asyncio
async def test_requires_initialize():
    repository = PostgresContentRepository("postgresql://test")
    with pytest.raises(RuntimeError, match="not initialized"):
        await repository.find_latest()


@pytest.mark.asyncio
async def test_close_is_idempotent():
    conn, _ = mock_connection()
    repository = await connected_repository(conn)
    await repository.close()
    await repository.close()
    conn.close.assert_called_once()
