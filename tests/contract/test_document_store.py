"""Contract tests for document stores.

The in-memory store is exercised directly; the PostgreSQL store is checked
against a mocked connection for the statements it issues and the way it
maps results and errors.
"""
import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from fictional_news.database.connection import DatabaseConnection
from fictional_news.database.document_store import (
    SERVER_TIMESTAMP,
    AppendUnique,
    Direction,
    Increment,
    SnapshotStream,
)
from fictional_news.database.init import CHANGE_CHANNEL, DatabaseInitializer
from fictional_news.database.memory_document_store import InMemoryDocumentStore
from fictional_news.database.postgres_document_store import PostgresDocumentStore
from fictional_news.lib.error_handler import NotFound, PersistenceFailure

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


async def next_snapshot(stream: SnapshotStream):
    snapshot = await asyncio.wait_for(stream.__anext__(), timeout=1)
    stream.task_done()
    return snapshot


class TestSnapshotStream:
    """Test the snapshot queue itself."""

    async def test_map_chains(self):
        """Test transforms apply in order."""
        stream = SnapshotStream().map(lambda x: x + 1).map(lambda x: x * 10)
        stream.push(1)
        assert await next_snapshot(stream) == 20

    async def test_close_runs_hook_once(self):
        """Test close is idempotent and ends iteration."""
        hook = AsyncMock()
        stream = SnapshotStream(on_close=hook)

        await stream.close()
        await stream.close()
        stream.push("late")

        hook.assert_awaited_once()
        assert stream.closed
        assert [item async for item in stream] == []

    async def test_fail_raises_to_consumer(self):
        """Test subscription errors reach the consumer."""
        stream = SnapshotStream()
        stream.fail(PersistenceFailure("lost", "subscribe"))

        with pytest.raises(PersistenceFailure):
            await stream.__anext__()
        await asyncio.wait_for(stream.join(), timeout=1)


class TestInMemoryDocumentStore:
    """Test the in-memory document store contract."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore(clock=lambda: NOW)

    async def test_first_snapshot_is_immediate(self, store):
        """Test subscribers get the current state right away."""
        document_id = await store.insert("articles", {"title": "A", "createdAt": "2024-01-01"})
        stream = await store.subscribe("articles", "createdAt")

        assert await next_snapshot(stream) == [{"id": document_id, "title": "A", "createdAt": "2024-01-01"}]

    async def test_every_write_pushes_a_snapshot(self, store):
        """Test inserts and updates notify subscribers."""
        stream = await store.subscribe("articles", "createdAt")
        assert await next_snapshot(stream) == []

        document_id = await store.insert("articles", {"likes": 0, "createdAt": "2024-01-01"})
        await store.update_field("articles", document_id, "likes", Increment(2))

        assert (await next_snapshot(stream))[0]["likes"] == 0
        assert (await next_snapshot(stream))[0]["likes"] == 2

    async def test_other_collections_do_not_notify(self, store):
        """Test subscriptions are per collection."""
        stream = await store.subscribe("articles", "createdAt")
        await next_snapshot(stream)

        await store.insert("comments", {"text": "hi"})
        assert stream._queue.empty()

    async def test_ordering_and_limit(self, store):
        """Test direction and limit of a live query."""
        for day in ("2024-01-02", "2024-01-01", "2024-01-03"):
            await store.insert("articles", {"createdAt": day})

        newest = await next_snapshot(await store.subscribe("articles", "createdAt", Direction.DESC, limit=2))
        oldest = await next_snapshot(await store.subscribe("articles", "createdAt", Direction.ASC))

        assert [d["createdAt"] for d in newest] == ["2024-01-03", "2024-01-02"]
        assert [d["createdAt"] for d in oldest] == ["2024-01-01", "2024-01-02", "2024-01-03"]

    async def test_missing_order_field_sorts_last(self, store):
        """Test documents without the field go to the end when descending."""
        await store.insert("comments", {"text": "pending"})
        await store.insert("comments", {"text": "dated", "createdAt": "2024-01-01"})

        snapshot = await next_snapshot(await store.subscribe("comments", "createdAt"))
        assert [d["text"] for d in snapshot] == ["dated", "pending"]

    async def test_server_timestamp(self, store):
        """Test the placeholder is replaced at write time."""
        document_id = await store.insert("comments", {"text": "hi", "createdAt": SERVER_TIMESTAMP})
        assert store.get("comments", document_id)["createdAt"] == NOW.isoformat()

    async def test_increment_missing_field(self, store):
        """Test increments start from zero."""
        document_id = await store.insert("articles", {})
        await store.update_field("articles", document_id, "likes", Increment(1))
        assert store.get("articles", document_id)["likes"] == 1

    async def test_append_unique(self, store):
        """Test equal elements are appended once."""
        document_id = await store.insert("articles", {"comments": []})
        stream = await store.subscribe("articles", "createdAt")
        await next_snapshot(stream)

        comment = {"author": "a", "text": "hi", "time": "t"}
        await store.update_field("articles", document_id, "comments", AppendUnique(comment))
        await store.update_field("articles", document_id, "comments", AppendUnique(dict(comment)))

        assert store.get("articles", document_id)["comments"] == [comment]
        await next_snapshot(stream)
        assert stream._queue.empty()

    async def test_update_missing_document(self, store):
        """Test NotFound for unknown ids."""
        with pytest.raises(NotFound):
            await store.update_field("articles", "missing", "likes", Increment(1))

    async def test_snapshots_are_copies(self, store):
        """Test consumers cannot mutate stored documents."""
        document_id = await store.insert("articles", {"comments": []})
        snapshot = await next_snapshot(await store.subscribe("articles", "createdAt"))
        snapshot[0]["comments"].append("sneaky")

        assert store.get("articles", document_id)["comments"] == []

    async def test_close_ends_subscriptions(self, store):
        """Test closing the store closes open streams."""
        stream = await store.subscribe("articles", "createdAt")
        await next_snapshot(stream)
        await store.close()

        assert stream.closed
        await store.insert("articles", {})
        assert [item async for item in stream] == []


@pytest.fixture
def db():
    """Mocked DatabaseConnection."""
    db = Mock(spec=DatabaseConnection)
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=True)
    db.stop_listening = AsyncMock()
    db.listen = AsyncMock(return_value=db.stop_listening)
    return db


class TestPostgresDocumentStore:
    """Test SQL issued by the PostgreSQL store."""

    @pytest.fixture
    def store(self, db):
        return PostgresDocumentStore(db)

    async def test_insert_splits_server_fields(self, store, db):
        """Test server timestamps are filled in by the database."""
        document_id = await store.insert("comments", {"text": "hi", "uid": "u1", "createdAt": SERVER_TIMESTAMP})

        query, collection, inserted_id, data, server_fields = db.execute.await_args.args
        assert "INSERT INTO documents" in query
        assert (collection, inserted_id) == ("comments", document_id)
        assert data == {"text": "hi", "uid": "u1"}
        assert server_fields == ["createdAt"]

    async def test_increment(self, store, db):
        """Test increments are one UPDATE statement."""
        await store.update_field("articles", "a1", "likes", Increment(1))

        query, *args = db.execute.await_args.args
        assert "jsonb_set" in query and "bigint" in query
        assert args == ["articles", "a1", "likes", 1]
        db.fetchval.assert_not_awaited()

    async def test_append_unique_duplicate(self, store, db):
        """Test a duplicate append updates nothing and is not an error."""
        db.execute.return_value = "UPDATE 0"
        db.fetchval.return_value = True

        await store.update_field("articles", "a1", "comments", AppendUnique({"text": "hi"}))

        query, *args = db.execute.await_args.args
        assert "NOT EXISTS" in query
        assert args[-1] == {"text": "hi"}

    async def test_update_missing_document(self, store, db):
        """Test NotFound when no row matched and none exists."""
        db.execute.return_value = "UPDATE 0"
        db.fetchval.return_value = False

        with pytest.raises(NotFound):
            await store.update_field("articles", "missing", "likes", Increment(1))

    async def test_errors_are_wrapped(self, store, db):
        """Test connection errors become PersistenceFailure."""
        db.execute.side_effect = OSError("connection lost")

        with pytest.raises(PersistenceFailure):
            await store.insert("articles", {"title": "A"})
        with pytest.raises(PersistenceFailure):
            await store.update_field("articles", "a1", "likes", Increment(1))

    async def test_fetch_snapshot(self, store, db):
        """Test rows map to documents with their id."""
        db.fetch.return_value = [{"id": "a1", "data": {"title": "A"}}]

        snapshot = await store.fetch_snapshot("articles", "createdAt", Direction.ASC, limit=10)

        query, *args = db.fetch.await_args.args
        assert "ASC" in query
        assert args == ["articles", "createdAt", 10]
        assert snapshot == [{"id": "a1", "title": "A"}]

    async def test_live_query_refetches_on_notification(self, store, db):
        """Test change notifications for the collection trigger a refetch."""
        db.fetch.side_effect = [
            [{"id": "a1", "data": {"title": "A"}}],
            [{"id": "a2", "data": {"title": "B"}}, {"id": "a1", "data": {"title": "A"}}],
        ]

        stream = await store.subscribe("articles", "createdAt")
        assert [d["id"] for d in await next_snapshot(stream)] == ["a1"]

        channel, handler = db.listen.await_args.args
        assert channel == CHANGE_CHANNEL

        handler(None, 1, CHANGE_CHANNEL, "comments")
        handler(None, 1, CHANGE_CHANNEL, "articles")
        assert [d["id"] for d in await next_snapshot(stream)] == ["a2", "a1"]
        assert db.fetch.await_count == 2

        await stream.close()
        db.stop_listening.assert_awaited_once()

    async def test_refetch_failure_reaches_consumer(self, store, db):
        """Test a failed refetch is delivered as an error."""
        db.fetch.side_effect = [[], OSError("connection lost")]

        stream = await store.subscribe("articles", "createdAt")
        await next_snapshot(stream)

        _, handler = db.listen.await_args.args
        handler(None, 1, CHANGE_CHANNEL, "articles")

        with pytest.raises(PersistenceFailure):
            await asyncio.wait_for(stream.__anext__(), timeout=1)
        await store.close()

    async def test_subscribe_failure(self, store, db):
        """Test a failing first query raises PersistenceFailure."""
        db.fetch.side_effect = OSError("connection refused")

        with pytest.raises(PersistenceFailure):
            await store.subscribe("articles", "createdAt")
        db.stop_listening.assert_awaited_once()

    async def test_write_during_first_query_is_not_missed(self, store, db):
        """Test a change committed while the first query runs triggers a refetch."""
        rows = []

        async def fetch(*args):
            snapshot = list(rows)
            if not rows:
                rows.append({"id": "a1", "data": {"title": "A"}})
                _, handler = db.listen.await_args.args
                handler(None, 1, CHANGE_CHANNEL, "articles")
            return snapshot

        db.fetch.side_effect = fetch

        stream = await store.subscribe("articles", "createdAt")

        assert await next_snapshot(stream) == []
        assert [d["id"] for d in await next_snapshot(stream)] == ["a1"]
        assert db.fetch.await_count == 2
        await stream.close()


class TestDatabaseInitializer:
    """Test schema creation statements."""

    async def test_create_tables(self, db):
        """Test table, trigger and index DDL are issued."""
        await DatabaseInitializer(db).create_tables()

        statements = " ".join(call.args[0] for call in db.execute.await_args_list)
        assert "CREATE TABLE IF NOT EXISTS documents" in statements
        assert f"pg_notify('{CHANGE_CHANNEL}'" in statements
        assert "CREATE TRIGGER documents_changed" in statements

    async def test_validate_schema(self, db):
        """Test missing objects are listed."""
        db.fetchval.side_effect = [False, False]
        assert await DatabaseInitializer(db).validate_schema() == [
            "Missing table: documents",
            "Missing function: documents_changed",
        ]
