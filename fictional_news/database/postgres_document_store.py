"""PostgreSQL document store.

Documents live in one JSONB table keyed by (collection, id). Increments
and array appends are single UPDATE statements, so concurrent writers
never lose an update. Live queries listen on the change channel fed by
the table trigger and refetch the snapshot after every notification.
"""
import asyncio
import logging
import uuid
from typing import Any, Optional

import asyncpg

from ..lib.error_handler import NotFound, PersistenceFailure
from .connection import DatabaseConnection
from .document_store import (
    SERVER_TIMESTAMP,
    AppendUnique,
    AtomicOp,
    Direction,
    Document,
    DocumentStore,
    Increment,
    SnapshotStream,
)
from .init import CHANGE_CHANNEL

logger = logging.getLogger(__name__)


class _LiveQuery:
    """Refetches one query after change notifications, one fetch at a time."""

    def __init__(self, store: "PostgresDocumentStore", collection: str, order_field: str,
                 direction: Direction, limit: Optional[int]):
        self.store = store
        self.collection = collection
        self.order_field = order_field
        self.direction = direction
        self.limit = limit
        self.stream: SnapshotStream[list[Document]] = SnapshotStream(on_close=self.stop)
        self._stop_listening = None
        self._dirty = False
        self._started = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        # Listen first so a write committed during the first query still triggers a refetch.
        self._stop_listening = await self.store.db.listen(CHANGE_CHANNEL, self._on_notification)
        self.stream.push(await self.store.fetch_snapshot(
            self.collection, self.order_field, self.direction, self.limit
        ))
        self._started = True
        if self._dirty:
            self._schedule_refresh()

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        if payload != self.collection or self.stream.closed:
            return
        self._dirty = True
        if self._started:
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._refresh())

    async def _refresh(self) -> None:
        # Notifications that arrive mid-fetch collapse into one more fetch.
        while self._dirty and not self.stream.closed:
            self._dirty = False
            try:
                snapshot = await self.store.fetch_snapshot(
                    self.collection, self.order_field, self.direction, self.limit
                )
            except PersistenceFailure as e:
                self.stream.fail(e)
                return
            self.stream.push(snapshot)

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        if self._stop_listening:
            await self._stop_listening()
            self._stop_listening = None


class PostgresDocumentStore(DocumentStore):
    """Document store backed by a JSONB table."""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self._live_queries: list[_LiveQuery] = []

    async def fetch_snapshot(
        self,
        collection: str,
        order_field: str,
        direction: Direction = Direction.DESC,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Run the query behind a live subscription once."""
        order = "DESC" if direction == Direction.DESC else "ASC"
        query = f"""
            SELECT id, data
            FROM documents
            WHERE collection = $1
            ORDER BY data->>$2 {order} NULLS LAST, created_at {order}
            LIMIT $3
        """

        try:
            rows = await self.db.fetch(query, collection, order_field, limit)
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceFailure(f"Snapshot query failed: {e}", "subscribe", e) from e

        return [{"id": row["id"], **row["data"]} for row in rows]

    async def subscribe(
        self,
        collection: str,
        order_field: str,
        direction: Direction = Direction.DESC,
        limit: Optional[int] = None,
    ) -> SnapshotStream[list[Document]]:
        live_query = _LiveQuery(self, collection, order_field, direction, limit)

        try:
            await live_query.start()
        except PersistenceFailure:
            await live_query.stream.close()
            raise
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            await live_query.stream.close()
            raise PersistenceFailure(f"Subscribe failed: {e}", "subscribe", e) from e

        self._live_queries.append(live_query)
        logger.info(f"Live query opened on {collection} ordered by {order_field} {direction.value}")
        return live_query.stream

    async def insert(self, collection: str, document: Document) -> str:
        document_id = uuid.uuid4().hex[:20]
        data = {key: value for key, value in document.items() if value is not SERVER_TIMESTAMP}
        server_fields = [key for key, value in document.items() if value is SERVER_TIMESTAMP]

        query = """
            INSERT INTO documents (collection, id, data)
            VALUES ($1, $2, $3::jsonb || (
                SELECT COALESCE(jsonb_object_agg(f, to_jsonb(NOW())), '{}'::jsonb)
                FROM unnest($4::text[]) AS f
            ))
        """

        try:
            await self.db.execute(query, collection, document_id, data, server_fields)
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceFailure(f"Insert failed: {e}", "insert", e) from e

        logger.debug(f"Inserted {collection}/{document_id}")
        return document_id

    async def update_field(self, collection: str, document_id: str, field: str, op: AtomicOp) -> None:
        if isinstance(op, Increment):
            query = """
                UPDATE documents
                SET data = jsonb_set(
                    data, ARRAY[$3::text],
                    to_jsonb(COALESCE((data->>$3)::bigint, 0) + $4::bigint)
                )
                WHERE collection = $1 AND id = $2
            """
            argument: Any = op.amount
        elif isinstance(op, AppendUnique):
            query = """
                UPDATE documents
                SET data = jsonb_set(
                    data, ARRAY[$3::text],
                    COALESCE(data->$3, '[]'::jsonb) || jsonb_build_array($4::jsonb)
                )
                WHERE collection = $1 AND id = $2
                  AND NOT EXISTS (
                      SELECT 1 FROM jsonb_array_elements(COALESCE(data->$3, '[]'::jsonb)) AS e
                      WHERE e = $4::jsonb
                  )
            """
            argument = op.value
        else:
            raise TypeError(f"Unsupported operation: {op!r}")

        try:
            status = await self.db.execute(query, collection, document_id, field, argument)
            if int(status.split()[-1]) > 0:
                return
            exists = await self.db.fetchval(
                "SELECT EXISTS(SELECT 1 FROM documents WHERE collection = $1 AND id = $2)",
                collection,
                document_id,
            )
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            raise PersistenceFailure(f"Update failed: {e}", "update", e) from e

        if not exists:
            raise NotFound(document_id)
        logger.debug(f"{collection}/{document_id}.{field} already holds the value")

    async def close(self) -> None:
        for live_query in self._live_queries:
            await live_query.stream.close()
        self._live_queries.clear()
