"""In-process document store.

Keeps collections in memory and pushes a fresh snapshot to every open
subscription after each write, the same way the PostgreSQL store does
through LISTEN/NOTIFY.
"""
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from ..lib.error_handler import NotFound
from .document_store import (
    SERVER_TIMESTAMP,
    AppendUnique,
    AtomicOp,
    Direction,
    Document,
    DocumentStore,
    Increment,
    SnapshotStream,
    sort_key,
)

logger = logging.getLogger(__name__)


class _Subscription:
    def __init__(self, collection: str, order_field: str, direction: Direction, limit: Optional[int]):
        self.collection = collection
        self.order_field = order_field
        self.direction = direction
        self.limit = limit
        self.stream: SnapshotStream[list[Document]] = SnapshotStream()


class InMemoryDocumentStore(DocumentStore):
    """Document store held in a dict of collections."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._collections: dict[str, dict[str, Document]] = {}
        self._subscriptions: list[_Subscription] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _snapshot(self, subscription: _Subscription) -> list[Document]:
        documents = [
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self._collections.get(subscription.collection, {}).items()
        ]
        documents.sort(
            key=sort_key(subscription.order_field),
            reverse=subscription.direction == Direction.DESC,
        )
        if subscription.limit is not None:
            documents = documents[: subscription.limit]
        return documents

    def _notify(self, collection: str) -> None:
        for subscription in list(self._subscriptions):
            if subscription.collection == collection:
                subscription.stream.push(self._snapshot(subscription))

    async def subscribe(
        self,
        collection: str,
        order_field: str,
        direction: Direction = Direction.DESC,
        limit: Optional[int] = None,
    ) -> SnapshotStream[list[Document]]:
        subscription = _Subscription(collection, order_field, direction, limit)

        async def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
                logger.debug(f"Unsubscribed from {collection}")

        subscription.stream = SnapshotStream(on_close=unsubscribe)
        self._subscriptions.append(subscription)
        subscription.stream.push(self._snapshot(subscription))

        logger.debug(f"Subscribed to {collection} ordered by {order_field} {direction.value}")
        return subscription.stream

    def _resolve(self, document: Document) -> Document:
        resolved = {}
        for key, value in document.items():
            if value is SERVER_TIMESTAMP:
                value = self._clock().isoformat()
            resolved[key] = copy.deepcopy(value)
        return resolved

    async def insert(self, collection: str, document: Document) -> str:
        document_id = uuid.uuid4().hex[:20]
        self._collections.setdefault(collection, {})[document_id] = self._resolve(document)

        logger.debug(f"Inserted {collection}/{document_id}")
        self._notify(collection)
        return document_id

    async def update_field(self, collection: str, document_id: str, field: str, op: AtomicOp) -> None:
        document = self._collections.get(collection, {}).get(document_id)
        if document is None:
            raise NotFound(document_id)

        if isinstance(op, Increment):
            document[field] = (document.get(field) or 0) + op.amount
        elif isinstance(op, AppendUnique):
            values = document.setdefault(field, [])
            if op.value in values:
                return
            values.append(copy.deepcopy(op.value))
        else:
            raise TypeError(f"Unsupported operation: {op!r}")

        self._notify(collection)

    def get(self, collection: str, document_id: str) -> Optional[Document]:
        """Return a copy of one document, for inspection."""
        data = self._collections.get(collection, {}).get(document_id)
        return {"id": document_id, **copy.deepcopy(data)} if data is not None else None

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.stream.close()
