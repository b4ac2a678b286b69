"""Document store interface.

This module defines the collection/document contract the remote article
store is written against, the atomic field operations it relies on, and
the snapshot stream that delivers live query results.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Generic, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]


class Direction(Enum):
    """Sort direction of a live query."""

    ASC = "asc"
    DESC = "desc"


class _ServerTimestamp:
    """Placeholder replaced by the store's clock at write time."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Increment:
    """Add ``amount`` to a numeric field."""

    amount: int = 1


@dataclass(frozen=True)
class AppendUnique:
    """Append ``value`` to an array field unless an equal element exists."""

    value: Any


AtomicOp = Union[Increment, AppendUnique]

_CLOSED = object()


class SnapshotStream(Generic[T]):
    """
    Single-consumer queue of full snapshots.

    Producers call ``push``/``fail``; one consumer iterates with
    ``async for``. ``close`` runs the unsubscribe hook exactly once, after
    which pushes are dropped and iteration stops.
    """

    def __init__(
        self,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        transform: Optional[Callable[[Any], T]] = None,
    ):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._transform = transform
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, snapshot: Any) -> None:
        """Queue a snapshot; ignored once closed."""
        if self._closed:
            logger.debug("Dropping snapshot pushed after close")
            return
        self._queue.put_nowait(snapshot)

    def fail(self, error: BaseException) -> None:
        """Deliver a subscription error to the consumer."""
        if not self._closed:
            self._queue.put_nowait(error)

    def map(self, transform: Callable[[Any], T]) -> "SnapshotStream[T]":
        """Apply ``transform`` to every snapshot as it is consumed."""
        previous = self._transform
        self._transform = transform if previous is None else (lambda item: transform(previous(item)))
        return self

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()

        if item is _CLOSED:
            self._queue.task_done()
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            self._queue.task_done()
            raise item

        if self._transform is None:
            return item
        try:
            return self._transform(item)
        except Exception:
            self._queue.task_done()
            raise

    def task_done(self) -> None:
        """Mark the snapshot returned by the last ``__anext__`` as applied."""
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued snapshot has been marked done."""
        await self._queue.join()

    async def close(self) -> None:
        """Unsubscribe; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

        if self._on_close:
            await self._on_close()


class DocumentStore(ABC):
    """Collections of JSON-like documents with live queries."""

    @abstractmethod
    async def subscribe(
        self,
        collection: str,
        order_field: str,
        direction: Direction = Direction.DESC,
        limit: Optional[int] = None,
    ) -> SnapshotStream[list[Document]]:
        """
        Open a live query.

        The stream first yields the current snapshot, then a new full
        snapshot after every change to the collection. Each document
        carries its ``id``.
        """

    @abstractmethod
    async def insert(self, collection: str, document: Document) -> str:
        """Insert a document and return its generated id."""

    @abstractmethod
    async def update_field(self, collection: str, document_id: str, field: str, op: AtomicOp) -> None:
        """
        Apply an atomic operation to one field of one document.

        Raises:
            NotFound: no document with that id
        """

    async def close(self) -> None:
        """Release connections held by the store."""


def sort_key(order_field: str) -> Callable[[Document], Any]:
    """Sort key tolerant of missing values (they sort last when descending)."""

    def key(document: Document) -> tuple:
        value = document.get(order_field)
        return (value is not None, value if value is not None else "")

    return key
