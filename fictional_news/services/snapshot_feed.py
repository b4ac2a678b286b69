"""Single consumer for a snapshot stream.

Snapshots are applied one at a time, in arrival order, by one task.
Once the feed is closed nothing more is applied, even snapshots that
were already queued.
"""
import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

from ..database.document_store import SnapshotStream
from ..lib.error_handler import PersistenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SnapshotFeed(Generic[T]):
    """Drives a SnapshotStream into an apply callback."""

    def __init__(
        self,
        stream: SnapshotStream[T],
        apply: Callable[[T], None],
        on_error: Optional[Callable[[PersistenceFailure], None]] = None,
    ):
        self.stream = stream
        self._apply = apply
        self._on_error = on_error
        self._task: Optional[asyncio.Task] = None
        self._first: Optional[asyncio.Future] = None

    def start(self) -> None:
        loop = asyncio.get_running_loop()
        self._first = loop.create_future()
        self._task = loop.create_task(self._consume())

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _mark_first(self) -> None:
        if self._first is not None and not self._first.done():
            self._first.set_result(None)

    async def _consume(self) -> None:
        try:
            async for snapshot in self.stream:
                try:
                    if not self.stream.closed:
                        self._apply(snapshot)
                finally:
                    self.stream.task_done()
                self._mark_first()
        except PersistenceFailure as e:
            if self._on_error:
                self._on_error(e)
            else:
                logger.error(f"Snapshot feed failed: {e}")
            # Nothing consumes the stream any more, so release the subscription.
            await self.stream.close()
        finally:
            self._mark_first()

    async def wait_first(self) -> None:
        """Wait for the first snapshot, a failure, or close."""
        if self._first is not None:
            await self._first

    async def sync(self) -> None:
        """Wait until every snapshot queued so far has been applied."""
        if not self.running:
            return

        join = asyncio.ensure_future(self.stream.join())
        done, _ = await asyncio.wait({join, self._task}, return_when=asyncio.FIRST_COMPLETED)
        if join not in done:
            join.cancel()

    async def close(self) -> None:
        """Unsubscribe and stop the consumer. Idempotent."""
        await self.stream.close()

        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(self._task, timeout=5)
            except asyncio.TimeoutError:
                logger.warning("Snapshot consumer did not stop, cancelling")
                self._task.cancel()
