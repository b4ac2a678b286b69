"""Anonymous authentication.

Writes to the remote store carry an identity. Users never see a login
screen: when no identity exists one is created anonymously, and it is
remembered in key-value storage so it survives restarts.
"""
import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from ..lib.error_handler import PersistenceFailure
from ..lib.kv_storage import KeyValueStorage

logger = logging.getLogger(__name__)

UID_STORAGE_KEY = "fictional-news-uid"

AuthCallback = Callable[[Optional["User"]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class User:
    """Signed-in identity."""

    uid: str
    is_anonymous: bool = True


class AnonymousAuthProvider:
    """Issues and remembers anonymous identities."""

    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage
        self._current_user: Optional[User] = None
        self._callbacks: list[AuthCallback] = []
        self._restored = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    async def restore(self) -> Optional[User]:
        """Load a remembered identity, if any."""
        if self._restored:
            return self._current_user
        self._restored = True

        if self.storage is None:
            return None

        try:
            uid = await self.storage.get(UID_STORAGE_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Could not restore identity: {e}")
            return None

        if uid:
            await self._set_user(User(uid=uid))
            logger.info(f"Restored anonymous identity {uid}")
        return self._current_user

    async def sign_in_anonymously(self) -> User:
        """Return the current identity, creating one when absent."""
        await self.restore()
        if self._current_user:
            return self._current_user

        user = User(uid=uuid.uuid4().hex)
        if self.storage is not None:
            await self.storage.set(UID_STORAGE_KEY, user.uid)

        logger.info(f"Signed in anonymously as {user.uid}")
        await self._set_user(user)
        return user

    async def sign_out(self) -> None:
        await self._set_user(None)

    def on_auth_state_changed(self, callback: AuthCallback) -> Callable[[], None]:
        """
        Observe identity changes.

        The callback runs once right away with the current user, then after
        every change. Coroutine callbacks are scheduled on the running loop.

        Returns:
            A function that stops the observation.
        """
        self._callbacks.append(callback)
        self._invoke(callback, self._current_user)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def _set_user(self, user: Optional[User]) -> None:
        if user == self._current_user:
            return
        self._current_user = user
        for callback in list(self._callbacks):
            self._invoke(callback, user)

    def _invoke(self, callback: AuthCallback, user: Optional[User]) -> None:
        result: Any = callback(user)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_finished)

    def _task_finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception():
            logger.error(f"Auth state callback failed: {task.exception()}")

    async def wait_idle(self) -> None:
        """Wait for scheduled callbacks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
