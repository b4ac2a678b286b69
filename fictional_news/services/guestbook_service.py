"""Guestbook service.

A board-wide comment feed kept next to the articles: newest entries
first, capped at a fixed number, each stamped with the poster's anonymous
uid and the store's clock.
"""
import logging
from typing import Optional

from ..database.document_store import SERVER_TIMESTAMP, Direction, Document, DocumentStore
from ..lib.error_handler import ErrorHandler, PersistenceFailure, ValidationFailure
from ..models.article import GuestbookEntry, validate_guestbook_text
from .auth_service import AnonymousAuthProvider
from .remote_store import ensure_signed_in
from .snapshot_feed import SnapshotFeed

logger = logging.getLogger(__name__)


def documents_to_entries(documents: list[Document]) -> list[GuestbookEntry]:
    entries = []
    for document in documents:
        try:
            entries.append(GuestbookEntry.from_dict(document))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed guestbook document {document.get('id')}: {e}")
    return entries


class GuestbookService:
    """Live guestbook over a document store collection."""

    def __init__(
        self,
        document_store: DocumentStore,
        auth: AnonymousAuthProvider,
        collection: str = "comments",
        limit: int = 50,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.document_store = document_store
        self.auth = auth
        self.collection = collection
        self.limit = limit
        self.error_handler = error_handler or ErrorHandler()
        self._entries: list[GuestbookEntry] = []
        self._feed: Optional[SnapshotFeed[list[GuestbookEntry]]] = None
        self._stop_auth = None

    @property
    def entries(self) -> list[GuestbookEntry]:
        return list(self._entries)

    @property
    def ready(self) -> bool:
        """Posting is allowed once an identity exists."""
        return self.auth.current_user is not None

    async def start(self) -> None:
        """Sign in if needed and open the live feed."""
        await self.auth.restore()
        self._stop_auth = self.auth.on_auth_state_changed(
            lambda user: ensure_signed_in(self.auth, user)
        )
        await self.auth.wait_idle()

        try:
            stream = await self.document_store.subscribe(
                self.collection, "createdAt", Direction.DESC, self.limit
            )
        except PersistenceFailure as e:
            self.error_handler.report(e, "subscribe")
            return

        self._feed = SnapshotFeed(stream.map(documents_to_entries), self._apply, self._on_error)
        self._feed.start()
        await self._feed.wait_first()

    def _apply(self, entries: list[GuestbookEntry]) -> None:
        self._entries = entries

    def _on_error(self, error: PersistenceFailure) -> None:
        self.error_handler.report(error, "subscribe")

    async def post(self, text: str) -> Optional[str]:
        """
        Post a guestbook entry.

        Returns:
            The new entry id, or None when the text was rejected, no
            identity exists yet, or the write failed.
        """
        try:
            cleaned = validate_guestbook_text(text)
        except ValidationFailure as e:
            logger.debug(f"Guestbook entry rejected: {e.message}")
            return None

        user = self.auth.current_user
        if user is None:
            logger.debug("Guestbook entry ignored, not signed in")
            return None

        try:
            entry_id = await self.document_store.insert(
                self.collection,
                {"text": cleaned, "uid": user.uid, "createdAt": SERVER_TIMESTAMP},
            )
        except PersistenceFailure as e:
            self.error_handler.report(e, "guestbook")
            return None

        logger.info(f"Guestbook entry {entry_id} posted")
        return entry_id

    async def sync(self) -> None:
        if self._feed:
            await self._feed.sync()

    async def close(self) -> None:
        if self._feed:
            await self._feed.close()
        if self._stop_auth:
            self._stop_auth()
            self._stop_auth = None
