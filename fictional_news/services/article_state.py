"""Article state management service.

This module holds the canonical in-memory article list, derives the views
the board shows, and routes every mutation through the active store.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Union

from ..lib.error_handler import ErrorHandler, NotFound, PersistenceFailure, ValidationFailure
from ..models.article import (
    ALL_CATEGORIES,
    Article,
    ArticleDraft,
    Category,
    Comment,
    CommentDraft,
    sort_articles,
)
from .snapshot_feed import SnapshotFeed
from .store import ArticleStore

logger = logging.getLogger(__name__)

ChangeListener = Callable[["ArticleStateManager"], None]


class LoadStatus(Enum):
    """Lifecycle of the article list."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class ArticleStateManager:
    """Canonical article list in front of one ArticleStore."""

    def __init__(
        self,
        store: ArticleStore,
        error_handler: Optional[ErrorHandler] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.error_handler = error_handler or ErrorHandler()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._articles: list[Article] = []
        # Created here but not yet seen in a snapshot, by id.
        self._pending: dict[str, Article] = {}
        self._status = LoadStatus.IDLE
        self._feed: Optional[SnapshotFeed[list[Article]]] = None
        self._listeners: list[ChangeListener] = []

    # Lifecycle

    @property
    def status(self) -> LoadStatus:
        return self._status

    @property
    def is_loading(self) -> bool:
        return self._status in (LoadStatus.IDLE, LoadStatus.LOADING)

    async def load_initial(self) -> None:
        """
        Populate the list from the store.

        Realtime stores are subscribed to and the first snapshot awaited;
        other stores are read once. Failures leave an empty list.
        """
        if self._status is not LoadStatus.IDLE:
            logger.warning(f"load_initial called while {self._status}")
            return

        self._set_status(LoadStatus.LOADING)

        try:
            await self.store.open()
            if self.store.supports_realtime:
                stream = await self.store.subscribe()
                self._feed = SnapshotFeed(stream, self._apply_snapshot, self._on_feed_error)
                self._feed.start()
                await self._feed.wait_first()
            else:
                self._articles = sort_articles(await self.store.load())
        except PersistenceFailure as e:
            self.error_handler.report(e, "load")
            self._articles = []

        if self._status is LoadStatus.LOADING:
            logger.info(f"Loaded {len(self._articles)} articles")
            self._set_status(LoadStatus.READY)

    async def sync(self) -> None:
        """Wait until queued snapshots have been applied."""
        if self._feed:
            await self._feed.sync()

    async def close(self) -> None:
        """Stop the live feed; no snapshot changes state afterwards."""
        if self._status is LoadStatus.CLOSED:
            return

        self._status = LoadStatus.CLOSED
        if self._feed:
            await self._feed.close()
        logger.debug("Article state closed")

    # Views

    @property
    def articles(self) -> list[Article]:
        return list(self._articles)

    @property
    def article_count(self) -> int:
        return len(self._articles)

    def filtered_view(self, category: Union[str, Category, None] = ALL_CATEGORIES) -> list[Article]:
        """
        Articles in display order, optionally limited to one category.

        Args:
            category: "all" (or None) for every article, otherwise a
                Category or its value

        Raises:
            ValueError: unknown category name
        """
        if category is None or category == ALL_CATEGORIES:
            return list(self._articles)

        wanted = category if isinstance(category, Category) else Category.from_string(category)
        return [article for article in self._articles if article.category == wanted]

    def get_article(self, article_id: str) -> Optional[Article]:
        return next((article for article in self._articles if article.id == article_id), None)

    # Mutations

    async def submit_article(self, draft: ArticleDraft) -> Optional[Article]:
        """
        Validate and persist a new article.

        Returns:
            The stored article, or None when the draft was rejected or the
            store failed.
        """
        try:
            article = draft.to_article(self._clock())
        except ValidationFailure as e:
            logger.debug(f"Article draft rejected: {e.message}")
            return None

        try:
            created = await self.store.create(article)
        except PersistenceFailure as e:
            self.error_handler.report(e, "create")
            return None

        if self._status is LoadStatus.CLOSED:
            return created

        if self.get_article(created.id) is None:
            if self.store.supports_realtime:
                self._pending[created.id] = created
            self._articles = sort_articles([created, *self._articles])
            self._changed()

        return created

    async def like(self, article_id: str) -> bool:
        """Add one like; False when the article is unknown or the write failed."""
        if self.get_article(article_id) is None:
            logger.debug(f"Like ignored, unknown article {article_id}")
            return False

        try:
            updated = await self.store.like(article_id)
        except NotFound:
            logger.debug(f"Like ignored, article {article_id} no longer stored")
            return False
        except PersistenceFailure as e:
            self.error_handler.report(e, "like")
            return False

        if updated is not None:
            self._replace(updated)
        return True

    async def add_comment(self, article_id: str, draft: CommentDraft) -> Optional[Comment]:
        """Append a comment; None when rejected, unknown or failed."""
        try:
            comment = draft.to_comment(self._clock())
        except ValidationFailure as e:
            logger.debug(f"Comment draft rejected: {e.message}")
            return None

        if self.get_article(article_id) is None:
            logger.debug(f"Comment ignored, unknown article {article_id}")
            return None

        try:
            updated = await self.store.add_comment(article_id, comment)
        except NotFound:
            logger.debug(f"Comment ignored, article {article_id} no longer stored")
            return None
        except PersistenceFailure as e:
            self.error_handler.report(e, "comment")
            return None

        if updated is not None:
            self._replace(updated)
        return comment

    # Change notification

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Call ``listener`` after every state change; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.warning(f"State listener raised: {e}")

    def _set_status(self, status: LoadStatus) -> None:
        self._status = status
        self._changed()

    # Internal state updates

    def _apply_snapshot(self, articles: list[Article]) -> None:
        """Replace the list with a snapshot, keeping unconfirmed local posts."""
        if self._status is LoadStatus.CLOSED:
            return

        snapshot_ids = {article.id for article in articles}
        self._pending = {
            article_id: article
            for article_id, article in self._pending.items()
            if article_id not in snapshot_ids
        }
        self._articles = sort_articles([*articles, *self._pending.values()])
        logger.debug(f"Applied snapshot of {len(articles)} articles ({len(self._pending)} pending)")
        self._changed()

    def _on_feed_error(self, error: PersistenceFailure) -> None:
        self.error_handler.report(error, "subscribe")

    def _replace(self, updated: Article) -> None:
        if self._status is LoadStatus.CLOSED:
            return

        self._articles = [updated if article.id == updated.id else article for article in self._articles]
        self._changed()
