"""Article store interface.

The state manager talks to exactly one ArticleStore, chosen when the
application is composed: the local snapshot store or the remote
document store.
"""
from abc import ABC, abstractmethod
from typing import Optional

from ..database.document_store import SnapshotStream
from ..models.article import Article, Comment


class ArticleStore(ABC):
    """Persistence strategy for articles."""

    #: True when the store pushes snapshots; the manager then subscribes
    #: instead of calling ``load``.
    supports_realtime: bool = False

    async def open(self) -> None:
        """Prepare the store (connections, identity)."""

    @abstractmethod
    async def load(self) -> list[Article]:
        """Read the current article list."""

    async def subscribe(self) -> SnapshotStream[list[Article]]:
        """Open the live article feed."""
        raise NotImplementedError(f"{type(self).__name__} does not push snapshots")

    @abstractmethod
    async def create(self, article: Article) -> Article:
        """Persist a new article and return it with its id."""

    @abstractmethod
    async def like(self, article_id: str) -> Optional[Article]:
        """
        Add one like.

        Returns:
            The updated article, or None when the change will arrive
            through the live feed.

        Raises:
            NotFound: unknown article
            PersistenceFailure: the write failed
        """

    @abstractmethod
    async def add_comment(self, article_id: str, comment: Comment) -> Optional[Article]:
        """Append a comment; same return contract as ``like``."""

    async def close(self) -> None:
        """Release resources."""
