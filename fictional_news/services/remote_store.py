"""Remote article store.

Articles live in a document store collection. The live query is the
only source of truth: writes are fire-and-forget requests (insert,
atomic increment, atomic array append) and their effect reaches the
state manager through the next snapshot.
"""
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..database.document_store import (
    AppendUnique,
    Direction,
    Document,
    DocumentStore,
    Increment,
    SnapshotStream,
)
from ..lib.error_handler import NotFound, PersistenceFailure
from ..models.article import Article, Comment
from .auth_service import AnonymousAuthProvider, User
from .store import ArticleStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORDER_FIELD = "createdAt"


def documents_to_articles(documents: list[Document]) -> list[Article]:
    """Map a snapshot to articles, skipping documents that do not parse."""
    articles = []
    for document in documents:
        try:
            articles.append(Article.from_dict(document))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed article document {document.get('id')}: {e}")
    return articles


async def ensure_signed_in(auth: AnonymousAuthProvider, user: Optional[User]) -> None:
    """Sign in anonymously whenever the identity goes away."""
    if user is None:
        await auth.sign_in_anonymously()


class RemoteArticleStore(ArticleStore):
    """Article store over a realtime document store."""

    supports_realtime = True

    def __init__(self, document_store: DocumentStore, auth: AnonymousAuthProvider, collection: str = "articles"):
        self.document_store = document_store
        self.auth = auth
        self.collection = collection
        self._stop_auth: Optional[Callable[[], None]] = None

    async def open(self) -> None:
        await self.auth.restore()
        self._stop_auth = self.auth.on_auth_state_changed(
            lambda user: ensure_signed_in(self.auth, user)
        )
        await self.auth.wait_idle()

    def _require_identity(self, operation: str) -> User:
        user = self.auth.current_user
        if user is None:
            raise PersistenceFailure("Not signed in", operation)
        return user

    async def _call(self, operation: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except (NotFound, PersistenceFailure):
            raise
        except Exception as e:
            raise PersistenceFailure(f"{operation} failed: {e}", operation, e) from e

    async def load(self) -> list[Article]:
        """Read one snapshot and close the query."""
        stream = await self.subscribe()
        try:
            async for articles in stream:
                stream.task_done()
                return articles
        finally:
            await stream.close()
        return []

    async def subscribe(self) -> SnapshotStream[list[Article]]:
        stream = await self._call(
            "subscribe",
            self.document_store.subscribe(self.collection, ORDER_FIELD, Direction.DESC),
        )
        return stream.map(documents_to_articles)

    async def create(self, article: Article) -> Article:
        self._require_identity("create")
        document_id = await self._call(
            "create", self.document_store.insert(self.collection, article.to_document())
        )

        logger.info(f"Created article {document_id}: {article.title}")
        return Article.from_dict({**article.to_document(), "id": document_id})

    async def like(self, article_id: str) -> Optional[Article]:
        self._require_identity("like")
        await self._call(
            "like",
            self.document_store.update_field(self.collection, article_id, "likes", Increment(1)),
        )
        return None

    async def add_comment(self, article_id: str, comment: Comment) -> Optional[Article]:
        self._require_identity("comment")
        await self._call(
            "comment",
            self.document_store.update_field(
                self.collection, article_id, "comments", AppendUnique(comment.to_dict())
            ),
        )
        return None

    async def close(self) -> None:
        if self._stop_auth:
            self._stop_auth()
            self._stop_auth = None
