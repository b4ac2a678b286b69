"""Local snapshot article store.

The whole article list is kept as one JSON array under a single storage
key. Every mutation re-reads that snapshot, changes it and writes the
whole list back.
"""
import asyncio
import json
import logging
import random
import string
import time
from typing import Callable, Optional

from ..lib.error_handler import NotFound, PersistenceFailure
from ..lib.kv_storage import KeyValueStorage
from ..models.article import Article, Comment, sort_articles
from ..models.seed import sample_articles
from .store import ArticleStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "fictional-news-articles"

_BASE36 = string.digits + string.ascii_lowercase


def generate_article_id() -> str:
    """Millisecond timestamp plus a random base36 suffix."""
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"art-{int(time.time() * 1000)}-{suffix}"


class LocalArticleStore(ArticleStore):
    """Article store over a key-value storage snapshot."""

    supports_realtime = False

    def __init__(
        self,
        storage: KeyValueStorage,
        key: str = DEFAULT_STORAGE_KEY,
        seed: Optional[Callable[[], list[Article]]] = None,
    ):
        self.storage = storage
        self.key = key
        self._seed = seed or sample_articles
        # Serializes read-modify-write cycles within this process.
        self._lock = asyncio.Lock()

    def _decode(self, raw: Optional[str]) -> Optional[list[Article]]:
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Stored articles are not valid JSON: {e}")
            return None

        if not isinstance(data, list) or not data:
            return None

        articles = []
        for entry in data:
            try:
                articles.append(Article.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed stored article: {e}")

        return articles or None

    async def _read(self) -> list[Article]:
        try:
            raw = await self.storage.get(self.key)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Failed to read articles: {e}", "load", e) from e

        articles = self._decode(raw)
        if articles is None:
            logger.info("No stored articles, using sample articles")
            return sort_articles(self._seed())
        return articles

    async def load(self) -> list[Article]:
        articles = await self._read()
        logger.debug(f"Loaded {len(articles)} articles from {self.key}")
        return articles

    async def save(self, articles: list[Article]) -> None:
        """Serialize the full list under the storage key."""
        payload = json.dumps([article.to_dict() for article in articles], ensure_ascii=False)

        try:
            await self.storage.set(self.key, payload)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Failed to save articles: {e}", "save", e) from e

        logger.debug(f"Saved {len(articles)} articles to {self.key}")

    async def create(self, article: Article) -> Article:
        async with self._lock:
            articles = await self._read()
            created = Article.from_dict({**article.to_dict(), "id": generate_article_id()})
            await self.save([created, *articles])

        logger.info(f"Created article {created.id}: {created.title}")
        return created

    async def _update(self, article_id: str, change: Callable[[Article], None]) -> Article:
        async with self._lock:
            articles = await self._read()
            target = next((article for article in articles if article.id == article_id), None)
            if target is None:
                raise NotFound(article_id)

            change(target)
            await self.save(articles)

        return target

    async def like(self, article_id: str) -> Optional[Article]:
        def increment(article: Article) -> None:
            article.likes += 1

        updated = await self._update(article_id, increment)
        logger.debug(f"Article {article_id} now has {updated.likes} likes")
        return updated

    async def add_comment(self, article_id: str, comment: Comment) -> Optional[Article]:
        def append(article: Article) -> None:
            article.comments.append(comment)

        updated = await self._update(article_id, append)
        logger.debug(f"Article {article_id} now has {updated.comment_count} comments")
        return updated
