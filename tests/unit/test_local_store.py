"""Unit tests for the local snapshot article store."""
import asyncio
import json
import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from fictional_news.lib.error_handler import NotFound, PersistenceFailure
from fictional_news.lib.kv_storage import MemoryStorage
from fictional_news.models.article import Article, ArticleDraft, Comment
from fictional_news.models.seed import sample_articles
from fictional_news.services.local_store import DEFAULT_STORAGE_KEY, LocalArticleStore, generate_article_id

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return LocalArticleStore(storage, seed=lambda: sample_articles(NOW))


def stored_ids(storage: MemoryStorage) -> list:
    return [entry["id"] for entry in json.loads(storage._data[DEFAULT_STORAGE_KEY])]


class TestGenerateArticleId:
    """Test local article ids."""

    def test_format(self):
        """Test the timestamp plus base36 suffix shape."""
        assert re.fullmatch(r"art-\d{13}-[0-9a-z]{6}", generate_article_id())

    def test_unique(self):
        """Test ids do not repeat."""
        assert len({generate_article_id() for _ in range(200)}) == 200


class TestLoad:
    """Test reading the snapshot."""

    async def test_absent_snapshot_uses_seed(self, store):
        """Test the seed is returned when nothing is stored."""
        articles = await store.load()
        assert [a.id for a in articles] == ["sample-2", "sample-1", "sample-3"]

    @pytest.mark.parametrize("raw", ["not json", "[]", '{"a": 1}', "null", '[{"title": "no body"}]'])
    async def test_unusable_snapshot_uses_seed(self, storage, store, raw):
        """Test malformed, empty or non-list snapshots fall back to the seed."""
        await storage.set(DEFAULT_STORAGE_KEY, raw)
        assert len(await store.load()) == 3

    async def test_malformed_entries_skipped(self, storage, store):
        """Test that one bad entry does not hide the others."""
        good = Article.from_dict(sample_articles(NOW)[0].to_dict()).to_dict()
        await storage.set(DEFAULT_STORAGE_KEY, json.dumps([good, {"id": "broken"}]))

        articles = await store.load()
        assert [a.id for a in articles] == ["sample-1"]

    async def test_storage_error_is_persistence_failure(self):
        """Test storage errors surface as PersistenceFailure."""
        storage = AsyncMock()
        storage.get.side_effect = OSError("disk gone")
        store = LocalArticleStore(storage)

        with pytest.raises(PersistenceFailure) as exc_info:
            await store.load()
        assert exc_info.value.operation == "load"


class TestSave:
    """Test writing the full list."""

    async def test_save_then_load_round_trip(self, storage, store):
        """Test a saved list loads back equal, including unset category and sub-second times."""
        articles = await store.load()
        created = Article(
            id="art-1714564800000-abc123",
            title="Moon files for a day off",
            body="Tides unaffected.",
            author="Desk",
            category=None,
            likes=2,
            comments=[Comment(author="Reader", text="fair", time=NOW.replace(microsecond=123456))],
            created_at=NOW.replace(microsecond=654321),
        )
        articles = [created, *articles]

        await store.save(articles)

        assert await LocalArticleStore(storage).load() == articles

    async def test_save_replaces_previous_list(self, storage, store):
        """Test the stored list is exactly the last one saved."""
        articles = await store.load()

        await store.save(articles[:1])

        assert stored_ids(storage) == [articles[0].id]


class TestMutations:
    """Test create, like and comment."""

    async def test_create_prepends_and_persists(self, storage, store):
        """Test a new article goes first and the full list is written."""
        article = ArticleDraft(title="X", body="Y").to_article(NOW)
        created = await store.create(article)

        assert created.id.startswith("art-")
        assert created.title == "X"
        assert stored_ids(storage) == [created.id, "sample-2", "sample-1", "sample-3"]

    async def test_like(self, storage, store):
        """Test likes increment and persist."""
        updated = await store.like("sample-1")
        assert updated.likes == 43

        reloaded = LocalArticleStore(storage)
        assert next(a for a in await reloaded.load() if a.id == "sample-1").likes == 43

    async def test_add_comment(self, store):
        """Test comments are appended in order."""
        comment = Comment(author="Reader", text="hi", time=NOW)
        updated = await store.add_comment("sample-3", comment)

        assert updated.comment_count == 1
        assert updated.comments[-1].text == "hi"

    async def test_unknown_article(self, store):
        """Test NotFound for ids that are not stored."""
        with pytest.raises(NotFound):
            await store.like("nope")
        with pytest.raises(NotFound):
            await store.add_comment("nope", Comment(author="a", text="b", time=NOW))

    async def test_concurrent_likes_are_not_lost(self, storage, store):
        """Test overlapping read-modify-write cycles within one process."""
        await asyncio.gather(*(store.like("sample-1") for _ in range(10)))

        articles = await LocalArticleStore(storage).load()
        assert next(a for a in articles if a.id == "sample-1").likes == 52

    async def test_write_failure(self):
        """Test a failing write surfaces as PersistenceFailure."""
        storage = AsyncMock()
        storage.get.return_value = None
        storage.set.side_effect = OSError("read-only")
        store = LocalArticleStore(storage)

        with pytest.raises(PersistenceFailure) as exc_info:
            await store.like("sample-1")
        assert exc_info.value.operation == "save"
