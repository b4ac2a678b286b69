"""Board workflow integration tests.

These tests compose a full board through open_board and walk through the
reader flows: browse, post, like and comment, on both store kinds.
"""
import asyncio
from pathlib import Path

import pytest

from fictional_news.models.article import ALL_CATEGORIES, ArticleDraft, Category, CommentDraft
from fictional_news.models.config import DEFAULT_CONFIG, ConfigKey
from fictional_news.services.article_state import LoadStatus
from fictional_news.services.board_factory import create_kv_storage, open_board


def board_config(**overrides) -> dict:
    config = {key: str(value) for key, value in DEFAULT_CONFIG.items()}
    config.update(overrides)
    return config


@pytest.fixture
def local_config(tmp_path: Path) -> dict:
    return board_config(**{
        ConfigKey.STORAGE_BACKEND: "local",
        ConfigKey.STORAGE_KV: "file",
        ConfigKey.STORAGE_PATH: str(tmp_path / "local-storage.json"),
    })


@pytest.fixture
def memory_config() -> dict:
    return board_config(**{
        ConfigKey.STORAGE_BACKEND: "memory",
        ConfigKey.STORAGE_KV: "memory",
    })


class TestLocalBoardWorkflow:
    """Reader flows against the local snapshot store."""

    async def test_post_like_comment(self, local_config):
        """Test the basic post, like and comment sequence."""
        async with open_board(local_config) as board:
            manager = board.manager
            assert manager.status is LoadStatus.READY
            assert manager.article_count == 3

            created = await manager.submit_article(ArticleDraft(title="X", body="Y"))
            assert manager.article_count == 4
            assert manager.articles[0].title == "X"
            assert manager.articles[0].likes == 0

            assert await manager.like(created.id)
            assert manager.get_article(created.id).likes == 1

            await manager.add_comment(created.id, CommentDraft(text="hi"))
            assert [c.text for c in manager.get_article(created.id).comments] == ["hi"]

            assert await manager.submit_article(ArticleDraft(title="", body="Y")) is None
            assert manager.article_count == 4

    async def test_state_survives_restart(self, local_config):
        """Test a second board sees what the first one wrote."""
        async with open_board(local_config) as board:
            created = await board.manager.submit_article(
                ArticleDraft(title="Persisted", body="Body", category=Category.WORLD)
            )
            await board.manager.like(created.id)
            await board.manager.add_comment(created.id, CommentDraft(text="first", author="Reader"))

        async with open_board(local_config) as board:
            reloaded = board.manager.get_article(created.id)

            assert reloaded.title == "Persisted"
            assert reloaded.category == Category.WORLD
            assert reloaded.likes == 1
            assert [(c.author, c.text) for c in reloaded.comments] == [("Reader", "first")]
            assert board.manager.article_count == 4

    async def test_filtered_views_partition_the_board(self, local_config):
        """Test every article appears under exactly one category."""
        async with open_board(local_config) as board:
            for category in Category:
                await board.manager.submit_article(
                    ArticleDraft(title=f"{category.label} story", body="Body", category=category)
                )

            everything = board.manager.filtered_view(ALL_CATEGORIES)
            by_category = [a for category in Category for a in board.manager.filtered_view(category)]

            assert len(by_category) == len(everything) == 3 + len(Category)
            assert {a.id for a in by_category} == {a.id for a in everything}


class TestRealtimeBoardWorkflow:
    """Reader flows against the in-memory document store."""

    async def test_post_like_comment(self, memory_config):
        """Test writes converge through the live feed."""
        async with open_board(memory_config) as board:
            manager = board.manager
            assert manager.articles == []

            created = await manager.submit_article(ArticleDraft(title="X", body="Y"))
            assert manager.articles[0].id == created.id

            await manager.like(created.id)
            await manager.add_comment(created.id, CommentDraft(text="hi"))
            await manager.sync()

            article = manager.get_article(created.id)
            assert article.likes == 1
            assert [c.text for c in article.comments] == ["hi"]
            assert manager.article_count == 1

    async def test_concurrent_likes_from_many_readers(self, memory_config):
        """Test N simultaneous likes add exactly N."""
        async with open_board(memory_config) as board:
            created = await board.manager.submit_article(ArticleDraft(title="Popular", body="Y"))
            await board.manager.sync()

            await asyncio.gather(*(board.manager.like(created.id) for _ in range(50)))
            await board.manager.sync()

            assert board.manager.get_article(created.id).likes == 50
            assert board.error_handler.notices == []

    async def test_guestbook(self, memory_config):
        """Test the guestbook runs next to the articles."""
        async with open_board(memory_config, with_guestbook=True) as board:
            assert board.guestbook is not None
            entry_id = await board.guestbook.post("Great board!")
            await board.guestbook.sync()

            assert entry_id is not None
            assert [e.text for e in board.guestbook.entries] == ["Great board!"]

    async def test_local_board_has_no_guestbook(self, tmp_path: Path):
        """Test the guestbook is only composed for document stores."""
        config = board_config(**{
            ConfigKey.STORAGE_KV: "file",
            ConfigKey.STORAGE_PATH: str(tmp_path / "store.json"),
        })
        async with open_board(config, with_guestbook=True) as board:
            assert board.guestbook is None


class TestComposition:
    """Test storage selection."""

    async def test_kv_storage_selection(self, tmp_path: Path):
        """Test storage.kv picks the storage class."""
        memory = await create_kv_storage(board_config(**{ConfigKey.STORAGE_KV: "memory"}))
        file_storage = await create_kv_storage(board_config(**{
            ConfigKey.STORAGE_KV: "file",
            ConfigKey.STORAGE_PATH: str(tmp_path / "kv.json"),
        }))

        assert type(memory).__name__ == "MemoryStorage"
        assert type(file_storage).__name__ == "JsonFileStorage"
