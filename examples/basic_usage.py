#!/usr/bin/env python3
"""
Fictional News basic usage example.

Composes a board from configuration, posts an article, likes it, leaves a
comment and prints the board. Runs against the in-memory backends unless
FICTIONAL_NEWS_* variables say otherwise.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Make the project importable when run from a checkout
sys.path.append(str(Path(__file__).parent.parent))

from fictional_news.lib.config_loader import ConfigLoader
from fictional_news.lib.console import format_article, format_article_line
from fictional_news.lib.log_config import setup_logging
from fictional_news.models.article import ArticleDraft, Category, CommentDraft
from fictional_news.models.config import ConfigKey
from fictional_news.services.board_factory import open_board


async def basic_board_example():
    """Post, like and comment on one article."""
    print("📰 Fictional News basic usage")
    print("=" * 50)

    setup_logging("WARNING")

    config = await ConfigLoader().load_config()
    if config[ConfigKey.STORAGE_BACKEND] == "local":
        config[ConfigKey.STORAGE_BACKEND] = "memory"
        config[ConfigKey.STORAGE_KV] = "memory"

    async with open_board(config) as board:
        manager = board.manager

        print("\n1. Posting an article...")
        article = await manager.submit_article(
            ArticleDraft(
                title="Local pigeon appointed head of traffic",
                body="The pigeon has already re-routed three bus lines.",
                category=Category.BIZARRE,
            )
        )
        if article is None:
            for notice in board.error_handler.drain():
                print(f"❌ {notice.message}")
            return

        print("2. Liking it twice...")
        await manager.like(article.id)
        await manager.like(article.id)

        print("3. Commenting...")
        await manager.add_comment(article.id, CommentDraft(text="Finally, someone competent."))
        await manager.sync()

        print("\nBoard:")
        for item in manager.filtered_view():
            print(f"  {format_article_line(item)}")

        print("\nArticle page:")
        print(format_article(manager.get_article(article.id)))


if __name__ == "__main__":
    try:
        asyncio.run(basic_board_example())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted")
