"""Article commands: list, show, post, like, comment, watch."""
import asyncio
import logging
from typing import Optional

import typer

from ..lib.console import format_article, format_article_line, safe_echo
from ..models.article import ALL_CATEGORIES, ArticleDraft, Category, CommentDraft
from ..services.article_state import ArticleStateManager
from ..services.board_factory import Board, open_board
from .context import load_cli_config

logger = logging.getLogger(__name__)

CATEGORY_CHOICES = ", ".join([ALL_CATEGORIES, *(c.value for c in Category)])


def _echo_notices(board: Board) -> bool:
    """Print pending failure notices; True when there were any."""
    notices = board.error_handler.drain()
    for notice in notices:
        safe_echo(f"[NOTICE] {notice.message}")
    return bool(notices)


def _echo_listing(manager: ArticleStateManager, category: str) -> None:
    articles = manager.filtered_view(category)
    if not articles:
        safe_echo("No articles yet. Be the first to post one!")
        return
    for article in articles:
        safe_echo(format_article_line(article))


def _run(coro, action: str):
    try:
        return asyncio.run(coro)
    except typer.Exit:
        raise
    except Exception as e:
        safe_echo(f"[ERROR] {action} failed: {e!s}")
        logger.error(f"{action} command failed: {e}")
        raise typer.Exit(1)


def _parse_category(category: str) -> str:
    if category == ALL_CATEGORIES:
        return category
    try:
        return Category.from_string(category).value
    except (ValueError, AttributeError):
        safe_echo(f"[ERROR] Unknown category '{category}'. Choose from: {CATEGORY_CHOICES}")
        raise typer.Exit(1)


def list_articles(
    category: str = typer.Option(ALL_CATEGORIES, "--category", "-c", help=f"Filter [{CATEGORY_CHOICES}]"),
):
    """List articles, newest first."""
    category = _parse_category(category)
    _run(_async_list(category), "List")


async def _async_list(category: str) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        safe_echo(f"[BOARD] {board.manager.article_count} articles")
        _echo_listing(board.manager, category)
        _echo_notices(board)


def show(article_id: str = typer.Argument(..., help="Article id")):
    """Show one article with its comments."""
    _run(_async_show(article_id), "Show")


async def _async_show(article_id: str) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        article = board.manager.get_article(article_id)
        if article is None:
            safe_echo(f"[ERROR] Article not found: {article_id}")
            raise typer.Exit(1)
        safe_echo(format_article(article))


def post(
    title: str = typer.Option(..., "--title", "-t", help="Headline"),
    body: str = typer.Option(..., "--body", "-b", help="Article body"),
    author: str = typer.Option("", "--author", "-a", help="Byline (defaults to anonymous)"),
    category: str = typer.Option(Category.BIZARRE.value, "--category", "-c", help="Article category"),
):
    """Post a new fictional article."""
    category = _parse_category(category)
    if category == ALL_CATEGORIES:
        safe_echo("[ERROR] Pick a specific category for a new article")
        raise typer.Exit(1)

    draft = ArticleDraft(title=title, body=body, author=author, category=Category.from_string(category))
    _run(_async_post(draft), "Post")


async def _async_post(draft: ArticleDraft) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        article = await board.manager.submit_article(draft)
        if _echo_notices(board):
            raise typer.Exit(1)
        if article is None:
            safe_echo("[ERROR] Title and body are required")
            raise typer.Exit(1)
        safe_echo(f"[SUCCESS] Posted {article.id}: {article.title}")


def like(article_id: str = typer.Argument(..., help="Article id")):
    """Like an article."""
    _run(_async_like(article_id), "Like")


async def _async_like(article_id: str) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        article = board.manager.get_article(article_id)
        likes_before = article.likes if article else 0
        liked = await board.manager.like(article_id)
        await board.manager.sync()
        if _echo_notices(board):
            raise typer.Exit(1)
        if not liked:
            safe_echo(f"[ERROR] Article not found: {article_id}")
            raise typer.Exit(1)

        # A realtime store may not have delivered the snapshot with this like yet.
        article = board.manager.get_article(article_id)
        likes = max(article.likes if article else 0, likes_before + 1)
        safe_echo(f"[SUCCESS] ❤️ {likes}")


def comment(
    article_id: str = typer.Argument(..., help="Article id"),
    text: str = typer.Option(..., "--text", "-t", help="Comment text"),
    author: str = typer.Option("", "--author", "-a", help="Name (defaults to anonymous)"),
):
    """Comment on an article."""
    _run(_async_comment(article_id, CommentDraft(text=text, author=author)), "Comment")


async def _async_comment(article_id: str, draft: CommentDraft) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        if board.manager.get_article(article_id) is None:
            safe_echo(f"[ERROR] Article not found: {article_id}")
            raise typer.Exit(1)

        added = await board.manager.add_comment(article_id, draft)
        if _echo_notices(board):
            raise typer.Exit(1)
        if added is None:
            safe_echo("[ERROR] Comment text is required")
            raise typer.Exit(1)
        safe_echo(f"[SUCCESS] Comment added by {added.author}")


def watch(
    category: str = typer.Option(ALL_CATEGORIES, "--category", "-c", help="Filter category"),
    seconds: Optional[float] = typer.Option(None, "--seconds", min=0, help="Stop after N seconds"),
):
    """Print the board every time it changes."""
    category = _parse_category(category)
    _run(_async_watch(category, seconds), "Watch")


async def _async_watch(category: str, seconds: Optional[float]) -> None:
    config = await load_cli_config()
    async with open_board(config) as board:
        def render(manager: ArticleStateManager) -> None:
            safe_echo(f"\n[BOARD] {manager.article_count} articles")
            _echo_listing(manager, category)

        remove = board.manager.add_listener(render)
        render(board.manager)
        try:
            if seconds is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(seconds)
        finally:
            remove()
            _echo_notices(board)
