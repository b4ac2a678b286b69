"""Guestbook commands."""
import asyncio
import logging

import typer

from ..lib.console import format_guestbook_entry, safe_echo
from ..models.config import ConfigKey
from ..services.board_factory import open_board
from .context import load_cli_config

logger = logging.getLogger(__name__)

guestbook = typer.Typer(help="Board-wide guestbook (remote and memory backends)")


async def _require_remote_config():
    config = await load_cli_config()
    if config[ConfigKey.STORAGE_BACKEND] == "local":
        safe_echo("[ERROR] The guestbook needs the remote or memory backend")
        raise typer.Exit(1)
    return config


@guestbook.command("list")
def list_entries():
    """Show the newest guestbook entries."""
    try:
        asyncio.run(_async_list())
    except typer.Exit:
        raise
    except Exception as e:
        safe_echo(f"[ERROR] Guestbook list failed: {e!s}")
        logger.error(f"Guestbook list failed: {e}")
        raise typer.Exit(1)


async def _async_list() -> None:
    config = await _require_remote_config()
    async with open_board(config, with_guestbook=True) as board:
        entries = board.guestbook.entries if board.guestbook else []
        if not entries:
            safe_echo("The guestbook is empty.")
        for entry in entries:
            safe_echo(format_guestbook_entry(entry))


@guestbook.command("post")
def post_entry(text: str = typer.Argument(..., help="Entry text (max 300 characters)")):
    """Post an anonymous guestbook entry."""
    try:
        asyncio.run(_async_post(text))
    except typer.Exit:
        raise
    except Exception as e:
        safe_echo(f"[ERROR] Guestbook post failed: {e!s}")
        logger.error(f"Guestbook post failed: {e}")
        raise typer.Exit(1)


async def _async_post(text: str) -> None:
    config = await _require_remote_config()
    async with open_board(config, with_guestbook=True) as board:
        entry_id = await board.guestbook.post(text) if board.guestbook else None
        for notice in board.error_handler.drain():
            safe_echo(f"[NOTICE] {notice.message}")
        if entry_id is None:
            safe_echo("[ERROR] Entry was not posted (empty, too long, or not signed in)")
            raise typer.Exit(1)
        safe_echo(f"[SUCCESS] Posted guestbook entry {entry_id}")
