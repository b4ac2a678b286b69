"""Fictional News CLI main entry point.

This module provides the main CLI application using Typer.
"""
from pathlib import Path
from typing import Optional

import typer

from ..lib.console import safe_echo, setup_console_encoding
from ..lib.log_config import setup_logging
from ..models.config import LOG_LEVELS, STORAGE_BACKENDS
from .board_commands import comment, like, list_articles, post, show, watch
from .config_command import config
from .context import global_config
from .guestbook_command import guestbook

setup_console_encoding()

# Create main app
app = typer.Typer(
    name="fictional-news",
    help="Fictional news bulletin board: read, post, like and comment on made-up stories",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(config, name="config", help="Configuration management")
app.add_typer(guestbook, name="guestbook", help="Board-wide guestbook")
app.command("list")(list_articles)
app.command()(show)
app.command()(post)
app.command()(like)
app.command()(comment)
app.command()(watch)


# Global options
@app.callback()
def main(
    config_file: Optional[Path] = typer.Option(None, "--config-file", help="Configuration file path"),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level [DEBUG|INFO|WARNING|ERROR], overrides log.level"
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", help=f"Article store [{'|'.join(STORAGE_BACKENDS)}]"
    ),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Also write logs to this file"),
):
    """Fictional News - a bulletin board for made-up stories."""
    if log_level and log_level.upper() not in LOG_LEVELS:
        safe_echo(f"[ERROR] Invalid log level: {log_level}")
        raise typer.Exit(1)
    if backend and backend.lower() not in STORAGE_BACKENDS:
        safe_echo(f"[ERROR] Invalid backend: {backend}")
        raise typer.Exit(1)

    setup_logging(log_level.upper() if log_level else "WARNING", log_file)

    # Store global options
    global_config["config_file"] = config_file
    global_config["log_level"] = log_level.upper() if log_level else None
    global_config["log_file"] = log_file
    global_config["backend"] = backend.lower() if backend else None


if __name__ == "__main__":
    app()
