"""Console utilities for safe character output and article rendering."""
import sys
from datetime import datetime
from typing import Any, Optional

from ..models.article import Article, Category, Comment, GuestbookEntry
from .time_format import time_ago


def safe_echo(message: Any, **kwargs) -> None:
    """
    Print a message, degrading gracefully when the console cannot encode it.

    Args:
        message: text to print
        **kwargs: passed through to print
    """
    try:
        print(message, **kwargs)
    except UnicodeEncodeError:
        if isinstance(message, str):
            safe_message = message.encode("ascii", "replace").decode("ascii")
            print(f"[ENCODING_ISSUE] {safe_message}", **kwargs)
        else:
            print(f"[OUTPUT] {message!r}", **kwargs)


def category_badge(category: Optional[Category]) -> str:
    if category is None:
        return "📰 News"
    return f"{category.emoji} {category.label}"


def format_article_line(article: Article, now: Optional[datetime] = None) -> str:
    """One-line summary used by listings."""
    return (
        f"{article.id}  {category_badge(article.category)}  {article.title}  "
        f"({article.author}, {time_ago(article.created_at, now)})  "
        f"❤️ {article.likes}  💬 {article.comment_count}"
    )


def format_comment(comment: Comment, now: Optional[datetime] = None) -> str:
    return f"  {comment.author} ({time_ago(comment.time, now)}): {comment.text}"


def format_article(article: Article, now: Optional[datetime] = None) -> str:
    """Full article with its comments."""
    lines = [
        f"{category_badge(article.category)}  {time_ago(article.created_at, now)}",
        article.title,
        "=" * min(len(article.title), 60),
        article.body,
        "",
        f"By {article.author}   ❤️ {article.likes}   💬 {article.comment_count}",
        "",
    ]

    if article.comments:
        lines.append("Comments:")
        lines.extend(format_comment(comment, now) for comment in article.comments)
    else:
        lines.append("No comments yet.")

    return "\n".join(lines)


def format_guestbook_entry(entry: GuestbookEntry, now: Optional[datetime] = None) -> str:
    age = time_ago(entry.created_at, now) if entry.created_at else "pending"
    return f"[{age}] {entry.text}"


def setup_console_encoding() -> None:
    """Prefer UTF-8 output on consoles that default to something else."""
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            try:
                stream.reconfigure(encoding="utf-8")
            except (ValueError, OSError):
                pass
