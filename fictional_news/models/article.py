"""Article data model.

This module defines the Article, Comment and GuestbookEntry data classes,
the Category enum, and the drafts that user input is validated through.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from ..lib.error_handler import ValidationFailure
from ..lib.time_format import ensure_utc, time_ago

DEFAULT_ARTICLE_AUTHOR = "Anonymous Reporter"
DEFAULT_COMMENT_AUTHOR = "Anonymous"
GUESTBOOK_MAX_LENGTH = 300

ALL_CATEGORIES = "all"


class Category(Enum):
    """Article category."""

    BREAKING = "breaking"
    WORLD = "world"
    SCIENCE = "science"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    BIZARRE = "bizarre"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return _CATEGORY_DISPLAY[self][0]

    @property
    def emoji(self) -> str:
        return _CATEGORY_DISPLAY[self][1]

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["Category"]:
        """Create category from string; empty means unset."""
        if value is None or not str(value).strip():
            return None
        for item in cls:
            if item.value == str(value).strip().lower():
                return item
        raise ValueError(f"Unknown category: {value}")


_CATEGORY_DISPLAY = {
    Category.BREAKING: ("Breaking", "🔴"),
    Category.WORLD: ("World", "🌍"),
    Category.SCIENCE: ("Science", "🔬"),
    Category.ENTERTAINMENT: ("Entertainment", "🎭"),
    Category.SPORTS: ("Sports", "⚽"),
    Category.BIZARRE: ("Bizarre", "🤯"),
}


def parse_timestamp(value: Union[str, int, float, datetime]) -> datetime:
    """Parse an ISO string, epoch milliseconds or datetime into aware UTC."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip():
        return ensure_utc(datetime.fromisoformat(value.strip()))
    raise ValueError(f"Invalid timestamp: {value!r}")


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat()


@dataclass
class Comment:
    """Comment attached to an article."""

    author: str
    text: str
    time: datetime

    def __post_init__(self) -> None:
        self.time = ensure_utc(self.time)

    def to_dict(self) -> dict:
        """Convert comment to dictionary."""
        return {
            "author": self.author,
            "text": self.text,
            "time": format_timestamp(self.time),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Comment":
        """Create comment from dictionary."""
        return cls(
            author=data.get("author") or DEFAULT_COMMENT_AUTHOR,
            text=data["text"],
            time=parse_timestamp(data["time"]),
        )


@dataclass
class Article:
    """Fictional news article."""

    id: Optional[str]
    title: str
    body: str
    author: str
    category: Optional[Category]
    likes: int
    comments: list[Comment]
    created_at: datetime

    def __post_init__(self) -> None:
        """Validate article data after initialization."""
        self._validate_text()
        self._validate_likes()
        self.created_at = ensure_utc(self.created_at)

    def _validate_text(self) -> None:
        for name in ("title", "body", "author"):
            if not isinstance(getattr(self, name), str):
                raise ValueError(f"Article {name} must be text")

    def _validate_likes(self) -> None:
        if isinstance(self.likes, bool) or not isinstance(self.likes, int):
            raise ValueError("Likes must be an integer")
        if self.likes < 0:
            raise ValueError("Likes cannot be negative")

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    def age_label(self, now: Optional[datetime] = None) -> str:
        """Relative age shown next to the headline."""
        return time_ago(self.created_at, now)

    def to_document(self) -> dict[str, Any]:
        """Convert article to its stored fields (without the id)."""
        return {
            "title": self.title,
            "body": self.body,
            "author": self.author,
            "category": self.category.value if self.category else None,
            "likes": self.likes,
            "comments": [comment.to_dict() for comment in self.comments],
            "createdAt": format_timestamp(self.created_at),
        }

    def to_dict(self) -> dict:
        """Convert article to dictionary."""
        return {"id": self.id, **self.to_document()}

    @classmethod
    def from_dict(cls, data: dict) -> "Article":
        """Create article from dictionary."""
        return cls(
            id=data.get("id"),
            title=data["title"],
            body=data["body"],
            author=data.get("author") or DEFAULT_ARTICLE_AUTHOR,
            category=Category.from_string(data.get("category")),
            likes=data.get("likes", 0),
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
            created_at=parse_timestamp(data["createdAt"]),
        )


@dataclass
class ArticleDraft:
    """User input for a new article."""

    title: str
    body: str
    author: str = ""
    category: Optional[Category] = Category.BIZARRE

    def to_article(self, now: datetime) -> Article:
        """
        Validate the draft and build an unsaved article.

        Raises:
            ValidationFailure: title or body empty after trimming
        """
        title = (self.title or "").strip()
        body = (self.body or "").strip()

        if not title:
            raise ValidationFailure("Title cannot be empty", "title")
        if not body:
            raise ValidationFailure("Body cannot be empty", "body")

        return Article(
            id=None,
            title=title,
            body=body,
            author=(self.author or "").strip() or DEFAULT_ARTICLE_AUTHOR,
            category=self.category,
            likes=0,
            comments=[],
            created_at=now,
        )


@dataclass
class CommentDraft:
    """User input for a new comment."""

    text: str
    author: str = ""

    def to_comment(self, now: datetime) -> Comment:
        """
        Validate the draft and build a comment.

        Raises:
            ValidationFailure: text empty after trimming
        """
        text = (self.text or "").strip()
        if not text:
            raise ValidationFailure("Comment text cannot be empty", "text")

        return Comment(
            author=(self.author or "").strip() or DEFAULT_COMMENT_AUTHOR,
            text=text,
            time=now,
        )


@dataclass
class GuestbookEntry:
    """Top-level guestbook comment."""

    id: str
    text: str
    uid: str
    created_at: Optional[datetime] = field(default=None)

    @classmethod
    def from_dict(cls, data: dict) -> "GuestbookEntry":
        created_at = data.get("createdAt")
        return cls(
            id=data["id"],
            text=data["text"],
            uid=data.get("uid", ""),
            created_at=parse_timestamp(created_at) if created_at else None,
        )


def sort_articles(articles: list[Article]) -> list[Article]:
    """Return articles ordered by creation time, newest first."""
    return sorted(articles, key=lambda article: article.created_at, reverse=True)


def validate_guestbook_text(text: str) -> str:
    """Trim guestbook text and check its length."""
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationFailure("Comment text cannot be empty", "text")
    if len(cleaned) > GUESTBOOK_MAX_LENGTH:
        raise ValidationFailure(
            f"Comment text cannot exceed {GUESTBOOK_MAX_LENGTH} characters", "text"
        )
    return cleaned
