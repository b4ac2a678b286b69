"""Error types and user-visible failure notices.

This module defines the board's error taxonomy and the handler that turns
persistence failures into transient notices for the view.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class BoardError(Exception):
    """Base error for the fictional news board."""

    def __init__(self, message: str, error_code: str = "UNKNOWN"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationFailure(BoardError):
    """A draft was rejected (empty title, body or comment text)."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message, "VALIDATION")
        self.field_name = field_name


class PersistenceFailure(BoardError):
    """A store read, write or subscription failed."""

    def __init__(self, message: str, operation: str = "unknown", cause: Optional[BaseException] = None):
        super().__init__(message, "PERSISTENCE")
        self.operation = operation
        self.cause = cause


class NotFound(BoardError):
    """The target article is no longer present."""

    def __init__(self, article_id: str):
        super().__init__(f"Article not found: {article_id}", "NOT_FOUND")
        self.article_id = article_id


@dataclass
class Notice:
    """A non-fatal failure shown to the user once."""

    message: str
    operation: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


NoticeListener = Callable[[Notice], None]


class ErrorHandler:
    """Collects failure notices and fans them out to listeners."""

    MESSAGES = {
        "load": "Could not load articles.",
        "subscribe": "Lost connection to the article feed.",
        "create": "Posting failed. Check the store configuration.",
        "like": "Could not record the like.",
        "comment": "Could not post the comment.",
        "guestbook": "Could not post to the guestbook.",
    }

    def __init__(self) -> None:
        self._notices: list[Notice] = []
        self._listeners: list[NoticeListener] = []

    def report(self, error: BaseException, operation: str) -> Notice:
        """Log a failure and record a notice for it."""
        message = self.MESSAGES.get(operation, "Something went wrong.")
        logger.error(f"{operation} failed: {error}")

        notice = Notice(message=message, operation=operation)
        self._notices.append(notice)

        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception as e:
                logger.warning(f"Notice listener raised: {e}")

        return notice

    def add_listener(self, listener: NoticeListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def drain(self) -> list[Notice]:
        """Return pending notices and clear them."""
        notices, self._notices = self._notices, []
        return notices
