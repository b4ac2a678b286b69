"""Key-value persistent storage.

This module implements the get/set storage the local article store writes
its snapshot to: an in-memory map, a JSON file, or Redis.
"""
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import redis.asyncio as redis

from .error_handler import PersistenceFailure

logger = logging.getLogger(__name__)


class KeyValueStorage(ABC):
    """Persistent string storage addressed by key."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""

    async def close(self) -> None:
        """Release resources held by the storage."""


class MemoryStorage(KeyValueStorage):
    """Process-local storage."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage(KeyValueStorage):
    """All keys kept in one JSON object file."""

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"File storage initialized: {self.path}")

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Storage file is corrupted, treating as empty: {e}")
            return {}
        except OSError as e:
            raise PersistenceFailure(f"Cannot read {self.path}: {e}", "read", e) from e

        if not isinstance(data, dict):
            logger.warning(f"Storage file does not hold an object: {self.path}")
            return {}
        return data

    async def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value

        # Write to a sibling temp file, then swap it in.
        try:
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceFailure(f"Cannot write {self.path}: {e}", "write", e) from e

        logger.debug(f"Stored key {key} in {self.path}")


class RedisStorage(KeyValueStorage):
    """Redis-backed storage; keys are namespaced with a prefix."""

    def __init__(self, redis_url: str, key_prefix: str = "fictional-news:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis_client: Optional[redis.Redis] = client

    async def initialize(self) -> None:
        """Open the Redis connection and check it answers."""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5,
                socket_connect_timeout=5,
            )

        try:
            await self.redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            raise PersistenceFailure(f"Redis connection failed: {e}", "connect", e) from e

    def _client(self) -> redis.Redis:
        if self.redis_client is None:
            raise PersistenceFailure("Redis storage is not initialized", "connect")
        return self.redis_client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client().get(f"{self.key_prefix}{key}")
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Redis read failed: {e}", "read", e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client().set(f"{self.key_prefix}{key}", value)
        except PersistenceFailure:
            raise
        except Exception as e:
            raise PersistenceFailure(f"Redis write failed: {e}", "write", e) from e

    async def close(self) -> None:
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("Redis connection closed")
