"""Board composition.

Builds the state manager with the store selected by configuration and
tears everything down again in reverse order.
"""
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from ..database.connection import DatabaseConnection
from ..database.document_store import DocumentStore
from ..database.init import DatabaseInitializer
from ..database.memory_document_store import InMemoryDocumentStore
from ..database.postgres_document_store import PostgresDocumentStore
from ..lib.error_handler import ErrorHandler, PersistenceFailure
from ..lib.kv_storage import JsonFileStorage, KeyValueStorage, MemoryStorage, RedisStorage
from ..models.config import DEFAULT_CONFIG, ConfigKey
from .article_state import ArticleStateManager
from .auth_service import AnonymousAuthProvider
from .guestbook_service import GuestbookService
from .local_store import LocalArticleStore
from .remote_store import RemoteArticleStore
from .store import ArticleStore

logger = logging.getLogger(__name__)


@dataclass
class Board:
    """Everything the view layer talks to."""

    manager: ArticleStateManager
    error_handler: ErrorHandler
    guestbook: Optional[GuestbookService] = None


def _setting(config: Dict[str, str], key: str) -> str:
    return str(config.get(key, DEFAULT_CONFIG[key]))


async def create_kv_storage(config: Dict[str, str]) -> KeyValueStorage:
    """Key-value storage named by ``storage.kv``."""
    kind = _setting(config, ConfigKey.STORAGE_KV).lower()

    if kind == "memory":
        return MemoryStorage()
    if kind == "redis":
        storage = RedisStorage(_setting(config, ConfigKey.REDIS_URL))
        await storage.initialize()
        return storage
    return JsonFileStorage(_setting(config, ConfigKey.STORAGE_PATH))


async def create_document_store(config: Dict[str, str], stack: AsyncExitStack) -> DocumentStore:
    """Document store for the remote and memory backends."""
    backend = _setting(config, ConfigKey.STORAGE_BACKEND).lower()

    if backend == "memory":
        document_store: DocumentStore = InMemoryDocumentStore()
    else:
        db = DatabaseConnection(
            _setting(config, ConfigKey.DATABASE_URL),
            pool_size=int(_setting(config, ConfigKey.DATABASE_POOL_SIZE)),
        )
        await db.initialize()
        stack.push_async_callback(db.close)
        initializer = DatabaseInitializer(db)
        await initializer.create_tables()
        missing = await initializer.validate_schema()
        if missing:
            raise PersistenceFailure(f"Document store schema incomplete: {', '.join(missing)}", "connect")
        document_store = PostgresDocumentStore(db)

    stack.push_async_callback(document_store.close)
    return document_store


@asynccontextmanager
async def open_board(config: Dict[str, str], with_guestbook: bool = False) -> AsyncIterator[Board]:
    """
    Compose and load a board for the configured backend.

    Yields:
        Board: loaded state manager plus the guestbook when requested and
        the backend supports it
    """
    backend = _setting(config, ConfigKey.STORAGE_BACKEND).lower()
    error_handler = ErrorHandler()

    async with AsyncExitStack() as stack:
        kv_storage = await create_kv_storage(config)
        stack.push_async_callback(kv_storage.close)

        guestbook = None
        store: ArticleStore
        if backend == "local":
            store = LocalArticleStore(kv_storage, key=_setting(config, ConfigKey.STORAGE_KEY))
        else:
            document_store = await create_document_store(config, stack)
            auth = AnonymousAuthProvider(kv_storage)
            store = RemoteArticleStore(
                document_store, auth, collection=_setting(config, ConfigKey.ARTICLES_COLLECTION)
            )
            if with_guestbook:
                guestbook = GuestbookService(
                    document_store,
                    auth,
                    collection=_setting(config, ConfigKey.GUESTBOOK_COLLECTION),
                    limit=int(_setting(config, ConfigKey.GUESTBOOK_LIMIT)),
                    error_handler=error_handler,
                )

        stack.push_async_callback(store.close)

        manager = ArticleStateManager(store, error_handler=error_handler)
        stack.push_async_callback(manager.close)
        await manager.load_initial()

        if guestbook:
            stack.push_async_callback(guestbook.close)
            await guestbook.start()

        logger.info(f"Board ready on {backend} backend")
        yield Board(manager=manager, error_handler=error_handler, guestbook=guestbook)
