"""
Application Bootstrap

Builds the object graph once at startup:

    settings -> record store (opened) -> repositories -> cache

The store is constructed explicitly and injected; there is no shared
global handle. The backend is a strategy picked here:

- "sqlite": native persistence, failure to open is fatal
- "memory": in-process store, data lost on exit
- "auto":   SQLite, falling back to memory when SQLite cannot be opened
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from finance_tracker.config import Settings, StorageSettings, get_settings
from finance_tracker.identity import IdentityProvider, LocalIdentityProvider, resolve_user_id
from finance_tracker.observability import configure_logging
from finance_tracker.repository import CategoryRepository, TransactionRepository
from finance_tracker.state import ChangeNotifier, TransactionCache
from finance_tracker.storage import (
    InMemoryRecordStore,
    RecordStore,
    SQLiteRecordStore,
    StorageUnavailableError,
)


logger = structlog.get_logger(__name__)


@dataclass
class AppComponents:
    """Everything the presentation layer talks to."""
    store: RecordStore
    transactions: TransactionRepository
    categories: CategoryRepository
    cache: TransactionCache
    identity: IdentityProvider

    async def close(self) -> None:
        await self.store.close()


def create_store(settings: StorageSettings) -> RecordStore:
    """Construct (but do not open) the configured store backend."""
    if settings.backend == "memory":
        return InMemoryRecordStore()
    return SQLiteRecordStore(
        settings.db_path,
        busy_timeout_ms=settings.busy_timeout_ms,
        open_retry_attempts=settings.open_retry_attempts,
    )


async def open_store(settings: StorageSettings) -> RecordStore:
    """
    Construct and open the configured store.

    Raises:
        StorageUnavailableError: If the store cannot be opened and the
            backend is not "auto"
    """
    store = create_store(settings)
    try:
        await store.open()
    except StorageUnavailableError as e:
        if settings.backend != "auto":
            raise
        logger.warning("store_fallback_to_memory", error=str(e))
        store = InMemoryRecordStore()
        await store.open()
    return store


async def create_app_components(
    settings: Optional[Settings] = None,
    identity: Optional[IdentityProvider] = None,
    load: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (cached get_settings() when None)
        identity: Identity provider; a fixed local user when None
        load: Run the cache's initial load() before returning

    Returns:
        Wired components; call close() on shutdown
    """
    settings = settings or get_settings()
    configure_logging(settings.logging)
    app_settings = settings.app

    store = await open_store(settings.storage)

    identity = identity or LocalIdentityProvider(app_settings.local_user_id)
    user_id = resolve_user_id(identity, app_settings.local_user_id)

    transactions = TransactionRepository(store)
    cache = TransactionCache(
        transactions,
        user_id,
        notifier=ChangeNotifier(),
        recent_limit=app_settings.recent_limit,
    )
    if load:
        await cache.load()

    logger.info(
        "app_components_ready",
        backend=type(store).__name__,
        user_id=user_id,
        environment=app_settings.environment,
    )
    return AppComponents(
        store=store,
        transactions=transactions,
        categories=CategoryRepository(store),
        cache=cache,
        identity=identity,
    )
