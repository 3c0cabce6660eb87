"""
Catalog sync coordinator.

Drives the session lifecycle and the bulk load of all four collections:

    UNAUTHENTICATED -> LOADING -> READY | CONNECTION_ERROR
    CONNECTION_ERROR -> LOADING (retry) -> READY
    any state -> UNAUTHENTICATED (logout)
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

import httpx

from .cache import CatalogSnapshot, CollectionCache, MutationOp
from .client import CatalogApi
from .config import Settings, get_settings
from .models import CatalogItem, Session, User
from .notifications import LoggingNotifier, Notifier
from .payloads import Payload
from .storage import KeyValueStorage, SessionStore

logger = logging.getLogger(__name__)

CONNECTION_ERROR_MESSAGE = "Unable to connect to server. Please check your internet connection."

_VERBS = {
    MutationOp.CREATE: ("add", "added"),
    MutationOp.UPDATE: ("update", "updated"),
    MutationOp.DELETE: ("delete", "deleted"),
}


class SyncState(Enum):
    """Coordinator state for one login session."""
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    READY = "ready"
    CONNECTION_ERROR = "connection_error"


@dataclass
class SyncResult:
    """Outcome of one refresh_all() call."""
    had_error: bool
    failed: dict[str, str] = field(default_factory=dict)
    counts: dict[str, int] = field(default_factory=dict)
    skipped: bool = False
    duration_seconds: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return not self.had_error and not self.skipped


class SyncCoordinator:
    """Session-gated loading, retry and user-facing mutations for the catalog."""

    def __init__(
        self,
        session_store: SessionStore,
        api: CatalogApi,
        catalog: Optional[CatalogSnapshot] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session_store = session_store
        self.api = api
        self.catalog = catalog or CatalogSnapshot.from_api(api)
        self.notifier: Notifier = notifier or LoggingNotifier()

        self.state = SyncState.UNAUTHENTICATED
        self.last_result: Optional[SyncResult] = None
        self._session_epoch = 0

    @property
    def user(self) -> Optional[User]:
        session = self.session_store.current()
        return session.user if session else None

    # === Session Lifecycle ===

    async def start(self) -> SyncState:
        """Restore a persisted session, if any, and load the catalog."""
        session = self.session_store.restore()
        if session is None:
            self.state = SyncState.UNAUTHENTICATED
            return self.state

        await self.refresh_all()
        return self.state

    async def login(self, email: str, password: str) -> Session:
        """
        Authenticate, persist the session and load the catalog.

        Raises:
            Unauthorized: Bad credentials or a response without user/token
            NetworkError: Backend unreachable
        """
        logger.info(f"Logging in user: {email}")
        response = await self.api.auth.login(email, password)
        session = Session(token=response.token, user=response.user)

        self._session_epoch += 1
        self.catalog.clear()
        self.session_store.establish(session)
        logger.info("Login successful")

        await self.refresh_all()
        self.notifier.success(f"Welcome back, {session.user.name}!")
        return session

    def logout(self) -> None:
        """Drop the session and the catalog. Outstanding requests are ignored."""
        self._session_epoch += 1
        self.session_store.clear()
        self.catalog.clear()
        self.state = SyncState.UNAUTHENTICATED
        self.last_result = None
        logger.info("Logged out")
        self.notifier.success("Logged out successfully")

    async def profile(self) -> User:
        return await self.api.auth.profile()

    # === Bulk Refresh ===

    async def refresh_all(self) -> SyncResult:
        """
        Refresh all four collections concurrently.

        A failing collection is emptied without affecting its siblings.
        Never raises for collection failures; they are reported through
        ``had_error`` and ``failed``.
        """
        if not self.session_store.is_authenticated:
            logger.warning("Catalog refresh requested without a session, skipping")
            return SyncResult(had_error=False, skipped=True)

        epoch = self._session_epoch
        self.state = SyncState.LOADING
        start_time = time.time()
        logger.info("Refreshing catalog...")

        caches = self.catalog.caches
        outcomes = await asyncio.gather(
            *(self._load(cache, epoch) for cache in caches.values()),
            return_exceptions=True,
        )

        stale = epoch != self._session_epoch
        failed: dict[str, str] = {}
        counts: dict[str, int] = {}
        for (name, cache), outcome in zip(caches.items(), outcomes):
            if isinstance(outcome, Exception):
                logger.warning(f"Failed to fetch {name}: {outcome}")
                failed[name] = str(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            counts[name] = len(cache)

        duration = time.time() - start_time
        result = SyncResult(
            had_error=bool(failed),
            failed=failed,
            counts=counts,
            skipped=stale,
            duration_seconds=duration,
        )

        if stale:
            logger.info("Session changed during catalog refresh, discarding outcome")
            return result

        if len(failed) == len(caches):
            self.state = SyncState.CONNECTION_ERROR
            self.notifier.error(CONNECTION_ERROR_MESSAGE)
        else:
            self.state = SyncState.READY
            if failed:
                self.notifier.warning(f"Some content could not be loaded: {', '.join(failed)}")

        self.last_result = result
        logger.info(
            f"Catalog refresh completed in {duration:.2f}s: "
            f"{len(caches) - len(failed)} loaded, {len(failed)} failed"
        )
        return result

    async def _load(self, cache: CollectionCache, epoch: int) -> tuple:
        """
        Refresh one collection, emptying it as soon as its own listing fails.

        The reset is skipped when the value was replaced while the listing
        was outstanding (a mutation's refresh, or a logout).
        """
        generation = cache.generation
        try:
            return await cache.refresh()
        except Exception:
            if epoch == self._session_epoch and cache.generation == generation:
                cache.reset()
            raise

    async def retry(self) -> SyncResult:
        """Manual retry after a connection error."""
        return await self.refresh_all()

    # === Mutations ===

    async def create(self, collection: str, payload: Payload) -> CatalogItem:
        return await self._mutate(collection, MutationOp.CREATE, payload=payload)

    async def update(self, collection: str, item_id: str, payload: Payload) -> CatalogItem:
        return await self._mutate(collection, MutationOp.UPDATE, item_id=item_id, payload=payload)

    async def delete(self, collection: str, item_id: str) -> None:
        await self._mutate(collection, MutationOp.DELETE, item_id=item_id)

    async def _mutate(
        self,
        collection: str,
        op: MutationOp,
        item_id: Optional[str] = None,
        payload: Optional[Payload] = None,
    ) -> Optional[CatalogItem]:
        cache = self.catalog[collection]
        label = cache.client.spec.label
        verb, past = _VERBS[op]

        try:
            result = await cache.mutate(op, item_id=item_id, payload=payload)
        except Exception as e:
            logger.error(f"Failed to {verb} {label}: {e}")
            self.notifier.error(f"Failed to {verb} {label}: {e}")
            raise

        self.notifier.success(f"{label.capitalize()} {past} successfully")
        return result

    # === Status ===

    def status(self) -> dict[str, Any]:
        """Current state information."""
        user = self.user
        return {
            "state": self.state.value,
            "user": user.email if user else None,
            "had_error": self.last_result.had_error if self.last_result else False,
            "collections": {
                name: {
                    "items": len(cache),
                    "last_error": str(cache.last_error) if cache.last_error else None,
                    "last_refreshed_at": (
                        cache.last_refreshed_at.isoformat() if cache.last_refreshed_at else None
                    ),
                }
                for name, cache in self.catalog.caches.items()
            },
        }

    async def close(self) -> None:
        await self.api.close()


# =============================================================================
# Convenience Functions
# =============================================================================

def build_coordinator(
    settings: Optional[Settings] = None,
    storage: Optional[KeyValueStorage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    notifier: Optional[Notifier] = None,
) -> SyncCoordinator:
    """
    Wire a coordinator with its session store, API clients and catalog.

    Args:
        settings: Optional settings, defaults to the environment
        storage: Session storage, defaults to the configured sqlite file
        http_client: Pre-configured httpx client (tests use an ASGI transport)
        notifier: Notification sink, defaults to logging
    """
    settings = settings or get_settings()
    if storage is None:
        session_store = SessionStore.from_settings(settings)
    else:
        session_store = SessionStore(storage, token_key=settings.token_key, user_key=settings.user_key)

    api = CatalogApi(settings, lambda: session_store.token, http_client=http_client)
    return SyncCoordinator(session_store, api, notifier=notifier)


@asynccontextmanager
async def coordinator_session(settings: Optional[Settings] = None, **kwargs):
    """
    Context manager for a coordinator that is closed on exit.

    Usage:
        async with coordinator_session() as coordinator:
            await coordinator.start()
    """
    coordinator = build_coordinator(settings, **kwargs)
    try:
        yield coordinator
    finally:
        await coordinator.close()
