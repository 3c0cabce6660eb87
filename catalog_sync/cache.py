"""
In-memory collection state.

Each :class:`CollectionCache` owns the current value of one collection and is
the only writer of it. The value is always a whole server listing: mutations
go to the backend and are followed by a fresh listing, never patched locally.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Generic, Iterator, Optional, TypeVar

from .client import CatalogApi, CollectionClient
from .models import (
    CatalogItem,
    DestinationImage,
    Experience,
    Itinerary,
    ListFilter,
    Update,
)
from .payloads import Payload

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=CatalogItem)

Listener = Callable[[tuple], None]


class MutationOp(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CollectionCache(Generic[T]):
    """Current value of one collection plus its refresh rules."""

    def __init__(self, client: CollectionClient[T], list_filter: Optional[ListFilter] = None):
        self.client = client
        self.list_filter = list_filter
        self.last_error: Optional[Exception] = None
        self.last_refreshed_at: Optional[datetime] = None

        self._items: tuple[T, ...] = ()
        # Bumped on every replacement of the stored value
        self._generation = 0
        self._listeners: list[Listener] = []

        self._inflight: Optional[asyncio.Task] = None
        self._inflight_version = 0
        # Bumped after every successful mutation
        self._version = 0
        self._stored_version = -1
        # Bumped by clear(); fetches from an older epoch are never stored
        self._epoch = 0

    @property
    def name(self) -> str:
        return self.client.name

    @property
    def items(self) -> tuple[T, ...]:
        return self._items

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def find(self, item_id: str) -> Optional[T]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    # === Observers ===

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call ``listener`` with the new items whenever the value is replaced.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _store(self, items: tuple[T, ...]) -> None:
        self._items = items
        self._generation += 1
        for listener in list(self._listeners):
            try:
                listener(items)
            except Exception:
                logger.exception(f"{self.name} listener failed")

    # === Refresh ===

    async def refresh(self) -> tuple[T, ...]:
        """
        Replace the stored value with a fresh server listing.

        Concurrent callers share one outstanding request. On failure the
        error is raised and the previous value is kept.
        """
        return await self._refresh(min_version=0)

    async def _refresh(self, min_version: int) -> tuple[T, ...]:
        while True:
            task = self._inflight
            if task is not None and task.done():
                task = None

            if task is not None:
                if self._inflight_version >= min_version:
                    logger.debug(f"Attaching to in-flight {self.name} refresh")
                    return await asyncio.shield(task)
                # Started before the caller's mutation landed; let it settle
                await asyncio.wait({task})
                continue

            self._inflight_version = self._version
            self._inflight = asyncio.ensure_future(self._fetch(self._version, self._epoch))

    async def _fetch(self, version: int, epoch: int) -> tuple[T, ...]:
        try:
            items = tuple(await self.client.list(self.list_filter))
        except Exception as e:
            if epoch == self._epoch:
                self.last_error = e
            logger.debug(f"{self.name} refresh failed: {e}")
            raise
        finally:
            if self._inflight is asyncio.current_task():
                self._inflight = None

        if epoch != self._epoch:
            logger.debug(f"Discarding {self.name} listing from a previous session")
        elif version < self._stored_version:
            logger.debug(f"Discarding stale {self.name} listing")
        else:
            self._stored_version = version
            self.last_error = None
            self.last_refreshed_at = datetime.now(timezone.utc)
            self._store(items)
        return items

    # === Mutations ===

    async def mutate(
        self,
        op: MutationOp,
        item_id: Optional[str] = None,
        payload: Optional[Payload] = None,
    ) -> Optional[T]:
        """
        Apply a create/update/delete remotely, then refresh.

        Returns:
            The item echoed by the server for create/update, None for delete
        """
        op = MutationOp(op)
        if op is not MutationOp.CREATE and not item_id:
            raise ValueError(f"{op.value} requires an item id")
        if op is not MutationOp.DELETE and payload is None:
            raise ValueError(f"{op.value} requires a payload")

        result: Optional[T] = None
        if op is MutationOp.CREATE:
            result = await self.client.create(payload)
        elif op is MutationOp.UPDATE:
            result = await self.client.update(item_id, payload)
        else:
            await self.client.delete(item_id)

        self._version += 1
        try:
            await self._refresh(min_version=self._version)
        except Exception as e:
            logger.warning(f"{self.name} {op.value} applied but refresh failed: {e}")
            raise
        return result

    async def create(self, payload: Payload) -> T:
        return await self.mutate(MutationOp.CREATE, payload=payload)

    async def update(self, item_id: str, payload: Payload) -> T:
        return await self.mutate(MutationOp.UPDATE, item_id=item_id, payload=payload)

    async def delete(self, item_id: str) -> None:
        await self.mutate(MutationOp.DELETE, item_id=item_id)

    # === Reset ===

    def reset(self) -> None:
        """Empty the collection (failed initial load)."""
        self._store(())

    def clear(self) -> None:
        """Empty the collection and ignore any outstanding listing (logout)."""
        self._epoch += 1
        self._inflight = None
        self._stored_version = -1
        self.last_error = None
        self.last_refreshed_at = None
        self._store(())


@dataclass
class CatalogSnapshot:
    """The four collections shared by every consumer in one process."""
    experiences: CollectionCache[Experience]
    itineraries: CollectionCache[Itinerary]
    images: CollectionCache[DestinationImage]
    updates: CollectionCache[Update]

    @classmethod
    def from_api(cls, api: CatalogApi) -> "CatalogSnapshot":
        return cls(
            experiences=CollectionCache(api.experiences),
            itineraries=CollectionCache(api.itineraries),
            images=CollectionCache(api.images),
            updates=CollectionCache(api.updates),
        )

    @property
    def caches(self) -> dict[str, CollectionCache]:
        return {
            "experiences": self.experiences,
            "itineraries": self.itineraries,
            "images": self.images,
            "updates": self.updates,
        }

    def __getitem__(self, name: str) -> CollectionCache:
        try:
            return self.caches[name]
        except KeyError:
            raise KeyError(f"Unknown collection: {name}") from None

    @property
    def is_empty(self) -> bool:
        return all(len(cache) == 0 for cache in self.caches.values())

    def as_dict(self) -> dict[str, tuple]:
        return {name: cache.items for name, cache in self.caches.items()}

    def clear(self) -> None:
        for cache in self.caches.values():
            cache.clear()
