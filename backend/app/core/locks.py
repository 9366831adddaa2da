"""
Per-resource logical locks.

Mutating operations on one load are serialised in-process by holding an
asyncio.Lock keyed by resource ("load:12", "driver:D1", ...). Operations that
touch disjoint resources never wait on each other. Cross-process exclusion is
the store's job (versioned rows and assignment lock indexes).
"""

import asyncio
import weakref
from contextlib import asynccontextmanager, AsyncExitStack
from typing import AsyncIterator, Iterable


class KeyedLockRegistry:
    """Hands out one asyncio.Lock per key, dropped once nobody holds it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """
        Acquire every key's lock for the duration of the block.

        Keys are acquired in sorted order so two callers asking for
        overlapping sets cannot deadlock.
        """
        ordered = sorted({key for key in keys if key})
        locks = [self.get(key) for key in ordered]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


def resource_keys(load_id=None, driver_id=None, vehicle_id=None) -> Iterable[str]:
    keys = []
    if load_id is not None:
        keys.append(f"load:{load_id}")
    if driver_id:
        keys.append(f"driver:{driver_id}")
    if vehicle_id:
        keys.append(f"vehicle:{vehicle_id}")
    return keys


# Shared registry for the dispatch engine
load_locks = KeyedLockRegistry()
