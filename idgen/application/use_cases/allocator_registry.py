"""AllocatorRegistry — one initialized BufferedIdAllocator per counter key."""

from __future__ import annotations

import asyncio
import logging

from idgen.application.ports.counter_store import CounterStore
from idgen.application.use_cases.buffered_allocator import BufferedIdAllocator
from idgen.config import Settings

logger = logging.getLogger(__name__)


class AllocatorRegistry:
    """Lazily creates allocators on first use of a key.

    Initialization runs under a per-key lock, so concurrent first requests
    for a key share one allocator while other keys proceed independently.
    Allocators whose init() failed are not cached.
    """

    def __init__(self, store: CounterStore, settings: Settings):
        self._store = store
        self._settings = settings
        self._allocators: dict[str, BufferedIdAllocator] = {}
        self._init_locks: dict[str, asyncio.Lock] = {}

    @property
    def store(self) -> CounterStore:
        return self._store

    async def get(self, key: str) -> BufferedIdAllocator:
        allocator = self._allocators.get(key)
        if allocator is not None:
            return allocator

        async with self._init_locks.setdefault(key, asyncio.Lock()):
            allocator = self._allocators.get(key)
            if allocator is None:
                allocator = BufferedIdAllocator.from_settings(self._store, key, self._settings)
                await allocator.init()
                self._allocators[key] = allocator
                logger.info("Registered allocator for %r", key)
        return allocator

    def peek(self, key: str) -> BufferedIdAllocator | None:
        """The allocator for *key* if one is already running; never creates one."""
        return self._allocators.get(key)

    def keys(self) -> list[str]:
        return sorted(self._allocators)
