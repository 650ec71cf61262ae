"""BufferedIdAllocator — hi-lo id allocation with a rent/commit/release protocol."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from idgen.application.id_pool import LocalIdPool
from idgen.application.ports.counter_store import CounterStore
from idgen.application.range_fetcher import RangeFetcher
from idgen.config import Settings
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import OverlapError, StateError
from idgen.domain.slot_table import SlotTable
from idgen.domain.value_objects.enums import AnchorConvention, IdState, RollbackTarget

logger = logging.getLogger(__name__)

DEFAULT_START_VALUE = 1
DEFAULT_BLOCK_SIZE = 20


@dataclass(frozen=True)
class AllocatorStats:
    """Point-in-time view of an allocator, safe to hand out."""

    key: str
    lower_bound: int | None
    upper_bound: int | None
    high_value: int | None
    block_size: int
    committed_count: int
    free: int
    rented: int
    committed: int
    pooled: int
    poisoned: bool


class BufferedIdAllocator:
    """Hands out unique ids from locally buffered blocks of a shared counter.

    Per-id lifecycle: Free -> (rent) -> Rented -> (commit) -> Committed,
    and Rented -> (release) -> Free. When every id of the current block is
    committed, the committing call fetches the next block before returning.

    All state changes happen under one asyncio.Lock. rent() waits on the pool
    outside the lock, so any number of renters can be woken by a refill.
    """

    def __init__(
        self,
        store: CounterStore,
        key: str,
        block_size: int = DEFAULT_BLOCK_SIZE,
        start_value: int = DEFAULT_START_VALUE,
        anchor: AnchorConvention = AnchorConvention.CURRENT,
        rollback_target: RollbackTarget = RollbackTarget.RENTED,
    ):
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        self._store = store
        self._key = key
        self._block_size = block_size
        self._start_value = start_value
        self._anchor = anchor
        self._rollback_target = rollback_target

        self._lock = asyncio.Lock()
        self._pool = LocalIdPool()
        self._slots = SlotTable(anchor)
        self._fetcher = RangeFetcher(store, key, anchor, self._slots, self._pool)
        self._committed_count = 0
        self._initialized = False

    @classmethod
    def from_settings(
        cls, store: CounterStore, key: str, settings: Settings
    ) -> BufferedIdAllocator:
        return cls(
            store,
            key,
            block_size=settings.default_block_size,
            start_value=settings.default_start_value,
            anchor=settings.anchor_convention,
            rollback_target=settings.rollback_target,
        )

    @property
    def key(self) -> str:
        return self._key

    @property
    def poisoned(self) -> bool:
        return self._fetcher.poisoned

    # ─── Protocol ────────────────────────────────────────────────────

    async def init(self) -> None:
        """Create the counter record if needed and load the first block.

        A failed init may be retried; a successful one may not be repeated.

        Raises:
            StoreError: the store could not be reached.
            OverlapError: the stored record is inconsistent.
            StateError: the allocator is already initialized.
        """
        async with self._lock:
            if self._fetcher.poisoned:
                raise OverlapError(f"Allocator for {self._key!r} is poisoned")
            if self._initialized:
                raise StateError(f"Allocator for {self._key!r} is already initialized")

            stored = await self._store.upsert_if_absent(
                CounterRecord(
                    key=self._key,
                    start_value=self._start_value,
                    high_value=self._anchor.initial_high_value,
                    block_size=self._block_size,
                    anchor=self._anchor,
                )
            )
            if stored.anchor is not self._anchor:
                error = OverlapError(
                    f"Counter {self._key!r} was created with the {stored.anchor.value!r} anchor, "
                    f"allocator is configured for {self._anchor.value!r}"
                )
                self._fetcher.poison(error)
                raise error
            if stored.block_size != self._block_size:
                logger.warning(
                    "Counter %r already exists with block size %d (configured %d); using stored value",
                    self._key, stored.block_size, self._block_size,
                )

            await self._fetcher.fetch_next_block()
            self._committed_count = 0
            self._initialized = True
            logger.info("Allocator for %r initialized", self._key)

    async def rent(self) -> int:
        """Take an id out of the pool, waiting until one is available.

        Cancelling the call while it waits has no effect on the allocator.

        Raises:
            OverlapError: the allocator is, or becomes while waiting, poisoned.
        """
        self._ensure_usable()
        value = await self._pool.get()

        try:
            await self._lock.acquire()
        except asyncio.CancelledError:
            self._pool.put(value)
            raise

        try:
            if self._fetcher.poisoned:
                self._pool.put(value)
                raise OverlapError(f"Allocator for {self._key!r} is poisoned")
            index = self._slots.index_of(value)
            self._slots.mark(index, IdState.RENTED)
            return value
        finally:
            self._lock.release()

    async def commit(self, value: int) -> None:
        """Mark a rented id as permanently used.

        If this exhausts the block, the next block is fetched before
        returning. Should that fetch fail, *value* and the committed count
        are rolled back and the error is re-raised, so the commit can be
        retried later.

        Raises:
            RangeError: *value* is not in the current block.
            StateError: *value* is not rented.
            StoreError, OverlapError: the refill failed.
        """
        async with self._lock:
            self._ensure_usable()
            index = self._slots.ensure_rented(value)
            self._slots.mark(index, IdState.COMMITTED)
            self._committed_count += 1

            if self._committed_count == self._slots.block.size:
                try:
                    await self._fetcher.fetch_next_block()
                except BaseException:
                    self._rollback_commit(index, value)
                    raise
                self._committed_count = 0

    async def release(self, value: int) -> None:
        """Return a rented id to the pool unused.

        Raises:
            RangeError: *value* is not in the current block.
            StateError: *value* is not rented.
        """
        async with self._lock:
            self._ensure_usable()
            index = self._slots.ensure_rented(value)
            self._slots.mark(index, IdState.FREE)
            self._pool.put(value)

    async def snapshot(self) -> AllocatorStats:
        async with self._lock:
            block = self._slots.block
            record = self._fetcher.record
            return AllocatorStats(
                key=self._key,
                lower_bound=block.lower_bound if block else None,
                upper_bound=block.upper_bound if block else None,
                high_value=record.high_value if record else None,
                block_size=block.size if block else self._block_size,
                committed_count=self._committed_count,
                free=self._slots.count(IdState.FREE),
                rented=self._slots.count(IdState.RENTED),
                committed=self._slots.count(IdState.COMMITTED),
                pooled=self._pool.qsize(),
                poisoned=self._fetcher.poisoned,
            )

    # ─── Internals ───────────────────────────────────────────────────

    def _ensure_usable(self) -> None:
        if self._fetcher.poisoned:
            raise OverlapError(f"Allocator for {self._key!r} is poisoned")
        if not self._initialized:
            raise StateError(f"Allocator for {self._key!r} is not initialized")

    def _rollback_commit(self, index: int, value: int) -> None:
        self._committed_count -= 1
        if self._rollback_target is RollbackTarget.FREE:
            self._slots.mark(index, IdState.FREE)
            self._pool.put(value)
        else:
            self._slots.mark(index, IdState.RENTED)
        logger.warning(
            "Counter %r: refill failed, id %d rolled back to %s",
            self._key, value, self._rollback_target.value,
        )
