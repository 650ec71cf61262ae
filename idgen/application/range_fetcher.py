"""RangeFetcher — reserves the next block from the counter store."""

from __future__ import annotations

import logging

from idgen.application.id_pool import LocalIdPool
from idgen.application.ports.counter_store import CounterStore
from idgen.domain.entities.block import Block, block_index
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import OverlapError
from idgen.domain.slot_table import SlotTable
from idgen.domain.value_objects.enums import AnchorConvention

logger = logging.getLogger(__name__)


def check_monotonic(
    previous: CounterRecord | None,
    fetched: CounterRecord,
    anchor: AnchorConvention,
) -> None:
    """Reject a fetched record that could hand out an id range twice.

    Raises:
        OverlapError: if the record uses another anchor convention, points
            before the first block, or went backwards relative to *previous*.
    """
    if fetched.anchor is not anchor:
        raise OverlapError(
            f"Counter {fetched.key!r} uses the {fetched.anchor.value!r} anchor, "
            f"allocator is configured for {anchor.value!r}"
        )
    if fetched.block_size <= 0:
        raise OverlapError(
            f"Counter {fetched.key!r}: non-positive block size {fetched.block_size}"
        )
    if block_index(fetched.high_value, anchor) < 0:
        raise OverlapError(
            f"Counter {fetched.key!r}: high value {fetched.high_value} maps "
            f"below the start value"
        )
    if previous is None:
        return
    if fetched.high_value <= previous.high_value:
        raise OverlapError(
            f"Counter {fetched.key!r}: high value did not advance "
            f"({previous.high_value} -> {fetched.high_value})"
        )
    if fetched.block_size < previous.block_size:
        raise OverlapError(
            f"Counter {fetched.key!r}: block size shrank "
            f"({previous.block_size} -> {fetched.block_size})"
        )
    if fetched.start_value < previous.start_value:
        raise OverlapError(
            f"Counter {fetched.key!r}: start value went backwards "
            f"({previous.start_value} -> {fetched.start_value})"
        )


class RangeFetcher:
    """Fetches blocks for one key and loads them into the slot table and pool.

    Callers must hold the owning allocator's lock around fetch_next_block().
    """

    def __init__(
        self,
        store: CounterStore,
        key: str,
        anchor: AnchorConvention,
        slots: SlotTable,
        pool: LocalIdPool,
    ):
        self._store = store
        self._key = key
        self._anchor = anchor
        self._slots = slots
        self._pool = pool
        self._record: CounterRecord | None = None
        self.poisoned = False

    @property
    def record(self) -> CounterRecord | None:
        """The record the current block was derived from."""
        return self._record

    def poison(self, error: OverlapError) -> None:
        """Stop the key for good and fail everyone waiting on the pool."""
        self.poisoned = True
        self._pool.close(error)
        logger.error("Counter %r poisoned: %s", self._key, error)

    async def fetch_next_block(self) -> Block:
        """Reserve the next block and publish its ids.

        The store increment is not undone if validation fails afterwards;
        that block is simply never used.

        Raises:
            StoreError: the store call failed; local state is untouched.
            OverlapError: the fetched record is inconsistent; local state is
                untouched and the fetcher is poisoned.
        """
        fetched = await self._store.increment_and_fetch(self._key)

        try:
            check_monotonic(self._record, fetched, self._anchor)
        except OverlapError as e:
            self.poison(e)
            raise

        if self._record is not None and fetched.block_size != self._record.block_size:
            logger.warning(
                "Counter %r block size changed %d -> %d; resizing at runtime may leak ids",
                self._key, self._record.block_size, fetched.block_size,
            )

        self._record = fetched
        block = self._slots.reset(fetched)
        self._pool.extend(block.ids())

        logger.info(
            "Counter %r: fetched block [%d..%d] (high=%d)",
            self._key, block.lower_bound, block.upper_bound, fetched.high_value,
        )
        return block
