"""One-increment-per-id generator without local buffering."""

from __future__ import annotations

from idgen.application.ports.counter_store import CounterStore
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import OverlapError
from idgen.domain.value_objects.enums import AnchorConvention


class SimpleIncrementIdGenerator:
    """Every get_next() increments the shared counter and returns the new value.

    Shares the counter record layout with BufferedIdAllocator, but only
    accepts records with a block size of 1.
    """

    def __init__(self, store: CounterStore, key: str, start_value: int = 1):
        self._store = store
        self._key = key
        self._start_value = start_value

    async def init(self) -> None:
        stored = await self._store.upsert_if_absent(
            CounterRecord(
                key=self._key,
                start_value=self._start_value,
                high_value=AnchorConvention.CURRENT.initial_high_value,
                block_size=1,
                anchor=AnchorConvention.CURRENT,
            )
        )
        _require_unit_block(stored)

    async def get_next(self) -> int:
        record = await self._store.increment_and_fetch(self._key)
        _require_unit_block(record)
        return record.start_value + record.high_value


def _require_unit_block(record: CounterRecord) -> None:
    if record.block_size != 1:
        raise OverlapError(
            f"Counter {record.key!r} has block size {record.block_size}, "
            "a simple increment generator needs 1"
        )
