"""Tests for SimpleIncrementIdGenerator."""

import pytest

from idgen.application.use_cases.simple_increment import SimpleIncrementIdGenerator
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import OverlapError, StoreError


@pytest.mark.asyncio
async def test_sequence_starts_at_start_value(store):
    gen = SimpleIncrementIdGenerator(store, "invoices")
    await gen.init()
    assert [await gen.get_next() for _ in range(3)] == [1, 2, 3]


@pytest.mark.asyncio
async def test_custom_start_value(store):
    gen = SimpleIncrementIdGenerator(store, "invoices", start_value=100)
    await gen.init()
    assert await gen.get_next() == 100


@pytest.mark.asyncio
async def test_rejects_buffered_record(store):
    await store.upsert_if_absent(
        CounterRecord(key="invoices", start_value=1, high_value=-1, block_size=20)
    )
    gen = SimpleIncrementIdGenerator(store, "invoices")
    with pytest.raises(OverlapError, match="block size 20"):
        await gen.init()


@pytest.mark.asyncio
async def test_store_outage_propagates(store):
    gen = SimpleIncrementIdGenerator(store, "invoices")
    await gen.init()
    store.fail_next = 1
    with pytest.raises(StoreError):
        await gen.get_next()
    assert await gen.get_next() == 1
