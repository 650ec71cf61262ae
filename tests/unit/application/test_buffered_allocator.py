"""Tests for BufferedIdAllocator with an in-memory counter store."""

from __future__ import annotations

import asyncio
import random
from dataclasses import replace

import pytest

from idgen.application.use_cases.buffered_allocator import BufferedIdAllocator
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import OverlapError, RangeError, StateError, StoreError
from idgen.domain.value_objects.enums import AnchorConvention, RollbackTarget


async def _ready(store, block_size=20, **kwargs) -> BufferedIdAllocator:
    allocator = BufferedIdAllocator(store, "orders", block_size=block_size, **kwargs)
    await allocator.init()
    return allocator


async def _rent_all(allocator, n):
    return [await allocator.rent() for _ in range(n)]


# ─── Init ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_init_creates_record_and_first_block(store):
    allocator = await _ready(store)
    record = store.records["orders"]
    assert (record.start_value, record.high_value, record.block_size) == (1, 0, 20)

    stats = await allocator.snapshot()
    assert (stats.lower_bound, stats.upper_bound) == (1, 20)
    assert stats.pooled == 20
    assert stats.free == 20


@pytest.mark.asyncio
async def test_init_twice_raises(store):
    allocator = await _ready(store)
    with pytest.raises(StateError, match="already initialized"):
        await allocator.init()


@pytest.mark.asyncio
async def test_failed_init_can_be_retried(store):
    allocator = BufferedIdAllocator(store, "orders", block_size=5)
    store.fail_next = 1
    with pytest.raises(StoreError):
        await allocator.init()

    await allocator.init()
    assert await allocator.rent() == 1


@pytest.mark.asyncio
async def test_existing_record_block_size_wins(store):
    await _ready(store, block_size=5)
    second = await _ready(store, block_size=50)
    stats = await second.snapshot()
    assert (stats.lower_bound, stats.upper_bound) == (6, 10)


@pytest.mark.asyncio
async def test_operations_before_init_raise(store):
    allocator = BufferedIdAllocator(store, "orders")
    with pytest.raises(StateError, match="not initialized"):
        await allocator.rent()
    with pytest.raises(StateError):
        await allocator.commit(1)
    with pytest.raises(StateError):
        await allocator.release(1)


def test_block_size_must_be_positive(store):
    with pytest.raises(ValueError):
        BufferedIdAllocator(store, "orders", block_size=0)


# ─── Block scenario ──────────────────────────────────────────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("anchor", list(AnchorConvention))
async def test_exhausting_block_triggers_exactly_one_refill(store, anchor):
    allocator = await _ready(store, block_size=20, anchor=anchor)

    ids = await _rent_all(allocator, 20)
    assert sorted(ids) == list(range(1, 21))
    assert store.increments == 1

    for value in ids:
        await allocator.commit(value)

    assert store.increments == 2
    stats = await allocator.snapshot()
    assert (stats.lower_bound, stats.upper_bound) == (21, 40)
    assert stats.committed_count == 0
    assert await allocator.rent() == 21


@pytest.mark.asyncio
async def test_successive_blocks_are_disjoint_and_increasing(store):
    allocator = await _ready(store, block_size=4)
    bounds = []
    for _ in range(5):
        stats = await allocator.snapshot()
        bounds.append((stats.lower_bound, stats.upper_bound))
        for value in await _rent_all(allocator, 4):
            await allocator.commit(value)

    for (_, prev_upper), (lower, _) in zip(bounds, bounds[1:]):
        assert lower > prev_upper


# ─── Commit / release guards ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_double_commit_raises_state_error(store):
    allocator = await _ready(store)
    ids = await _rent_all(allocator, 5)
    assert ids[-1] == 5

    await allocator.commit(5)
    with pytest.raises(StateError):
        await allocator.commit(5)


@pytest.mark.asyncio
async def test_commit_of_unrented_id_raises_state_error(store):
    allocator = await _ready(store)
    with pytest.raises(StateError):
        await allocator.commit(3)


@pytest.mark.asyncio
async def test_commit_outside_block_raises_range_error(store):
    allocator = await _ready(store)
    with pytest.raises(RangeError):
        await allocator.commit(999)


@pytest.mark.asyncio
async def test_double_release_raises_state_error(store):
    allocator = await _ready(store)
    value = await allocator.rent()
    await allocator.release(value)
    with pytest.raises(StateError):
        await allocator.release(value)


@pytest.mark.asyncio
async def test_release_after_commit_raises_state_error(store):
    allocator = await _ready(store)
    value = await allocator.rent()
    await allocator.commit(value)
    with pytest.raises(StateError):
        await allocator.release(value)


@pytest.mark.asyncio
async def test_released_id_is_rented_again(store):
    allocator = await _ready(store, block_size=2)
    first = await allocator.rent()
    await allocator.release(first)

    assert await allocator.rent() == 2
    assert await allocator.rent() == first


@pytest.mark.asyncio
async def test_release_does_not_count_towards_refill(store):
    allocator = await _ready(store, block_size=2)
    a, b = await _rent_all(allocator, 2)
    await allocator.commit(a)
    await allocator.release(b)
    assert store.increments == 1
    stats = await allocator.snapshot()
    assert stats.committed_count == 1


# ─── Refill failure ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_refill_failure_rolls_back_to_rented(store):
    allocator = await _ready(store, block_size=3)
    a, b, c = await _rent_all(allocator, 3)
    await allocator.commit(a)
    await allocator.commit(b)

    store.fail_next = 1
    with pytest.raises(StoreError):
        await allocator.commit(c)

    stats = await allocator.snapshot()
    assert stats.committed_count == 2
    assert stats.rented == 1
    assert stats.committed == 2
    assert (stats.lower_bound, stats.upper_bound) == (1, 3)

    await allocator.commit(c)
    stats = await allocator.snapshot()
    assert (stats.lower_bound, stats.upper_bound) == (4, 6)
    assert stats.committed_count == 0


@pytest.mark.asyncio
async def test_refill_failure_rolls_back_to_free(store):
    allocator = await _ready(store, block_size=3, rollback_target=RollbackTarget.FREE)
    a, b, c = await _rent_all(allocator, 3)
    await allocator.commit(a)
    await allocator.commit(b)

    store.fail_next = 1
    with pytest.raises(StoreError):
        await allocator.commit(c)

    stats = await allocator.snapshot()
    assert stats.committed_count == 2
    assert stats.rented == 0
    assert stats.free == 1
    assert stats.pooled == 1
    with pytest.raises(StateError):
        await allocator.commit(c)

    assert await allocator.rent() == c
    await allocator.commit(c)
    assert (await allocator.snapshot()).lower_bound == 4


@pytest.mark.asyncio
async def test_overlap_on_refill_poisons_allocator(store):
    allocator = await _ready(store, block_size=2)
    a, b = await _rent_all(allocator, 2)
    await allocator.commit(a)

    store.records["orders"] = replace(store.records["orders"], high_value=-5)
    with pytest.raises(OverlapError):
        await allocator.commit(b)

    assert allocator.poisoned
    with pytest.raises(OverlapError):
        await allocator.rent()
    with pytest.raises(OverlapError):
        await allocator.commit(b)
    with pytest.raises(OverlapError):
        await allocator.init()


@pytest.mark.asyncio
async def test_mismatched_anchor_is_rejected_without_burning_a_block(store):
    first = await _ready(store, block_size=5, anchor=AnchorConvention.CURRENT)
    second = BufferedIdAllocator(store, "orders", block_size=5, anchor=AnchorConvention.PREVIOUS)

    with pytest.raises(OverlapError, match="anchor"):
        await second.init()

    assert second.poisoned
    assert store.increments == 1
    assert await first.rent() == 1


@pytest.mark.asyncio
async def test_record_pointing_before_start_value_is_rejected(store):
    store.records["orders"] = CounterRecord(
        key="orders", start_value=1, high_value=-1, block_size=5,
        anchor=AnchorConvention.PREVIOUS,
    )
    allocator = BufferedIdAllocator(store, "orders", block_size=5, anchor=AnchorConvention.PREVIOUS)

    with pytest.raises(OverlapError, match="below the start value"):
        await allocator.init()
    assert allocator.poisoned
    assert (await allocator.snapshot()).pooled == 0


@pytest.mark.asyncio
async def test_poison_wakes_waiting_renters(store):
    allocator = await _ready(store, block_size=2)
    a, b = await _rent_all(allocator, 2)
    await allocator.commit(a)

    waiter = asyncio.create_task(allocator.rent())
    await asyncio.sleep(0)
    assert not waiter.done()

    store.records["orders"] = replace(store.records["orders"], high_value=-5)
    with pytest.raises(OverlapError):
        await allocator.commit(b)
    with pytest.raises(OverlapError):
        await asyncio.wait_for(waiter, timeout=1)


# ─── Concurrency ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rent_waits_for_release(store):
    allocator = await _ready(store, block_size=1)
    value = await allocator.rent()

    waiter = asyncio.create_task(allocator.rent())
    await asyncio.sleep(0)
    assert not waiter.done()

    await allocator.release(value)
    assert await asyncio.wait_for(waiter, timeout=1) == value


@pytest.mark.asyncio
async def test_cancelled_rent_has_no_side_effect(store):
    allocator = await _ready(store, block_size=1)
    value = await allocator.rent()

    waiter = asyncio.create_task(allocator.rent())
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    await allocator.release(value)
    assert await allocator.rent() == value


@pytest.mark.asyncio
async def test_concurrent_renters_across_refills(store):
    allocator = await _ready(store, block_size=5)

    async def worker():
        value = await allocator.rent()
        await asyncio.sleep(0)
        await allocator.commit(value)
        return value

    ids = await asyncio.wait_for(asyncio.gather(*(worker() for _ in range(50))), timeout=5)

    assert sorted(ids) == list(range(1, 51))
    assert store.increments == 11


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_random_protocol_never_double_issues(store, seed):
    rng = random.Random(seed)
    allocator = await _ready(store, block_size=6)
    held: set[int] = set()
    committed: set[int] = set()

    for _ in range(300):
        action = rng.random()
        can_rent = (await allocator.snapshot()).pooled > 0
        if (action < 0.5 and can_rent) or not held:
            value = await allocator.rent()
            assert value not in held
            assert value not in committed
            held.add(value)
        elif action < 0.8:
            value = rng.choice(sorted(held))
            held.discard(value)
            await allocator.commit(value)
            committed.add(value)
        else:
            value = rng.choice(sorted(held))
            held.discard(value)
            await allocator.release(value)


@pytest.mark.asyncio
async def test_rent_cancelled_while_waiting_for_lock_requeues_id(store):
    allocator = await _ready(store, block_size=2)

    await allocator._lock.acquire()
    renter = asyncio.create_task(allocator.rent())
    for _ in range(3):
        await asyncio.sleep(0)
    assert allocator._pool.qsize() == 1

    renter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await renter
    allocator._lock.release()

    stats = await allocator.snapshot()
    assert stats.pooled == 2
    assert stats.free == 2
    assert sorted(await _rent_all(allocator, 2)) == [1, 2]


@pytest.mark.asyncio
async def test_commit_cancelled_during_refill_rolls_back(store):
    allocator = await _ready(store, block_size=2)
    a, b = await _rent_all(allocator, 2)
    await allocator.commit(a)

    store.gates["orders"] = asyncio.Event()
    committer = asyncio.create_task(allocator.commit(b))
    for _ in range(3):
        await asyncio.sleep(0)
    assert not committer.done()

    committer.cancel()
    with pytest.raises(asyncio.CancelledError):
        await committer

    stats = await allocator.snapshot()
    assert stats.committed_count == 1
    assert stats.rented == 1
    assert stats.committed == 1
    assert store.increments == 1

    del store.gates["orders"]
    await allocator.commit(b)
    assert (await allocator.snapshot()).lower_bound == 3
