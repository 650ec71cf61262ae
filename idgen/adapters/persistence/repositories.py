"""SQLAlchemy repository implementations."""

from __future__ import annotations

import logging

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from idgen.adapters.persistence.models import CounterRecordModel
from idgen.application.ports.counter_store import CounterStore
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import StoreError
from idgen.domain.value_objects.enums import AnchorConvention

logger = logging.getLogger(__name__)

# ─── Mappers ─────────────────────────────────────────────────────────


def _counter_to_domain(m: CounterRecordModel) -> CounterRecord:
    return CounterRecord(
        key=m.key,
        start_value=m.start_value,
        high_value=m.high_value,
        block_size=m.block_size,
        anchor=AnchorConvention(m.anchor),
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlCounterStore(CounterStore):
    """Counter store on a relational database.

    Each call runs in its own short transaction, so a fetched block is
    durable as soon as increment_and_fetch returns.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert_if_absent(self, record: CounterRecord) -> CounterRecord:
        try:
            async with self._session_factory() as s, s.begin():
                result = await s.execute(
                    select(CounterRecordModel).where(CounterRecordModel.key == record.key)
                )
                m = result.scalar_one_or_none()
                if m is not None:
                    return _counter_to_domain(m)
                s.add(
                    CounterRecordModel(
                        key=record.key,
                        start_value=record.start_value,
                        high_value=record.high_value,
                        block_size=record.block_size,
                        anchor=record.anchor.value,
                    )
                )
            logger.info("Created counter record %r (block size %d)", record.key, record.block_size)
            return record
        except IntegrityError:
            # Lost the insert race; the winner's row is authoritative.
            logger.info("Counter record %r was created concurrently", record.key)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to create counter {record.key!r}: {e}") from e

        stored = await self.get(record.key)
        if stored is None:
            raise StoreError(f"Counter {record.key!r} vanished after a concurrent insert")
        return stored

    async def increment_and_fetch(self, key: str) -> CounterRecord:
        try:
            async with self._session_factory() as s, s.begin():
                result = await s.execute(
                    update(CounterRecordModel)
                    .where(CounterRecordModel.key == key)
                    .values(high_value=CounterRecordModel.high_value + 1)
                    .returning(
                        CounterRecordModel.key,
                        CounterRecordModel.start_value,
                        CounterRecordModel.high_value,
                        CounterRecordModel.block_size,
                        CounterRecordModel.anchor,
                    )
                    .execution_options(synchronize_session=False)
                )
                row = result.one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to increment counter {key!r}: {e}") from e

        if row is None:
            raise StoreError(f"No counter record for key {key!r}")
        stored_key, start_value, high_value, block_size, anchor = row
        return CounterRecord(
            key=stored_key,
            start_value=start_value,
            high_value=high_value,
            block_size=block_size,
            anchor=AnchorConvention(anchor),
        )

    async def get(self, key: str) -> CounterRecord | None:
        try:
            async with self._session_factory() as s:
                result = await s.execute(
                    select(CounterRecordModel).where(CounterRecordModel.key == key)
                )
                m = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read counter {key!r}: {e}") from e
        return _counter_to_domain(m) if m else None

    async def ping(self) -> None:
        try:
            async with self._session_factory() as s:
                await s.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreError(f"Counter store unreachable: {e}") from e
