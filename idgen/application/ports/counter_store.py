"""Port interface for the shared hi-lo counter store."""

from abc import ABC, abstractmethod

from idgen.domain.entities.counter_record import CounterRecord


class CounterStore(ABC):
    @abstractmethod
    async def upsert_if_absent(self, record: CounterRecord) -> CounterRecord:
        """Insert *record* unless a record with the same key exists.

        Must be safe under concurrent callers: exactly one insert wins and
        every caller gets back the stored record.
        """
        ...

    @abstractmethod
    async def increment_and_fetch(self, key: str) -> CounterRecord:
        """Atomically increment high_value and return the record AFTER the increment.

        Must be linearizable per key. Raises StoreError if the key is unknown.
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> CounterRecord | None:
        """Read the record for *key* without modifying it."""
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreError if the store cannot be reached."""
        ...
