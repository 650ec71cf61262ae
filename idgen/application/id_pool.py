"""Unbounded pool of ids ready to be rented."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable

# Marks a closed pool; whoever takes it puts it back for the next consumer.
_CLOSED = None


class LocalIdPool:
    """Producer/consumer pool backed by an unbounded asyncio.Queue.

    Every queued id is delivered to exactly one consumer. A consumer
    cancelled while waiting in get() takes nothing out of the pool.
    Once closed, every pending and future get() raises the close error.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[int | None] = asyncio.Queue()
        self._error: BaseException | None = None

    def put(self, value: int) -> None:
        self._queue.put_nowait(value)

    def extend(self, values: Iterable[int]) -> None:
        for value in values:
            self._queue.put_nowait(value)

    def close(self, error: BaseException) -> None:
        """Fail all current and future consumers with *error*."""
        if self._error is not None:
            return
        self._error = error
        self._queue.put_nowait(_CLOSED)

    async def get(self) -> int:
        if self._error is not None:
            raise self._error
        value = await self._queue.get()
        if value is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise self._error
        return value

    def qsize(self) -> int:
        return self._queue.qsize() - (1 if self._error is not None else 0)
