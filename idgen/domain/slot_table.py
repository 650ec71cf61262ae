"""Lifecycle state of every id in the current block."""

from __future__ import annotations

from idgen.domain.entities.block import Block
from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.errors import RangeError, StateError
from idgen.domain.value_objects.enums import AnchorConvention, IdState


class SlotTable:
    """Maps each id of the current block to an IdState.

    The table is owned by a single allocator and must only be touched while
    the allocator's lock is held.
    """

    def __init__(self, anchor: AnchorConvention):
        self._anchor = anchor
        self._block: Block | None = None
        self._states: list[IdState] = []

    @property
    def block(self) -> Block | None:
        return self._block

    def reset(self, record: CounterRecord) -> Block:
        """Switch to the block described by *record*, with every slot Free."""
        block = Block.from_record(record, self._anchor)
        self._block = block
        self._states = [IdState.FREE] * block.size
        return block

    def index_of(self, value: int) -> int:
        """Slot index for *value*.

        Raises:
            RangeError: if *value* is outside the current block.
        """
        if self._block is None or value not in self._block:
            raise RangeError(f"Id {value} does not belong to the current block")
        return value - self._block.lower_bound

    def ensure_rented(self, value: int) -> int:
        """Slot index for *value*, which must currently be Rented.

        Raises:
            RangeError: if *value* is outside the current block.
            StateError: if the slot is Free or Committed.
        """
        index = self.index_of(value)
        state = self._states[index]
        if state is not IdState.RENTED:
            raise StateError(f"Id {value} is {state.name.lower()}, expected rented")
        return index

    def mark(self, index: int, state: IdState) -> None:
        self._states[index] = state

    def state_of(self, value: int) -> IdState:
        return self._states[self.index_of(value)]

    def count(self, state: IdState) -> int:
        return sum(1 for s in self._states if s is state)
