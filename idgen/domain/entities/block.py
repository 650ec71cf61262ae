"""Contiguous id ranges owned by one allocator instance."""

from __future__ import annotations

from dataclasses import dataclass

from idgen.domain.entities.counter_record import CounterRecord
from idgen.domain.value_objects.enums import AnchorConvention


def block_index(high_value: int, anchor: AnchorConvention) -> int:
    """Position of the block a given high value refers to."""
    return high_value + anchor.offset


@dataclass(frozen=True)
class Block:
    lower_bound: int
    size: int

    @classmethod
    def from_record(cls, record: CounterRecord, anchor: AnchorConvention) -> Block:
        lower = record.start_value + block_index(record.high_value, anchor) * record.block_size
        return cls(lower_bound=lower, size=record.block_size)

    @property
    def upper_bound(self) -> int:
        """Inclusive upper bound."""
        return self.lower_bound + self.size - 1

    def __contains__(self, value: int) -> bool:
        return self.lower_bound <= value <= self.upper_bound

    def ids(self) -> range:
        return range(self.lower_bound, self.lower_bound + self.size)
