"""Persisted hi-lo counter state for one allocator key."""

from dataclasses import dataclass

from idgen.domain.value_objects.enums import AnchorConvention

INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1


@dataclass(frozen=True)
class CounterRecord:
    key: str
    start_value: int
    high_value: int
    block_size: int
    # Fixed when the record is created; every allocator on the key must use it.
    anchor: AnchorConvention = AnchorConvention.CURRENT

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("Counter key must not be empty")
        if not INT64_MIN <= self.start_value <= INT64_MAX:
            raise ValueError(f"start_value out of int64 range: {self.start_value}")
        if not INT32_MIN <= self.high_value <= INT32_MAX:
            raise ValueError(f"high_value out of int32 range: {self.high_value}")
        if not INT32_MIN <= self.block_size <= INT32_MAX:
            raise ValueError(f"block_size out of int32 range: {self.block_size}")
