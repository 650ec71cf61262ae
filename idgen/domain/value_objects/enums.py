"""Domain enums — pure Python, no external dependencies."""

from enum import Enum, IntEnum


class IdState(IntEnum):
    FREE = 0
    RENTED = 1
    COMMITTED = 2


class AnchorConvention(str, Enum):
    """Which increment result a block's lower bound is anchored on.

    CURRENT:  lower = start + high * block_size
    PREVIOUS: lower = start + (high - 1) * block_size
    """

    CURRENT = "current"
    PREVIOUS = "previous"

    @property
    def offset(self) -> int:
        return 0 if self is AnchorConvention.CURRENT else -1

    @property
    def initial_high_value(self) -> int:
        """Sentinel high value that makes the first fetch land on block index 0."""
        return -1 - self.offset


class RollbackTarget(str, Enum):
    """State restored on the triggering id when a block refill fails."""

    RENTED = "rented"
    FREE = "free"
