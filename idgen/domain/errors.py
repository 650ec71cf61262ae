"""Error taxonomy for id allocation."""


class IdGeneratorError(Exception):
    """Base class for all id generator failures."""


class StoreError(IdGeneratorError):
    """The counter store could not be reached or the transaction failed."""


class OverlapError(IdGeneratorError):
    """A fetched counter record went backwards.

    Signals record corruption or two independently configured allocators
    sharing a key. The allocator is unusable for that key afterwards.
    """


class RangeError(IdGeneratorError):
    """The id does not belong to the current block."""


class StateError(IdGeneratorError):
    """The id (or the allocator) is not in the state the operation requires."""
