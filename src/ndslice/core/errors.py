"""
Error kinds raised by the view engine.

Every checked entry point raises to its immediate caller; nothing is clamped
or wrapped around. Each kind also derives from the closest builtin exception
so generic ``except IndexError`` / ``except ValueError`` handlers keep working.
"""

from typing import Optional


class NDSliceError(Exception):
    """Base class for all ndslice errors."""


class IndexOutOfBounds(NDSliceError, IndexError):
    def __init__(
        self,
        dimension: int,
        index: int,
        bound: int,
        msg: Optional[str] = None,
    ):
        self.dimension = dimension
        self.index = index
        self.bound = bound
        super().__init__(
            msg
            or f"index {index} out of bounds for dimension {dimension} of len {bound}"
        )


class InvalidDimension(NDSliceError, ValueError):
    pass


class InvalidRange(NDSliceError, ValueError):
    pass


class AllocationFailed(NDSliceError, MemoryError):
    pass


class BorrowConflict(NDSliceError, RuntimeError):
    """A lease was requested (or used) in a way that breaks the sharing rules."""
