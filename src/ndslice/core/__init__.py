from ndslice.core.buffer import Lease, NDBuffer
from ndslice.core.config import NDConfig
from ndslice.core.dtype import DType, dtypes
from ndslice.core.errors import (
    AllocationFailed,
    BorrowConflict,
    IndexOutOfBounds,
    InvalidDimension,
    InvalidRange,
    NDSliceError,
)
from ndslice.core.slice import NDSlice, NDSliceMut
from ndslice.core.view import Bounds, View
