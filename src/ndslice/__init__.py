from ndslice.core import (
    AllocationFailed,
    BorrowConflict,
    Bounds,
    DType,
    IndexOutOfBounds,
    InvalidDimension,
    InvalidRange,
    Lease,
    NDBuffer,
    NDConfig,
    NDSlice,
    NDSliceError,
    NDSliceMut,
    View,
    dtypes,
)
from ndslice.core.shape import default_stride, offset, size
from ndslice.ops import map_view, matrix_product, zip_map

__version__ = "0.1.0"
