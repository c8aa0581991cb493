from dataclasses import dataclass, replace
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ndslice.core.errors import IndexOutOfBounds, InvalidDimension, InvalidRange
from ndslice.core.shape import (
    check_bounds,
    default_stride,
    insert_at,
    offset,
    remove_at,
    reversed_order,
    size,
)


@dataclass(frozen=True)
class Bounds:
    """
    * A range along one dimension plus a number of indices to skip in between.
    * "1.., every 2nd element" is Bounds.all().start_at(1).step_by(2)
    * None means "from 0" for start and "to the end" for end.
    """

    start: Optional[int] = None
    end: Optional[int] = None
    step: int = 1

    @staticmethod
    def all() -> "Bounds":
        return Bounds()

    def start_at(self, start: int) -> "Bounds":
        return replace(self, start=start)

    def to(self, end: int) -> "Bounds":
        return replace(self, end=end)

    def to_inclusive(self, end: int) -> "Bounds":
        return self.to(end + 1)

    def step_by(self, step: int) -> "Bounds":
        return replace(self, step=step)

    @staticmethod
    def from_slice(s: slice) -> "Bounds":
        return Bounds(s.start, s.stop, 1 if s.step is None else s.step)

    def resolve(self, dimension_len: int) -> Tuple[int, int, int]:
        start = 0 if self.start is None else self.start
        end = dimension_len if self.end is None else self.end
        if not 0 <= start <= end <= dimension_len:
            raise InvalidRange(
                f"range {start}..{end} out of bounds for dimension of len {dimension_len}"
            )
        if self.step < 1:
            raise InvalidRange(f"step must be at least 1, got {self.step}")
        return start, end, self.step


BoundsLike = Union[Bounds, slice, None]


@dataclass(frozen=True)
class View:
    """
    * Where a view's elements live: element (i0, ..., iN-1) is stored at
    * offset + sum(i_d * strides[d]) in the flat backing storage.
    * Every transformation returns a new View and never touches the storage.
    """

    shape: Tuple[int, ...]
    strides: Tuple[int, ...]
    offset: int = 0

    def __post_init__(self):
        if len(self.shape) != len(self.strides):
            raise InvalidDimension(
                f"shape {self.shape} and strides {self.strides} differ in length"
            )

    @staticmethod
    def create(shape: Sequence[int], offset: int = 0) -> "View":
        shape = tuple(shape)
        return View(shape, default_stride(shape), offset)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return size(self.shape)

    def is_contiguous(self) -> bool:
        return self.strides == default_stride(self.shape)

    def location(self, index: Sequence[int]) -> int:
        return self.offset + offset(index, self.strides)

    def checked_location(self, index: Sequence[int]) -> int:
        check_bounds(index, self.shape)
        return self.offset + offset(index, self.strides)

    def _check_dimension(self, dimension: int, ndim: int):
        if not 0 <= dimension < ndim:
            raise InvalidDimension(
                f"dimension {dimension} out of range for {ndim}-dimensional view"
            )

    def extract(self, dimension: int, index: int) -> "View":
        self._check_dimension(dimension, self.ndim)
        dimension_len = self.shape[dimension]
        if not 0 <= index < dimension_len:
            raise IndexOutOfBounds(
                dimension,
                index,
                dimension_len,
                f"index {index} out of bounds for dimension of len {dimension_len}",
            )

        return View(
            remove_at(self.shape, dimension),
            remove_at(self.strides, dimension),
            self.offset + index * self.strides[dimension],
        )

    def add_dimension(self, dimension: int, length: int) -> "View":
        # any index along the new dimension addresses the same elements
        self._check_dimension(dimension, self.ndim + 1)
        if length < 0:
            raise InvalidRange(f"dimension length must be non-negative, got {length}")

        return View(
            insert_at(self.shape, dimension, length),
            insert_at(self.strides, dimension, 0),
            self.offset,
        )

    def slice(self, bounds: Sequence[BoundsLike]) -> "View":
        if len(bounds) != self.ndim:
            raise InvalidDimension(
                f"slice bounds {tuple(bounds)} do not match {self.ndim}-dimensional shape {self.shape}"
            )

        starts, new_shape, new_strides = [], [], []
        for dimension_bounds, dimension_len, dimension_stride in zip(
            bounds, self.shape, self.strides
        ):
            if dimension_bounds is None:
                dimension_bounds = Bounds.all()
            elif isinstance(dimension_bounds, slice):
                dimension_bounds = Bounds.from_slice(dimension_bounds)

            start, end, step = dimension_bounds.resolve(dimension_len)
            starts.append(start)
            # ceil((end - start) / step)
            new_shape.append(-(-(end - start) // step))
            new_strides.append(dimension_stride * step)

        return View(
            tuple(new_shape),
            tuple(new_strides),
            self.offset + offset(starts, self.strides),
        )

    def permute(self, order: Sequence[int]) -> "View":
        order = tuple(order)
        if (
            len(order) != self.ndim
            or not all(
                isinstance(d, (int, np.integer)) and not isinstance(d, bool) for d in order
            )
            or sorted(order) != list(range(self.ndim))
        ):
            raise InvalidDimension(
                f"Invalid permutation {order} for shape {self.shape}"
            )

        return View(
            tuple(self.shape[d] for d in order),
            tuple(self.strides[d] for d in order),
            self.offset,
        )

    def transpose(self) -> "View":
        return self.permute(reversed_order(self.ndim))
