import operator
from typing import TYPE_CHECKING, Any, ClassVar, Iterator, Sequence, Tuple, Union

import numpy as np
import torch

from ndslice.core.errors import BorrowConflict, InvalidDimension
from ndslice.core.shape import check_bounds, iter_indices
from ndslice.core.view import Bounds, BoundsLike, View
from ndslice.ops import ElementwiseOps, inplace
from ndslice.utils.helpers import argfix

if TYPE_CHECKING:
    from ndslice.core.buffer import Lease, NDBuffer

IndexLike = Union[int, Sequence[int]]


def as_index(index: IndexLike) -> Tuple[int, ...]:
    # a bare integer addresses a 1-dimensional view
    if isinstance(index, (int, np.integer)):
        return (index,)
    return tuple(index)


def is_element_key(key) -> bool:
    if isinstance(key, (int, np.integer)):
        return True
    return isinstance(key, (tuple, list)) and all(
        isinstance(k, (int, np.integer)) for k in key
    )


def format_nested(view: "NDSlice") -> str:
    # 0-dimensional: the single value itself; otherwise a list of rows
    if view.ndim == 0:
        return repr(view.get(()))
    return "[" + ", ".join(format_nested(row) for row in view.rows()) + "]"


class NDSlice(ElementwiseOps):
    """A read-only view of elements in an NDBuffer.

    A view is a `View` descriptor (shape, strides, offset) plus the buffer it
    points into and the lease it was borrowed under. Shared views are plain
    values: pass them around, transform them, and read through them freely. Every
    transformation returns a new view over the same storage in O(1), and no
    element is ever copied.

    Attributes:
        buffer: The NDBuffer that owns the storage.
        view: Where this view's elements live in the storage.
        lease: The borrow this view (and everything derived from it) is valid under.
            It is returned on `release()`, on leaving a `with` block, or once
            the last view holding it is garbage collected.
    """

    __slots__ = "buffer", "view", "lease", "__weakref__"

    exclusive: ClassVar[bool] = False

    def __init__(self, buffer: "NDBuffer", view: View, lease: "Lease"):
        self.buffer = buffer
        self.view = view
        self.lease = lease
        lease.attach(self)

    def __repr__(self):
        if not self.lease.active:
            return f"<{type(self).__name__} {self.shape} released>"
        return format_nested(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    def release(self):
        """Ends the borrow for this view and every view derived from the same lease."""
        self.lease.release()

    def _derive(self, view: View) -> "NDSlice":
        return type(self)(self.buffer, view, self.lease)

    def _check_lease(self):
        if not self.lease.active:
            raise BorrowConflict(
                f"view {self.shape} used after its borrow of buffer {self.buffer.shape} was released"
            )

    # ---------- Property ----------

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.view.shape

    @property
    def strides(self) -> Tuple[int, ...]:
        return self.view.strides

    @property
    def offset(self) -> int:
        return self.view.offset

    @property
    def ndim(self) -> int:
        return self.view.ndim

    @property
    def size(self) -> int:
        return self.view.size

    @property
    def dtype(self):
        return self.buffer.dtype

    def dimension_count(self) -> int:
        return self.view.ndim

    def same_layout(self, other: "NDSlice") -> bool:
        """Whether both views address the same elements in the same arrangement."""
        return self.buffer is other.buffer and self.view == other.view

    def is_contiguous(self) -> bool:
        return self.view.is_contiguous()

    # ---------- Access ----------

    def get(self, index: IndexLike) -> Any:
        self._check_lease()
        return self.buffer.storage.item(self.view.checked_location(as_index(index)))

    def get_unchecked(self, index: IndexLike) -> Any:
        """Reads the element at `index` without bounds-checking.

        Precondition: `index` has one entry per dimension and
        0 <= index[d] < shape[d] for every d. Breaking it reads an unrelated
        element or fails in an unspecified way. Only call this with indices
        the caller has already validated, e.g. ones produced by `indices()`.
        With DEBUG >= 1 (or `debug_checks` in the buffer config) the
        precondition is asserted.
        """
        index = as_index(index)
        if self.buffer.config.debug_checks:
            self._check_lease()
            check_bounds(index, self.view.shape)
        return self.buffer.storage.item(self.view.location(index))

    def __getitem__(self, key):
        """
        * Tuple of ints (or one int for 1-D): the element, like `get`.
        * Otherwise numpy-style: each int extracts its dimension, each slice
        * (or Bounds) restricts it, and missing trailing dimensions are kept whole.
        """
        if is_element_key(key) and len(as_index(key)) == self.ndim:
            return self.get(key)

        key = key if isinstance(key, tuple) else (key,)
        if len(key) > self.ndim:
            raise InvalidDimension(
                f"too many indices ({len(key)}) for {self.ndim}-dimensional view"
            )
        key = key + (None,) * (self.ndim - len(key))

        bounds = []
        for k in key:
            if isinstance(k, (int, np.integer)):
                bounds.append(Bounds.all())
            elif k is None or isinstance(k, (slice, Bounds)):
                bounds.append(k)
            else:
                raise TypeError(f"unsupported index {k!r}")

        out = self.slice(bounds)
        # extract from the last dimension first so earlier dimensions keep their position
        for dimension in range(self.ndim - 1, -1, -1):
            if isinstance(key[dimension], (int, np.integer)):
                out = out.extract(dimension, key[dimension])
        return out

    # ---------- Transformations ----------

    def extract(self, dimension: int, index: int) -> "NDSlice":
        """Fixes `dimension` at `index`, giving an (N-1)-dimensional view."""
        self._check_lease()
        return self._derive(self.view.extract(dimension, index))

    def add_dimension(self, dimension: int, length: int) -> "NDSlice":
        """Inserts a broadcast dimension of `length` at position `dimension`.

        The new dimension has stride 0: every index along it addresses the
        same elements as the original view.
        """
        self._check_lease()
        return self._derive(self.view.add_dimension(dimension, length))

    def slice(self, bounds: Sequence[BoundsLike]) -> "NDSlice":
        """Restricts each dimension to `bounds[d]`, optionally stepping.

        Each entry is a `Bounds`, a Python `slice` (non-negative start/stop
        and a positive step), or None for the whole dimension.
        """
        self._check_lease()
        return self._derive(self.view.slice(bounds))

    def permute(self, *order) -> "NDSlice":
        self._check_lease()
        return self._derive(self.view.permute(argfix(*order)))

    def transpose(self) -> "NDSlice":
        """Reverses the dimensions: index [a, ..., z] becomes [z, ..., a]."""
        self._check_lease()
        return self._derive(self.view.transpose())

    # ---------- Iteration ----------

    def indices(self) -> Iterator[Tuple[int, ...]]:
        return iter_indices(self.shape)

    def values(self) -> Iterator[Any]:
        self._check_lease()
        storage, view = self.buffer.storage, self.view
        return (storage.item(view.location(index)) for index in self.indices())

    def __iter__(self):
        return self.values()

    def iter(self) -> Iterator[Tuple[Tuple[int, ...], Any]]:
        return zip(self.indices(), self.values())

    def rows(self) -> Iterator["NDSlice"]:
        """Iterates over the views formed by extracting each index along dimension 0."""
        if self.ndim == 0:
            raise InvalidDimension("a 0-dimensional view has no rows")
        return (self.extract(0, i) for i in range(self.shape[0]))

    def tolist(self):
        if self.ndim == 0:
            return self.get(())
        return [row.tolist() for row in self.rows()]

    def to_buffer(self) -> "NDBuffer":
        """Copies the elements into a fresh row-major buffer of the same element type."""
        from ndslice.core.buffer import NDBuffer

        return NDBuffer.from_values(self.shape, self.values(), dtype=self.dtype)

    def _check_writeable_alias(self, writeable: bool):
        if writeable and not self.exclusive:
            raise BorrowConflict(
                f"a shared view of buffer {self.buffer.shape} cannot give out writable storage"
            )

    def numpy(self, writeable: bool = False) -> np.ndarray:
        """
        * Numeric buffers: a read-only numpy array over the same storage.
        * `writeable=True` (exclusive views only) makes it writable. Writes through
        * it are only allowed while this view's borrow is live; nothing stops a
        * stale array from writing after `release()`.
        * Object buffers: a copy, since numpy cannot stride over Python objects.
        """
        self._check_lease()
        self._check_writeable_alias(writeable)
        storage = self.buffer.storage
        if not self.dtype.is_numeric:
            if writeable:
                raise TypeError(f"cannot alias {self.dtype} storage as a numpy array")
            out = np.empty(self.shape, dtype=object)
            for index, value in self.iter():
                out[index] = value
            return out
        if self.size == 0:
            return np.empty(self.shape, dtype=storage.dtype)

        itemsize = storage.itemsize
        out = np.ndarray(
            self.shape,
            dtype=storage.dtype,
            buffer=storage,
            offset=self.offset * itemsize,
            strides=tuple(s * itemsize for s in self.strides),
        )
        out.flags.writeable = writeable
        return out

    def torch(self, writeable: bool = False) -> torch.Tensor:
        """A tensor with this view's shape and values.

        torch has no read-only tensors, so by default this is a copy. With
        `writeable=True` (exclusive views only) it is a `torch.as_strided`
        alias of the storage, under the same contract as `numpy(writeable=True)`.
        """
        self._check_lease()
        self._check_writeable_alias(writeable)
        if not self.dtype.is_numeric:
            raise TypeError(f"cannot share {self.dtype} storage with torch")
        storage = torch.from_numpy(self.buffer.storage)
        if self.size == 0:
            return storage.new_empty(self.shape)
        out = torch.as_strided(storage, self.shape, self.strides, self.offset)
        return out if writeable else out.clone()

    # ---------- Comparison ----------

    def __eq__(self, other):
        # same shape and all corresponding values equal
        if not isinstance(other, ElementwiseOps):
            return NotImplemented
        return self.shape == other.shape and all(
            a == b for a, b in zip(self.values(), other.values())
        )

    __hash__ = None


class NDSliceMut(NDSlice):
    """A read-write view of elements in an NDBuffer.

    Only one exclusive borrow of a buffer can be live, and while it is no
    shared borrow can be taken. Views derived from an exclusive view
    (`extract`, `slice`, `permute`, ...) share its lease and stay writable.

    `add_dimension` is allowed with any length. The new dimension has stride
    0, so writing through any index along it changes the element seen at
    every other index along it too.
    """

    __slots__ = ()

    exclusive: ClassVar[bool] = True

    __iadd__ = inplace(operator.add)
    __isub__ = inplace(operator.sub)
    __imul__ = inplace(operator.mul)
    __itruediv__ = inplace(operator.truediv)
    __ifloordiv__ = inplace(operator.floordiv)
    __imod__ = inplace(operator.mod)
    __iand__ = inplace(operator.and_)
    __ior__ = inplace(operator.or_)
    __ixor__ = inplace(operator.xor)
    __ilshift__ = inplace(operator.lshift)
    __irshift__ = inplace(operator.rshift)

    def as_shared_view(self) -> NDSlice:
        """Reborrows read-only under the same exclusive lease."""
        self._check_lease()
        return NDSlice(self.buffer, self.view, self.lease)

    def set(self, index: IndexLike, value: Any):
        self._check_lease()
        self.buffer.storage[self.view.checked_location(as_index(index))] = value

    def set_unchecked(self, index: IndexLike, value: Any):
        """Writes without bounds-checking. Same precondition as `get_unchecked`."""
        index = as_index(index)
        if self.buffer.config.debug_checks:
            self._check_lease()
            check_bounds(index, self.view.shape)
        self.buffer.storage[self.view.location(index)] = value

    def __setitem__(self, key, value):
        if is_element_key(key) and len(as_index(key)) == self.ndim:
            self.set(key, value)
            return
        target = self[key]
        if isinstance(value, ElementwiseOps):
            target.assign(value)
        else:
            target.fill(value)

    def fill(self, value: Any):
        self._check_lease()
        storage, view = self.buffer.storage, self.view
        for index in self.indices():
            storage[view.location(index)] = value

    def assign(self, other: ElementwiseOps):
        """Writes the values of a same-shaped view or buffer into this view."""
        self._check_lease()
        if self.shape != other.shape:
            raise InvalidDimension(
                f"Cannot assign {other.shape} values to a view of {self.shape}"
            )
        # read everything first in case `other` overlaps this view
        values = list(other.values())
        storage, view = self.buffer.storage, self.view
        for index, value in zip(self.indices(), values):
            storage[view.location(index)] = value

