import copy
import weakref
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, Tuple

import numpy as np
import torch

from ndslice.core.config import NDConfig
from ndslice.core.dtype import DType
from ndslice.core.errors import AllocationFailed, BorrowConflict, InvalidDimension
from ndslice.core.shape import iter_indices, size
from ndslice.core.slice import NDSlice, NDSliceMut, as_index, format_nested, is_element_key
from ndslice.core.view import View
from ndslice.ops import ElementwiseOps
from ndslice.utils import validate_config
from ndslice.utils.helpers import all_same
from ndslice.utils.logging import default_logger


class Lease:
    """
    * One borrow of an NDBuffer: either shared (many may coexist) or exclusive.
    * Every view derived from a borrowed view holds the same lease, so releasing
    * it ends the borrow for all of them at once.
    * The lease is also returned when the last view holding it is collected.
    """

    __slots__ = "buffer", "exclusive", "active", "views"

    def __init__(self, buffer: "NDBuffer", exclusive: bool):
        self.buffer = buffer
        self.exclusive = exclusive
        self.active = True
        self.views = 0

    def __repr__(self):
        kind = "exclusive" if self.exclusive else "shared"
        state = "active" if self.active else "released"
        return f"<Lease {kind} {state} on buffer {self.buffer.shape}>"

    def attach(self, view: NDSlice):
        self.views += 1
        finalizer = weakref.finalize(view, self._detach)
        finalizer.atexit = False

    def _detach(self):
        self.views -= 1
        if self.views == 0:
            self.release()

    def release(self):
        if not self.active:
            return
        self.active = False
        self.buffer._return_lease(self)


def _get_shape(x) -> Tuple[int, ...]:
    if not isinstance(x, (list, tuple)):
        return ()
    subs = [_get_shape(xi) for xi in x]
    if subs and not all_same(subs):
        raise InvalidDimension(f"inhomogeneous shape from {x}")
    return (len(subs),) + (subs[0] if subs else ())


def _flatten(x) -> Iterator[Any]:
    if isinstance(x, (list, tuple)):
        for xi in x:
            yield from _flatten(xi)
    else:
        yield x


class NDBuffer(ElementwiseOps):
    """
    * Owns a contiguous row-major run of size(shape) elements.
    * The only place storage is allocated and freed. Views over it are
    * borrowed through `as_shared_view` / `as_exclusive_view`.
    """

    __slots__ = "view", "storage", "config", "_shared", "_exclusive"

    def __init__(self, shape: Sequence[int], storage: np.ndarray, config: NDConfig):
        self.view = View.create(shape)
        default_logger.check_and_raise(
            f"storage of shape {storage.shape} cannot back a buffer of {self.view.shape}",
            InvalidDimension,
            storage.ndim == 1 and storage.shape[0] == self.view.size,
        )
        self.storage: Optional[np.ndarray] = storage
        self.config = config
        self._shared = 0
        self._exclusive: Optional[Lease] = None

    def __repr__(self):
        if self.storage is None:
            return f"<NDBuffer {self.shape} released>"
        if self._exclusive is not None:
            return f"<NDBuffer {self.shape} exclusively borrowed>"
        return format_nested(self._as_unleased_view())

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.release()

    # ---------- Construction ----------

    @staticmethod
    def _config(config: Optional[NDConfig], **kwargs) -> NDConfig:
        if config is not None:
            return validate_config(NDConfig, **{**dict(config), **kwargs}) if kwargs else config
        return validate_config(NDConfig, **kwargs)

    @staticmethod
    def _allocate(shape: Tuple[int, ...], config: NDConfig) -> np.ndarray:
        default_logger.check_and_raise(
            f"shape {shape} must be a sequence of non-negative integers",
            InvalidDimension,
            all(isinstance(n, (int, np.integer)) and n >= 0 for n in shape),
        )
        n = size(shape)
        default_logger.check_and_raise(
            f"cannot allocate {n} elements: limit is {config.max_elements}",
            AllocationFailed,
            config.max_elements is None or n <= config.max_elements,
        )
        try:
            storage = np.empty(n, dtype=config.dtype.numpy_dtype)
        except (MemoryError, OverflowError, ValueError) as e:
            default_logger.error(f"allocation of {n} x {config.dtype} failed: {e}")
            raise AllocationFailed(f"cannot allocate {n} elements of {config.dtype}") from e

        default_logger.debug(f"allocated {n} x {config.dtype} for shape {shape}")
        return storage

    @staticmethod
    def allocate_with(
        shape: Sequence[int],
        init: Callable[[Tuple[int, ...]], Any],
        config: Optional[NDConfig] = None,
        **kwargs,
    ) -> "NDBuffer":
        """Creates a buffer, initializing each element by calling `init(index)`.

        Indices are visited in row-major order, so `init` sees them in the same
        order the elements are laid out in storage.
        """
        shape = tuple(shape)
        config = NDBuffer._config(config, **kwargs)
        storage = NDBuffer._allocate(shape, config)
        for flat, index in enumerate(iter_indices(shape)):
            storage[flat] = init(index)
        return NDBuffer(shape, storage, config)

    @staticmethod
    def allocate_fill(
        shape: Sequence[int], value: Any, config: Optional[NDConfig] = None, **kwargs
    ) -> "NDBuffer":
        # each element gets its own copy, so mutable values don't alias
        return NDBuffer.allocate_with(
            shape, lambda _: copy.copy(value), config=config, **kwargs
        )

    @staticmethod
    def allocate_default(
        shape: Sequence[int],
        default_factory: Optional[Callable[[], Any]] = None,
        config: Optional[NDConfig] = None,
        **kwargs,
    ) -> "NDBuffer":
        """Fills with `default_factory()`, or the element type's zero value.

        Object buffers default to None when no factory is given.
        """
        config = NDBuffer._config(config, **kwargs)
        if default_factory is None:
            dtype = config.dtype
            default_factory = dtype.numpy_dtype.type if dtype.is_numeric else lambda: None
        return NDBuffer.allocate_with(shape, lambda _: default_factory(), config=config)

    @staticmethod
    def from_values(
        shape: Sequence[int],
        values: Iterable[Any],
        config: Optional[NDConfig] = None,
        **kwargs,
    ) -> "NDBuffer":
        """Creates a buffer from values given in row-major order."""
        shape = tuple(shape)
        config = NDBuffer._config(config, **kwargs)
        storage = NDBuffer._allocate(shape, config)
        n, count = storage.shape[0], 0
        for value in values:
            if count == n:
                raise InvalidDimension(f"more than {n} values given for shape {shape}")
            storage[count] = value
            count += 1
        default_logger.check_and_raise(
            f"{count} values given for shape {shape}, expected {n}",
            InvalidDimension,
            count == n,
        )
        return NDBuffer(shape, storage, config)

    @staticmethod
    def from_nested(value: Any, config: Optional[NDConfig] = None, **kwargs) -> "NDBuffer":
        """Builds a buffer from a literal.

        A scalar gives a 0-dimensional buffer, a flat list a 1-dimensional one,
        and rectangular nested lists (or tuples) an N-dimensional one:

            NDBuffer.from_nested([
              [1, 2, 3],
              [4, 5, 6],
            ])
        """
        return NDBuffer.from_values(
            _get_shape(value), _flatten(value), config=config, **kwargs
        )

    @staticmethod
    def from_numpy(array: np.ndarray, config: Optional[NDConfig] = None, **kwargs) -> "NDBuffer":
        # copy into fresh row-major storage
        array = np.asarray(array)
        if config is None:
            kwargs.setdefault("dtype", array.dtype)
        return NDBuffer.from_values(
            array.shape, array.reshape(-1).tolist(), config=config, **kwargs
        )

    @staticmethod
    def from_torch(tensor: torch.Tensor, config: Optional[NDConfig] = None, **kwargs) -> "NDBuffer":
        # remove the autograd graph and bring it to host memory first
        return NDBuffer.from_numpy(
            tensor.detach().cpu().contiguous().numpy(), config=config, **kwargs
        )

    def clone(self) -> "NDBuffer":
        self._check_readable()
        return NDBuffer(self.shape, self.storage.copy(), self.config)

    # ---------- Property ----------

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.view.shape

    @property
    def strides(self) -> Tuple[int, ...]:
        return self.view.strides

    @property
    def ndim(self) -> int:
        return self.view.ndim

    @property
    def size(self) -> int:
        return self.view.size

    @property
    def dtype(self) -> DType:
        return self.config.dtype

    @property
    def released(self) -> bool:
        return self.storage is None

    def dimension_count(self) -> int:
        return self.view.ndim

    # ---------- Borrowing ----------

    def _check_alive(self):
        if self.storage is None:
            raise BorrowConflict(f"buffer {self.shape} has been released")

    def _check_readable(self):
        self._check_alive()
        if self._exclusive is not None:
            raise BorrowConflict(
                f"buffer {self.shape} is exclusively borrowed and cannot be read directly"
            )

    def _check_writable(self):
        self._check_alive()
        if self._exclusive is not None or self._shared:
            raise BorrowConflict(
                f"buffer {self.shape} has outstanding borrows and cannot be written directly"
            )

    def has_borrows(self) -> bool:
        return self._exclusive is not None or self._shared > 0

    def as_shared_view(self) -> NDSlice:
        """Borrows the whole buffer read-only. Any number may be live at once."""
        self._check_alive()
        if self._exclusive is not None:
            default_logger.warning(
                f"shared borrow of {self.shape} refused: exclusive borrow outstanding"
            )
            raise BorrowConflict(
                f"cannot borrow buffer {self.shape} as shared: it is exclusively borrowed"
            )
        self._shared += 1
        default_logger.debug(f"shared borrow of {self.shape} ({self._shared} live)")
        return NDSlice(self, self.view, Lease(self, exclusive=False))

    def as_exclusive_view(self) -> NDSliceMut:
        """Borrows the whole buffer read-write.

        Only allowed while no other borrow, shared or exclusive, is live.
        """
        self._check_alive()
        if self._exclusive is not None or self._shared:
            default_logger.warning(
                f"exclusive borrow of {self.shape} refused: "
                f"{'exclusive' if self._exclusive is not None else self._shared} borrow(s) outstanding"
            )
            raise BorrowConflict(
                f"cannot borrow buffer {self.shape} as exclusive: other borrows are live"
            )
        self._exclusive = Lease(self, exclusive=True)
        default_logger.debug(f"exclusive borrow of {self.shape}")
        return NDSliceMut(self, self.view, self._exclusive)

    def _as_unleased_view(self) -> NDSlice:
        # internal read path for the buffer's own accessors; never handed out
        self._check_readable()
        return NDSlice(self, self.view, _OWNER_LEASE)

    def _return_lease(self, lease: Lease):
        if lease.exclusive:
            default_logger.check_and_raise(
                f"exclusive lease returned to buffer {self.shape} that did not issue it",
                BorrowConflict,
                self._exclusive is lease,
            )
            self._exclusive = None
            default_logger.debug(f"exclusive borrow of {self.shape} returned")
        else:
            default_logger.check_and_raise(
                f"shared lease returned to buffer {self.shape} with no shared borrows",
                BorrowConflict,
                self._shared > 0,
            )
            self._shared -= 1
            default_logger.debug(f"shared borrow of {self.shape} returned ({self._shared} live)")

    def release(self):
        """Frees the storage. Fails while any borrow is outstanding."""
        if self.storage is None:
            return
        if self.has_borrows():
            raise BorrowConflict(
                f"cannot release buffer {self.shape} while borrows are outstanding"
            )
        self.storage = None
        default_logger.debug(f"released buffer {self.shape}")

    # ---------- Access ----------

    def get(self, index) -> Any:
        self._check_readable()
        return self.storage.item(self.view.checked_location(as_index(index)))

    def get_unchecked(self, index) -> Any:
        """Equivalent to NDSlice.get_unchecked; same precondition."""
        return self._as_unleased_view().get_unchecked(index)

    def set(self, index, value: Any):
        self._check_writable()
        self.storage[self.view.checked_location(as_index(index))] = value

    def __getitem__(self, index):
        # element access only; borrow a view to slice
        return self.get(index)

    def __setitem__(self, key, value):
        self._check_writable()
        if is_element_key(key) and len(as_index(key)) == self.ndim:
            self.set(key, value)
            return
        # a temporary borrow for slice assignment
        with self.as_exclusive_view() as view:
            view[key] = value

    def indices(self) -> Iterator[Tuple[int, ...]]:
        return iter_indices(self.shape)

    def values(self) -> Iterator[Any]:
        self._check_readable()
        return iter(self.storage.tolist())

    def __iter__(self):
        return self.values()

    def iter(self) -> Iterator[Tuple[Tuple[int, ...], Any]]:
        return zip(self.indices(), self.values())

    def tolist(self):
        return self._as_unleased_view().tolist()

    def numpy(self) -> np.ndarray:
        self._check_readable()
        return self.storage.reshape(self.shape).copy()

    def torch(self) -> torch.Tensor:
        return torch.from_numpy(self.numpy())

    def __eq__(self, other):
        if not isinstance(other, ElementwiseOps):
            return NotImplemented
        return self._as_unleased_view() == other

    __hash__ = None


class _OwnerLease:
    """Stands in for a lease when the buffer reads through its own default view."""

    __slots__ = ()
    exclusive = False
    active = True

    def attach(self, view):
        pass

    def release(self):
        pass


_OWNER_LEASE = _OwnerLease()
