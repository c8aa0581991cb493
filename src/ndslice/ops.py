"""
Elementwise operations over views and buffers.

Everything here reads through `shape` / `values()` (or `get`) and writes into a
freshly allocated NDBuffer, except the in-place operators of exclusive views,
which write back through the view itself.
"""

import operator
from typing import Any, Callable, List, Tuple

import numpy as np

from ndslice.core.errors import InvalidDimension
from ndslice.core.shape import iter_indices
from ndslice.utils.logging import default_logger


def _collect(shape: Tuple[int, ...], results: List[Any], *operands, **kwargs):
    from ndslice.core.buffer import NDBuffer

    if "dtype" not in kwargs and "config" not in kwargs:
        if operands and all(o.dtype.is_numeric for o in operands):
            # numeric in, numeric out: let numpy pick the narrowest common type
            inferred = np.asarray(results) if results else None
            if inferred is None:
                kwargs["dtype"] = operands[0].dtype
            elif inferred.ndim == 1 and inferred.dtype.kind in "biufc":
                kwargs["dtype"] = inferred.dtype
    return NDBuffer.from_values(shape, results, **kwargs)


def map_view(x: "ElementwiseOps", f: Callable[[Any], Any], **kwargs):
    """Applies `f` to every element, producing a new buffer of the same shape."""
    return _collect(x.shape, [f(value) for value in x.values()], x, **kwargs)


def zip_map(
    x: "ElementwiseOps", y: "ElementwiseOps", f: Callable[[Any, Any], Any], **kwargs
):
    """Combines corresponding elements of two same-shaped operands into a new buffer."""
    default_logger.check_and_raise(
        f"Cannot operate on views with {x.shape} and {y.shape}",
        InvalidDimension,
        x.shape == y.shape,
    )
    results = [f(a, b) for a, b in zip(x.values(), y.values())]
    return _collect(x.shape, results, x, y, **kwargs)


def matrix_product(x: "ElementwiseOps", y: "ElementwiseOps", **kwargs):
    """
    * (l0, inner) x (inner, l1) -> (l0, l1)
    * Element [i, j] is the sum over k of x[i, k] * y[k, j].
    """
    default_logger.check_and_raise(
        f"matrix product needs 2-dimensional operands, got {x.shape} and {y.shape}",
        InvalidDimension,
        len(x.shape) == 2 and len(y.shape) == 2,
    )
    (length0, inner_length1), (inner_length2, length1) = x.shape, y.shape
    default_logger.check_and_raise(
        f"Cannot multiply matrices of {x.shape} and {y.shape}",
        InvalidDimension,
        inner_length1 == inner_length2,
    )
    results = [
        sum(x.get((i, k)) * y.get((k, j)) for k in range(inner_length1))
        for i, j in iter_indices((length0, length1))
    ]
    return _collect((length0, length1), results, x, y, **kwargs)


def _binary(op: Callable[[Any, Any], Any], reflected: bool = False):
    def method(self, other):
        if isinstance(other, ElementwiseOps):
            if reflected:
                return zip_map(other, self, op)
            return zip_map(self, other, op)
        if reflected:
            return map_view(self, lambda a: op(other, a))
        return map_view(self, lambda a: op(a, other))

    return method


def _unary(op: Callable[[Any], Any]):
    def method(self):
        return map_view(self, op)

    return method


def inplace(op: Callable[[Any, Any], Any]):
    """Builds an in-place operator that writes back through an exclusive view.

    Along a broadcast (stride 0) dimension every index is the same element,
    so it is updated once per index.
    """

    def method(self, other):
        self._check_lease()
        if isinstance(other, ElementwiseOps):
            default_logger.check_and_raise(
                f"Cannot operate on views with {self.shape} and {other.shape}",
                InvalidDimension,
                self.shape == other.shape,
            )
            rhs = list(other.values())
        else:
            rhs = None
        for n, index in enumerate(self.indices()):
            self.set_unchecked(
                index, op(self.get_unchecked(index), other if rhs is None else rhs[n])
            )
        return self

    return method


class ElementwiseOps:
    """
    * Arithmetic for anything with `shape`, `dtype` and row-major `values()`.
    * Results are new NDBuffers; scalars broadcast against every element.
    """

    __slots__ = ()

    __add__ = _binary(operator.add)
    __radd__ = _binary(operator.add, reflected=True)
    __sub__ = _binary(operator.sub)
    __rsub__ = _binary(operator.sub, reflected=True)
    __mul__ = _binary(operator.mul)
    __rmul__ = _binary(operator.mul, reflected=True)
    __truediv__ = _binary(operator.truediv)
    __rtruediv__ = _binary(operator.truediv, reflected=True)
    __floordiv__ = _binary(operator.floordiv)
    __rfloordiv__ = _binary(operator.floordiv, reflected=True)
    __mod__ = _binary(operator.mod)
    __rmod__ = _binary(operator.mod, reflected=True)
    __pow__ = _binary(operator.pow)
    __rpow__ = _binary(operator.pow, reflected=True)
    __and__ = _binary(operator.and_)
    __rand__ = _binary(operator.and_, reflected=True)
    __or__ = _binary(operator.or_)
    __ror__ = _binary(operator.or_, reflected=True)
    __xor__ = _binary(operator.xor)
    __rxor__ = _binary(operator.xor, reflected=True)
    __lshift__ = _binary(operator.lshift)
    __rlshift__ = _binary(operator.lshift, reflected=True)
    __rshift__ = _binary(operator.rshift)
    __rrshift__ = _binary(operator.rshift, reflected=True)

    __neg__ = _unary(operator.neg)
    __pos__ = _unary(operator.pos)
    __invert__ = _unary(operator.invert)
    __abs__ = _unary(operator.abs)

    def __matmul__(self, other):
        return matrix_product(self, other)

    def map(self, f: Callable[[Any], Any], **kwargs):
        return map_view(self, f, **kwargs)

    def zip_map(self, other: "ElementwiseOps", f: Callable[[Any, Any], Any], **kwargs):
        return zip_map(self, other, f, **kwargs)
