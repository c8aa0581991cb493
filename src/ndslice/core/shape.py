"""
Shape and stride arithmetic.

Pure helpers shared by every other module. Shapes and strides are plain
tuples of ints; a 0-dimensional shape ``()`` addresses exactly one element.
"""

import functools
import itertools
import math
import operator
from typing import Iterator, Sequence, Tuple

from ndslice.core.errors import IndexOutOfBounds, InvalidDimension
from ndslice.utils.helpers import argsort


def size(shape: Sequence[int]) -> int:
    return math.prod(shape)


@functools.lru_cache(maxsize=None)
def default_stride(shape: Tuple[int, ...]) -> Tuple[int, ...]:
    # Row-major: dimension N - 1 has stride 1, dimension N - 2 has stride
    # shape[N - 1], and so on.
    # shape (3, 2) -> strides (2, 1)
    strides = [1] * len(shape)
    for i in range(len(shape) - 2, -1, -1):
        strides[i] = strides[i + 1] * shape[i + 1]
    return tuple(strides)


def offset(index: Sequence[int], stride: Sequence[int]) -> int:
    return sum(map(operator.mul, index, stride))


def check_rank(index: Sequence[int], shape: Sequence[int]):
    if len(index) != len(shape):
        raise InvalidDimension(
            f"index {tuple(index)} has {len(index)} dimensions, expected {len(shape)}"
        )


def in_bounds(index: Sequence[int], shape: Sequence[int]) -> bool:
    return len(index) == len(shape) and all(
        0 <= i < n for i, n in zip(index, shape)
    )


def check_bounds(index: Sequence[int], shape: Sequence[int]):
    check_rank(index, shape)
    for dimension, (i, n) in enumerate(zip(index, shape)):
        if not 0 <= i < n:
            raise IndexOutOfBounds(
                dimension,
                i,
                n,
                f"{tuple(index)} out of bounds for {tuple(shape)} "
                f"(index {i} along dimension {dimension} of len {n})",
            )


def iter_indices(shape: Sequence[int]) -> Iterator[Tuple[int, ...]]:
    """Yields every index of ``shape`` in row-major (lexicographic) order."""
    return itertools.product(*(range(n) for n in shape))


def insert_at(values: Tuple[int, ...], position: int, value: int) -> Tuple[int, ...]:
    return values[:position] + (value,) + values[position:]


def remove_at(values: Tuple[int, ...], position: int) -> Tuple[int, ...]:
    return values[:position] + values[position + 1 :]


def reversed_order(ndim: int) -> Tuple[int, ...]:
    return tuple(range(ndim - 1, -1, -1))


def inverse_permutation(order: Sequence[int]) -> Tuple[int, ...]:
    return tuple(argsort(list(order)))
