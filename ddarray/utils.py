from __future__ import annotations

from functools import reduce
from operator import mul


def full_index(shape):
    """The index range covering every element of ``shape``

    >>> full_index((2, 3))
    (range(0, 2), range(0, 3))
    """
    return tuple(range(0, n) for n in shape)


def index_shape(index):
    """Shape of the box described by a tuple of ranges

    >>> index_shape((range(2, 5), range(0, 1)))
    (3, 1)
    """
    return tuple(len(r) for r in index)


def prod(seq):
    return reduce(mul, seq, 1)


def intersect(a, b):
    """Intersection of two unit-step ranges, possibly empty

    >>> intersect(range(0, 5), range(3, 8))
    range(3, 5)
    >>> intersect(range(0, 2), range(4, 8))
    range(4, 4)
    """
    start = max(a.start, b.start)
    return range(start, max(start, min(a.stop, b.stop)))


def intersect_index(a, b):
    return tuple(intersect(x, y) for x, y in zip(a, b))


def is_empty(index):
    """Whether the box holds no element at all

    A zero-dimensional index is never empty, it holds one element.
    """
    return any(len(r) == 0 for r in index)


def nested(inner, outer):
    """Whether range ``inner`` lies within range ``outer``

    >>> nested(range(2, 4), range(0, 5))
    True
    >>> nested(range(3, 7), range(0, 5))
    False
    """
    return outer.start <= inner.start and inner.stop <= outer.stop


def contains(outer, inner):
    """Whether every range of ``inner`` nests inside ``outer``"""
    return len(outer) == len(inner) and all(map(nested, inner, outer))


def shift(index, offsets):
    """Move every range in ``index`` down by the matching offset

    >>> shift((range(5, 8), range(2, 3)), (4, 2))
    (range(1, 4), range(0, 1))
    """
    return tuple(range(r.start - o, r.stop - o) for r, o in zip(index, offsets))


def origin(index):
    return tuple(r.start for r in index)


def to_slices(index, offsets=None):
    """Convert ranges to a tuple of slices, optionally relative to ``offsets``

    >>> to_slices((range(5, 8), range(0, 2)), (4, 0))
    (slice(1, 4, None), slice(0, 2, None))
    """
    if offsets is not None:
        index = shift(index, offsets)
    return tuple(slice(r.start, r.stop) for r in index)


def format_index(index):
    """Human readable form used in reprs and log messages

    >>> format_index((range(0, 2), range(4, 8)))
    '[0:2, 4:8]'
    """
    return "[" + ", ".join(f"{r.start}:{r.stop}" for r in index) + "]"
