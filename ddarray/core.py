from __future__ import annotations

import logging
import operator
from numbers import Integral

import numpy as np
from distributed import default_client, get_worker, wait
from tlz import first

from .exceptions import RemoteExecutionError
from .utils import (
    format_index,
    full_index,
    index_shape,
    intersect_index,
    is_empty,
    origin,
    prod,
    to_slices,
)

logger = logging.getLogger(__name__)


class DistributedArray:
    """An n-dimensional array split disjointly across dask workers

    Every owning worker holds exactly one contiguous block of the global
    index space in its memory, as the result of a ``distributed.Future``.
    The blocks form a grid that covers the whole array without gaps or
    overlaps.

    Arrays are not constructed directly. Use ``distribute`` to split a local
    array, the creation functions (``from_function``, ``zeros``, ``ones``,
    ``full``) or ``apply``.

    Parameters
    ----------
    name : str
        Unique name, prefix of every partition key
    shape : tuple of ints
    dtype : numpy dtype
    indices : dict
        Maps worker address to the tuple of ranges that worker owns
    futures : dict
        Maps worker address to the future holding that worker's block

    When pickled, for instance to ship it inside a plan to a worker, the
    futures are dropped and only the partition keys travel.  The unpickled
    handle can read blocks on the workers but does not keep them alive.
    """

    # numpy defers binary operators with ndarrays to us
    __array_priority__ = 11

    def __init__(self, name, shape, dtype, indices, futures):
        self.name = name
        self.shape = tuple(shape)
        self.dtype = np.dtype(dtype)
        self.indices = dict(indices)
        self.futures = dict(futures)
        self.keys = {w: f.key for w, f in self.futures.items()}
        check_cover(self.shape, self.indices)

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["futures"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self.futures = {}

    @property
    def ndim(self):
        return len(self.shape)

    @property
    def size(self):
        return prod(self.shape)

    @property
    def nbytes(self):
        return self.size * self.dtype.itemsize

    @property
    def npartitions(self):
        return len(self.indices)

    @property
    def owners(self):
        return list(self.indices)

    @property
    def client(self):
        if not self.futures:
            raise ValueError(
                f"{self.name} is a detached handle without partition futures"
            )
        return first(self.futures.values()).client

    def __len__(self):
        if not self.shape:
            raise TypeError("len() of unsized object")
        return self.shape[0]

    def __repr__(self):
        return "ddarray.DistributedArray<%s, shape=%s, dtype=%s, npartitions=%d>" % (
            self.name,
            self.shape,
            self.dtype,
            self.npartitions,
        )

    def compute(self):
        """Gather all partitions into one local numpy array"""
        return gather(self)

    def __array__(self, dtype=None, copy=None):
        x = self.compute()
        if dtype is not None and x.dtype != dtype:
            x = x.astype(dtype)
        return x

    def __array_ufunc__(self, numpy_ufunc, method, *inputs, **kwargs):
        out = kwargs.pop("out", None)
        if method != "__call__" or kwargs or numpy_ufunc.nout != 1:
            return NotImplemented
        from .dispatch import apply_into
        from .materialize import apply

        if out:
            (dest,) = out
            return apply_into(dest, numpy_ufunc, *inputs)
        return apply(numpy_ufunc, *inputs)

    def __neg__(self):
        return _elemwise(operator.neg, self)

    def __abs__(self):
        return _elemwise(operator.abs, self)

    def __add__(self, other):
        return _elemwise(operator.add, self, other)

    def __radd__(self, other):
        return _elemwise(operator.add, other, self)

    def __sub__(self, other):
        return _elemwise(operator.sub, self, other)

    def __rsub__(self, other):
        return _elemwise(operator.sub, other, self)

    def __mul__(self, other):
        return _elemwise(operator.mul, self, other)

    def __rmul__(self, other):
        return _elemwise(operator.mul, other, self)

    def __truediv__(self, other):
        return _elemwise(operator.truediv, self, other)

    def __rtruediv__(self, other):
        return _elemwise(operator.truediv, other, self)

    def __pow__(self, other):
        return _elemwise(operator.pow, self, other)

    def __rpow__(self, other):
        return _elemwise(operator.pow, other, self)


def _elemwise(op, *args):
    from .materialize import apply

    return apply(op, *args)


class SubArray:
    """A rectangular region of a DistributedArray

    Holds no storage of its own. It is only meant as the destination of
    ``apply_into`` and can be gathered with ``compute``.
    """

    def __init__(self, parent, index):
        self.parent = parent
        self.index = tuple(index)

    @property
    def shape(self):
        return index_shape(self.index)

    @property
    def ndim(self):
        return len(self.index)

    @property
    def dtype(self):
        return self.parent.dtype

    @property
    def client(self):
        return self.parent.client

    def compute(self):
        return gather(self)

    def __array__(self, dtype=None, copy=None):
        x = self.compute()
        if dtype is not None and x.dtype != dtype:
            x = x.astype(dtype)
        return x

    def __repr__(self):
        return "ddarray.SubArray<%s%s, shape=%s>" % (
            self.parent.name,
            format_index(self.index),
            self.shape,
        )


def view(arr, *index):
    """A sub-view of ``arr`` usable as an ``apply_into`` destination

    Indices are unit-step slices (or ranges), one per leading dimension;
    missing trailing dimensions are taken whole.  A view of a view is
    expressed directly against the underlying DistributedArray.

    Examples
    --------
    >>> v = view(x, slice(2, 5), slice(None))  # doctest: +SKIP
    >>> apply_into(v, np.add, v_shaped_operand, 1)  # doctest: +SKIP
    """
    base, region = base_and_region(arr)
    if len(index) == 1 and isinstance(index[0], tuple):
        index = index[0]
    if len(index) > len(region):
        raise IndexError(
            f"too many indices for view: array is {len(region)}-dimensional, "
            f"but {len(index)} were given"
        )
    index = tuple(index) + (slice(None),) * (len(region) - len(index))
    out = []
    for i, r in zip(index, region):
        if isinstance(i, range):
            i = slice(i.start, i.stop, i.step)
        if isinstance(i, Integral):
            raise IndexError(
                f"views take slices, got integer {i}; use slice({i}, {i} + 1)"
            )
        if not isinstance(i, slice):
            raise IndexError(f"views take slices or ranges, got {i!r}")
        if i.start is not None and not 0 <= _normalize(i.start, len(r)) <= len(r):
            raise IndexError(f"view start {i.start} out of bounds for size {len(r)}")
        if i.stop is not None and not 0 <= _normalize(i.stop, len(r)) <= len(r):
            raise IndexError(f"view stop {i.stop} out of bounds for size {len(r)}")
        start, stop, step = i.indices(len(r))
        if step != 1:
            raise IndexError(f"views need unit steps, got step {step}")
        out.append(range(r.start + start, r.start + max(start, stop)))
    return SubArray(base, out)


def linear_view(arr, index):
    """The smallest view of ``arr`` holding a run of flat positions

    ``index`` is a unit-step slice (or range) over the row-major positions of
    ``arr``.  The result is the bounding box of those positions, so it may
    hold more elements than the run itself.

    >>> x = zeros((3, 4))  # doctest: +SKIP
    >>> linear_view(x, range(5, 7)).index  # doctest: +SKIP
    (range(1, 2), range(1, 3))
    >>> linear_view(x, range(2, 6)).index  # doctest: +SKIP
    (range(0, 2), range(0, 4))
    """
    _, region = base_and_region(arr)
    if not region:
        raise IndexError("linear views need at least one dimension")
    shape = index_shape(region)
    size = prod(shape)
    if isinstance(index, range):
        index = slice(index.start, index.stop, index.step)
    if not isinstance(index, slice):
        raise IndexError(f"linear views take a slice or range, got {index!r}")
    for bound in (index.start, index.stop):
        if bound is not None and not 0 <= _normalize(bound, size) <= size:
            raise IndexError(f"linear bound {bound} out of bounds for size {size}")
    start, stop, step = index.indices(size)
    if step != 1:
        raise IndexError(f"views need unit steps, got step {step}")
    if stop <= start:
        return view(arr, slice(0, 0))
    first = np.unravel_index(start, shape)
    last = np.unravel_index(stop - 1, shape)
    out = []
    wrapped = False
    for lo, hi, n in zip(first, last, shape):
        if wrapped:
            out.append(slice(0, n))
        else:
            out.append(slice(int(lo), int(hi) + 1))
            # every later axis runs through its whole extent
            wrapped = lo != hi
    return view(arr, *out)


def _normalize(i, n):
    return i + n if i < 0 else i


def base_and_region(arr):
    """The backing DistributedArray and the region of it that ``arr`` covers"""
    if isinstance(arr, SubArray):
        return arr.parent, arr.index
    elif isinstance(arr, DistributedArray):
        return arr, full_index(arr.shape)
    else:
        raise TypeError(f"Expected a DistributedArray or SubArray, got {type(arr)}")


def check_cover(shape, indices):
    """Validate that owned ranges tile ``shape`` as an exact grid

    Along every dimension the distinct ranges must run contiguously from
    ``0`` to the size of that dimension, and every combination of them must
    be owned by exactly one worker.

    >>> check_cover((4,), {"a": (range(0, 2),), "b": (range(2, 4),)})
    >>> check_cover((4,), {"a": (range(0, 3),), "b": (range(2, 4),)})
    Traceback (most recent call last):
    ...
    ValueError: ranges along dimension 0 do not tile range(0, 4): [0:3, 2:4]
    """
    if not indices:
        raise ValueError("an array needs at least one partition")
    boxes = list(indices.values())
    if any(len(box) != len(shape) for box in boxes):
        raise ValueError(f"owned ranges do not match {len(shape)} dimensions")
    counts = []
    for d, n in enumerate(shape):
        ranges = sorted({box[d] for box in boxes}, key=lambda r: (r.start, r.stop))
        stop = 0
        for r in ranges:
            if r.start != stop or r.step != 1 or (r.stop <= r.start and n):
                raise ValueError(
                    f"ranges along dimension {d} do not tile range(0, {n}): "
                    + format_index(ranges)
                )
            stop = r.stop
        if stop != n:
            raise ValueError(
                f"ranges along dimension {d} stop at {stop}, not at {n}"
            )
        counts.append(len(ranges))
    if len(set(boxes)) != len(boxes) or len(boxes) != prod(counts):
        raise ValueError("owned boxes do not form a grid, some overlap or miss")


def owners(arr):
    """Workers owning a partition of ``arr``, in block order"""
    return base_and_region(arr)[0].owners


def owned_range(arr, worker):
    """The tuple of ranges that ``worker`` owns in ``arr``"""
    return base_and_region(arr)[0].indices[worker]


def local_storage(arr, worker=None):
    """The block of ``arr`` held by the worker running this task

    Only valid inside a task on one of the array's owners.  Returns the stored
    numpy array itself, not a copy.
    """
    if worker is None:
        worker = get_worker()
    try:
        key = arr.keys[worker.address]
    except KeyError:
        raise ValueError(
            f"Worker {worker.address} owns no partition of {arr.name}"
        ) from None
    return worker.data[key]


def read_block(block, index):
    return block[index].copy()


async def settle(futures):
    """Wait until every future has finished, then raise the first failure

    Parameters
    ----------
    futures : dict
        Maps worker address to the future of the unit sent to it.  Failures
        are reported in the order of this mapping.
    """
    await wait(list(futures.values()))
    for worker, future in futures.items():
        if future.status == "error":
            exception = await future.exception()
            logger.debug("Unit on %s failed: %r", worker, exception)
            raise RemoteExecutionError(worker, exception) from exception


async def _gather(arr):
    base, region = base_and_region(arr)
    client = base.client
    out = np.empty(index_shape(region), dtype=base.dtype)
    parts, futures = [], []
    for worker, owned in base.indices.items():
        common = intersect_index(owned, region)
        if is_empty(common):
            continue
        if common == owned:
            future = base.futures[worker]
        else:
            future = client.submit(
                read_block,
                base.futures[worker],
                to_slices(common, origin(owned)),
                workers=[worker],
                allow_other_workers=False,
                pure=False,
            )
        parts.append(common)
        futures.append(future)
    blocks = await client.gather(futures, asynchronous=True)
    for common, block in zip(parts, blocks):
        out[to_slices(common, origin(region))] = block
    return out


def gather(arr):
    """Assemble a DistributedArray or SubArray into a local numpy array

    Returns a coroutine when used with an asynchronous client.
    """
    base, _ = base_and_region(arr)
    return base.client.sync(_gather, arr)


def ensure_client(client=None):
    if client is None:
        client = default_client()
    return client
