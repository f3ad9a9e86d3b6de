"""Splitting an index space across workers

The cut heuristic follows the usual surface-to-volume argument: the number of
workers is factored into primes and, largest factor first, each factor cuts
the currently largest extent of the array.  Every axis is then split into
nearly equal contiguous blocks and the grid of blocks is handed out to the
workers in row-major order.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from functools import partial
from itertools import product
from numbers import Integral

import dask
import numpy as np
from dask.utils import funcname

from .core import DistributedArray, ensure_client, settle
from .utils import index_shape, to_slices

logger = logging.getLogger(__name__)


def factorize(n):
    """Prime factors of ``n`` in descending order

    >>> factorize(12)
    [3, 2, 2]
    >>> factorize(1)
    []
    """
    factors = []
    f = 2
    while f * f <= n:
        while n % f == 0:
            factors.append(f)
            n //= f
        f += 1
    if n > 1:
        factors.append(n)
    return factors[::-1]


def grid_shape(shape, nworkers, min_block_size=1):
    """Number of blocks along every axis for ``nworkers`` workers

    The product of the result never exceeds ``nworkers``.  Factors that
    would cut an axis into blocks shorter than ``min_block_size`` are left
    unused, so small arrays occupy fewer workers.

    >>> grid_shape((100, 10), 4)
    (4, 1)
    >>> grid_shape((100, 100), 4)
    (2, 2)
    >>> grid_shape((3,), 8)
    (2,)
    >>> grid_shape((), 8)
    ()
    """
    extents = list(shape)
    blocks = [1] * len(shape)
    if not shape:
        return ()
    for fac in factorize(nworkers):
        # largest remaining extent, ties go to the leading axis
        d = max(range(len(extents)), key=lambda i: (extents[i], -i))
        if extents[d] >= fac * min_block_size:
            extents[d] //= fac
            blocks[d] *= fac
    return tuple(blocks)


def split_axis(size, nblocks):
    """Split ``range(0, size)`` into ``nblocks`` contiguous ranges

    Leading blocks take one extra element when the split is uneven.

    >>> split_axis(10, 3)
    [range(0, 4), range(4, 7), range(7, 10)]
    >>> split_axis(0, 1)
    [range(0, 0)]
    """
    base, extra = divmod(size, nblocks)
    out = []
    start = 0
    for i in range(nblocks):
        stop = start + base + (i < extra)
        out.append(range(start, stop))
        start = stop
    return out


def layout(shape, workers, min_block_size=None, max_workers=None):
    """Assign a block of ``shape`` to each of some of ``workers``

    Returns a dict mapping worker address to its tuple of owned ranges, in
    row-major block order.

    Parameters
    ----------
    shape : tuple of ints
    workers : list of str
        Candidate worker addresses, used in order
    min_block_size : int, optional
        Defaults to ``ddarray.partition.min-block-size``
    max_workers : int, optional
        Defaults to ``ddarray.partition.max-workers``, ``None`` for no limit

    >>> layout((4, 2), ["a", "b"])  # doctest: +NORMALIZE_WHITESPACE
    {'a': (range(0, 2), range(0, 2)), 'b': (range(2, 4), range(0, 2))}
    """
    if min_block_size is None:
        min_block_size = dask.config.get("ddarray.partition.min-block-size")
    if max_workers is None:
        max_workers = dask.config.get("ddarray.partition.max-workers")
    workers = list(workers)
    if max_workers is not None:
        workers = workers[:max_workers]
    if not workers:
        raise ValueError("No workers available to hold partitions")
    blocks = grid_shape(shape, len(workers), max(1, min_block_size))
    axes = [split_axis(n, b) for n, b in zip(shape, blocks)]
    return dict(zip(workers, product(*axes)))


async def _workers(client):
    return sorted(await client.nthreads())


async def _distribute(x, client, workers=None):
    x = np.asarray(x)
    if workers is None:
        workers = await _workers(client)
    indices = layout(x.shape, workers)
    name = "distribute-" + uuid.uuid4().hex
    keys = {w: f"{name}-{i}" for i, w in enumerate(indices)}
    logger.debug("Distributing %s array over %d workers", x.shape, len(indices))
    scattered = await asyncio.gather(
        *[
            client.scatter(
                {keys[w]: x[to_slices(index)].copy()},
                workers=[w],
                asynchronous=True,
            )
            for w, index in indices.items()
        ]
    )
    futures = {w: s[keys[w]] for w, s in zip(indices, scattered)}
    return DistributedArray(name, x.shape, x.dtype, indices, futures)


def distribute(x, client=None, workers=None):
    """Split a local array into a DistributedArray

    Each block is copied and sent to the worker that owns it.

    Parameters
    ----------
    x : array_like
    client : distributed.Client, optional
        Defaults to the default client
    workers : list of str, optional
        Worker addresses to spread over, defaults to every worker

    Examples
    --------
    >>> x = distribute(np.arange(12).reshape(3, 4))  # doctest: +SKIP
    >>> x.npartitions  # doctest: +SKIP
    2
    """
    client = ensure_client(client)
    return client.sync(_distribute, x, client, workers=workers)


def init_block(index, dtype, init):
    """Build the block for ``index`` and make sure it owns its memory"""
    block = init(index)
    return np.array(np.broadcast_to(block, index_shape(index)), dtype=dtype)


async def _build_blocks(func, shape, dtype, client, *args, name, workers=None):
    """Run ``func(index, dtype, *args)`` on the owner of every block

    Returns the layout and the futures of the blocks once all of them have
    finished.
    """
    if workers is None:
        workers = await _workers(client)
    indices = layout(shape, workers)
    futures = {
        w: client.submit(
            func,
            index,
            dtype,
            *args,
            key=f"{name}-{i}",
            workers=[w],
            allow_other_workers=False,
            pure=False,
        )
        for i, (w, index) in enumerate(indices.items())
    }
    logger.debug("Creating %s with %d partitions", name, len(futures))
    await settle(futures)
    return indices, futures


async def _from_function(
    func, shape, dtype, client, *args, name=None, workers=None
):
    if isinstance(shape, Integral):
        shape = (shape,)
    shape = tuple(shape)
    name = name or "%s-%s" % (funcname(func), uuid.uuid4().hex)
    indices, futures = await _build_blocks(
        func, shape, dtype, client, *args, name=name, workers=workers
    )
    return DistributedArray(name, shape, dtype, indices, futures)


def from_function(init, shape, dtype=float, client=None, workers=None):
    """Create a DistributedArray whose blocks are built on their owners

    ``init`` receives the tuple of global ranges of a block and returns its
    contents, anything that broadcasts to the block's shape.

    Examples
    --------
    >>> def init(index):  # doctest: +SKIP
    ...     rows, cols = index
    ...     return np.add.outer(np.asarray(rows) * 10, np.asarray(cols))
    >>> x = from_function(init, (4, 6), dtype=int)  # doctest: +SKIP
    """
    client = ensure_client(client)
    return client.sync(
        _from_function,
        init_block,
        shape,
        np.dtype(dtype),
        client,
        init,
        workers=workers,
    )


def _constant(value, index):
    return value


def full(shape, fill_value, dtype=None, client=None, workers=None):
    if dtype is None:
        dtype = np.array(fill_value).dtype
    return from_function(
        partial(_constant, fill_value), shape, dtype, client=client, workers=workers
    )


def zeros(shape, dtype=float, client=None, workers=None):
    return full(shape, 0, dtype=dtype, client=client, workers=workers)


def ones(shape, dtype=float, client=None, workers=None):
    return full(shape, 1, dtype=dtype, client=client, workers=workers)
