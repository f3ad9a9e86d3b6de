from __future__ import annotations

import logging
import uuid

import numpy as np
from dask.utils import funcname

from .core import DistributedArray, settle
from .localize import evaluate, localize
from .partition import _build_blocks
from .plan import Node, _build_plan, broadcasted, client_of
from .utils import index_shape

logger = logging.getLogger(__name__)


def compute_block(index, dtype, plan):
    """Produce the block ``index`` of a new array from ``plan``

    The result is always a fresh array of exactly the block's shape, never a
    view of an operand's storage.  With ``dtype=None`` the block keeps the
    dtype that evaluating ``plan`` produced.
    """
    values = evaluate(localize(plan, index))
    return np.array(np.broadcast_to(values, index_shape(index)), dtype=dtype)


def cast_block(block, dtype):
    return block.astype(dtype)


async def _unify_dtypes(futures, client, name):
    """Common dtype of the blocks, casting those that differ on their owners"""
    dtypes = await client.gather(
        [
            client.submit(
                getattr,
                future,
                "dtype",
                workers=[w],
                allow_other_workers=False,
                pure=False,
            )
            for w, future in futures.items()
        ],
        asynchronous=True,
    )
    dtype = np.result_type(*dtypes)
    casts = {
        w: client.submit(
            cast_block,
            futures[w],
            dtype,
            key=f"{name}-astype-{i}",
            workers=[w],
            allow_other_workers=False,
            pure=False,
        )
        for i, (w, block_dtype) in enumerate(zip(futures, dtypes))
        if block_dtype != dtype
    }
    if casts:
        logger.debug("Casting %d blocks of %s to %s", len(casts), name, dtype)
        await settle(casts)
    return dtype, {**futures, **casts}


async def _apply(node, client, dtype=None, workers=None):
    plan = await _build_plan(node, client, workers=workers)
    name = "%s-%s" % (funcname(node.func), uuid.uuid4().hex)
    if dtype is not None:
        dtype = np.dtype(dtype)
    indices, futures = await _build_blocks(
        compute_block, node.shape, dtype, client, plan, name=name, workers=workers
    )
    if dtype is None:
        dtype, futures = await _unify_dtypes(futures, client, name)
    return DistributedArray(name, node.shape, dtype, indices, futures)


def apply(func, *operands, dtype=None, client=None, workers=None):
    """Apply ``func`` elementwise over ``operands`` into a new DistributedArray

    The result has the broadcast shape of the operands.  Each of its blocks
    is computed directly on the worker that will own it.

    Parameters
    ----------
    func : callable
        Elementwise function, called with numpy arrays and scalars
    *operands : DistributedArray, numpy arrays, scalars or ``broadcasted`` nodes
    dtype : numpy dtype, optional
        Output dtype.  By default every block keeps the dtype its evaluation
        produced and the array takes their ``np.result_type``; blocks of
        another dtype are then cast on their owners.
    client : distributed.Client, optional
    workers : list of str, optional
        Worker addresses to place the result on, defaults to every worker

    Raises
    ------
    ShapeMismatch
        If the operand shapes do not broadcast together
    RemoteExecutionError
        Once all blocks have finished, if any of them failed

    A tree built with ``broadcasted`` may be passed alone in place of
    ``func``.

    Examples
    --------
    >>> x = distribute(np.arange(3).reshape(3, 1))  # doctest: +SKIP
    >>> y = apply(np.add, x, np.full((1, 4), 10))  # doctest: +SKIP
    >>> y.shape  # doctest: +SKIP
    (3, 4)
    """
    if isinstance(func, Node) and not operands:
        node = func
    else:
        node = broadcasted(func, *operands)
    client = client_of(node, client)
    return client.sync(_apply, node, client, dtype=dtype, workers=workers)
