"""Reduce a distributed plan to a tree of local values

Runs on the workers.  Given the global ranges a worker has to produce,
every distributed operand is narrowed to the ranges it contributes and
replaced by concrete data: a view of the worker's own block when possible,
an explicit copy fetched from the owners otherwise.
"""
from __future__ import annotations

import logging

import dask
import numpy as np
from dask.utils import format_bytes, parse_bytes
from distributed import get_client, get_worker
from distributed.utils import log_errors

from .core import local_storage
from .exceptions import ShapeMismatch
from .plan import DISTRIBUTED, LOCAL, SCALAR, Node
from .utils import (
    contains,
    format_index,
    index_shape,
    intersect_index,
    is_empty,
    nested,
    origin,
    to_slices,
)

logger = logging.getLogger(__name__)


def bcview(shape, index):
    """The ranges of an operand of ``shape`` that feed the ranges ``index``

    ``index`` is expressed in the coordinates of the broadcast result.  The
    operand's dimensions line up with the trailing entries of ``index``.
    Along every dimension of extent one the operand contributes its single
    element; along every other dimension the requested range has to lie
    within the operand.

    >>> bcview((3, 1), (range(1, 3), range(2, 4)))
    (range(1, 3), range(0, 1))
    >>> bcview((4,), (range(0, 2), range(1, 3)))
    (range(1, 3),)
    >>> bcview((), (range(0, 2),))
    ()
    """
    index = tuple(index)
    if len(shape) > len(index):
        raise ShapeMismatch(
            f"operand of shape {tuple(shape)} has more dimensions than the "
            f"requested view {format_index(index)}"
        )
    index = index[len(index) - len(shape):]
    return tuple(_bcview1(n, r) for n, r in zip(shape, index))


def _bcview1(size, r):
    if size == 1:
        return range(0, 1)
    elif nested(r, range(0, size)):
        return r
    else:
        raise ShapeMismatch(
            f"broadcast view could not be constructed: {r.start}:{r.stop} "
            f"is not within an axis of size {size}"
        )


def localize(node, index):
    """Replace every distributed operand below ``node`` by local data

    Parameters
    ----------
    node : Node or Leaf
        A plan, as built by ``build_plan``
    index : tuple of ranges
        The region of ``node``'s result to produce

    Returns
    -------
    A tree of ``Node`` objects whose leaves are plain values, ready for
    ``evaluate``.
    """
    if isinstance(node, Node):
        index = bcview(node.shape, index)
        return Node(
            node.func,
            [localize(arg, index) for arg in node.args],
            index_shape(index),
        )
    return _localizers[node.kind](node, index)


def _localize_distributed(leaf, index):
    arr = leaf.value
    return localpart(arr, bcview(arr.shape, index))


def _localize_value(leaf, index):
    return leaf.value


_localizers = {
    DISTRIBUTED: _localize_distributed,
    LOCAL: _localize_value,
    SCALAR: _localize_value,
}


def localpart(arr, index, worker=None):
    """The data of ``arr`` within the global ranges ``index``

    If this worker owns all of ``index`` the result is a view into its block,
    without a copy.  Otherwise the region is assembled from the owners.
    """
    if worker is None:
        worker = get_worker()
    owned = arr.indices.get(worker.address)
    if owned is not None and contains(owned, index):
        return local_storage(arr, worker)[to_slices(index, origin(owned))]
    return fetch(arr, index, worker)


def fetch(arr, index, worker):
    """Copy the region ``index`` of ``arr`` into a new local array

    Pieces owned by ``worker`` are copied in place, every other piece is
    requested from its owner with ``Client.run``.
    """
    out = np.empty(index_shape(index), dtype=arr.dtype)
    if out.nbytes > parse_bytes(
        dask.config.get("ddarray.localize.warn-foreign-bytes")
    ):
        logger.warning(
            "Fetching %s of %s%s onto %s",
            format_bytes(out.nbytes),
            arr.name,
            format_index(index),
            worker.address,
        )
    client = None
    for owner, owned in arr.indices.items():
        common = intersect_index(owned, index)
        if is_empty(common):
            continue
        slices = to_slices(common, origin(owned))
        if owner == worker.address:
            piece = local_storage(arr, worker)[slices]
        else:
            if client is None:
                client = get_client()
            logger.debug(
                "Fetching %s%s from %s", arr.name, format_index(common), owner
            )
            piece = client.run(fetch_block, arr.keys[owner], slices, workers=[owner])[
                owner
            ]
        out[to_slices(common, origin(index))] = piece
    return out


def fetch_block(key, index, dask_worker=None):
    """Copy part of a stored block, run on the block's owner"""
    with log_errors():
        return dask_worker.data[key][index].copy()


def evaluate(tree):
    """Evaluate a fully local tree with numpy"""
    if isinstance(tree, Node):
        return tree.func(*[evaluate(arg) for arg in tree.args])
    return tree
