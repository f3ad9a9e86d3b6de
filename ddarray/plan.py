"""Operation trees and their distributed plans

An operation is a tree of ``Node`` objects whose leaves are tagged operands.
``build_plan`` turns such a tree into one that every worker can reduce on its
own: plain local arrays become distributed arrays, everything else is left as
it is.
"""
from __future__ import annotations

import asyncio
import logging

import numpy as np
from dask.utils import funcname

from .core import DistributedArray, SubArray, ensure_client
from .partition import _distribute
from .shape import broadcast_shapes

logger = logging.getLogger(__name__)

DISTRIBUTED = "distributed"
LOCAL = "local"
SCALAR = "scalar"


class Leaf:
    """A tagged operand

    ``kind`` is one of ``DISTRIBUTED`` (``value`` is a DistributedArray),
    ``LOCAL`` (``value`` is a numpy array with at least one dimension) or
    ``SCALAR`` (a number or zero-dimensional array, broadcast everywhere).
    """

    __slots__ = ("kind", "value")

    def __init__(self, kind, value):
        self.kind = kind
        self.value = value

    @property
    def shape(self):
        if self.kind == SCALAR:
            return ()
        return self.value.shape

    @property
    def ndim(self):
        return len(self.shape)

    def __repr__(self):
        if self.kind == SCALAR:
            return f"Leaf({self.kind}, {self.value!r})"
        return f"Leaf({self.kind}, shape={self.shape})"


class Node:
    """A function applied elementwise to its operands

    ``shape`` is the broadcast shape of ``args``.
    """

    __slots__ = ("func", "args", "shape")

    def __init__(self, func, args, shape):
        self.func = func
        self.args = tuple(args)
        self.shape = tuple(shape)

    @property
    def ndim(self):
        return len(self.shape)

    def __repr__(self):
        return "Node(%s, shape=%s, nargs=%d)" % (
            funcname(self.func),
            self.shape,
            len(self.args),
        )


def as_operand(x):
    """Tag a raw argument of an operation

    >>> as_operand(3)
    Leaf(scalar, 3)
    >>> as_operand(np.ones((2, 3)))
    Leaf(local, shape=(2, 3))
    """
    if isinstance(x, (Node, Leaf)):
        return x
    if isinstance(x, DistributedArray):
        return Leaf(DISTRIBUTED, x)
    if isinstance(x, SubArray):
        raise TypeError("Views can only be used as the destination of apply_into")
    if np.ndim(x) == 0:
        return Leaf(SCALAR, x)
    return Leaf(LOCAL, np.asarray(x))


def broadcasted(func, *args):
    """Lazily describe ``func`` applied elementwise over ``args``

    Arguments may be distributed arrays, local arrays, scalars or other
    nodes, which lets several elementwise steps run in a single pass.  The
    shapes are checked right away.

    Examples
    --------
    >>> node = broadcasted(np.add, np.ones((3, 1)), np.ones(4))
    >>> node.shape
    (3, 4)
    >>> broadcasted(np.multiply, node, 2).shape
    (3, 4)
    """
    args = tuple(map(as_operand, args))
    shape = broadcast_shapes(*[a.shape for a in args])
    return Node(func, args, shape)


def leaves(node):
    """Iterate over the leaves of a tree, depth first"""
    if isinstance(node, Node):
        for arg in node.args:
            yield from leaves(arg)
    else:
        yield node


def client_of(node, client=None):
    """The client of the first distributed leaf, or the default client"""
    if client is not None:
        return client
    for leaf in leaves(node):
        if leaf.kind == DISTRIBUTED and leaf.value.futures:
            return leaf.value.client
    return ensure_client()


async def _keep(leaf, client, workers):
    return leaf


async def _promote(leaf, client, workers):
    logger.debug("Promoting local operand of shape %s", leaf.shape)
    return Leaf(DISTRIBUTED, await _distribute(leaf.value, client, workers=workers))


_planners = {
    DISTRIBUTED: _keep,
    SCALAR: _keep,
    LOCAL: _promote,
}


async def _build_plan(node, client, workers=None):
    if isinstance(node, Node):
        args = await asyncio.gather(
            *[_build_plan(arg, client, workers=workers) for arg in node.args]
        )
        return Node(node.func, args, node.shape)
    return await _planners[node.kind](node, client, workers)


def build_plan(node, client=None, workers=None):
    """Distribute every local array in an operation tree

    Scalars, zero-dimensional values and distributed arrays stay as they are;
    nodes are rebuilt around their new children with the same function and
    shape.  Nothing is computed.
    """
    node = as_operand(node)
    client = client_of(node, client)
    return client.sync(_build_plan, node, client, workers=workers)
