from __future__ import annotations

import logging

from .core import SubArray, base_and_region, settle
from .localize import evaluate, localize
from .plan import Node, _build_plan, broadcasted
from .shape import check_destination
from .utils import format_index, intersect_index, is_empty, origin, shift, to_slices

logger = logging.getLogger(__name__)


def dispatch_units(dest):
    """One unit of work per owner whose block meets ``dest``

    Returns a list of ``(worker, plan_index, write_index)`` tuples.
    ``plan_index`` is the region to compute, relative to the origin of
    ``dest``; ``write_index`` is the matching tuple of slices into the
    worker's block.  Owners whose block lies outside ``dest`` get no unit.
    """
    base, region = base_and_region(dest)
    units = []
    for worker, owned in base.indices.items():
        common = intersect_index(owned, region)
        if is_empty(common):
            continue
        units.append(
            (worker, shift(common, origin(region)), to_slices(common, origin(owned)))
        )
    return units


def write_block(out, index, values):
    out[index] = values


def compute_into(out, plan, plan_index, write_index):
    """Produce ``plan_index`` of ``plan`` and store it into the block ``out``"""
    values = evaluate(localize(plan, plan_index))
    write_block(out, write_index, values)


async def _apply_into(dest, node, client):
    plan = await _build_plan(node, client)
    base, _ = base_and_region(dest)
    futures = {
        worker: client.submit(
            compute_into,
            base.futures[worker],
            plan,
            plan_index,
            write_index,
            workers=[worker],
            allow_other_workers=False,
            pure=False,
        )
        for worker, plan_index, write_index in dispatch_units(dest)
    }
    logger.debug(
        "Dispatched %d of %d units into %s%s",
        len(futures),
        base.npartitions,
        base.name,
        format_index(dest.index) if isinstance(dest, SubArray) else "",
    )
    await settle(futures)
    return dest


def apply_into(dest, func, *operands, client=None):
    """Apply ``func`` elementwise over ``operands`` and write into ``dest``

    Every owner of a block of ``dest`` computes and writes its own part,
    concurrently.  ``dest`` may be a DistributedArray or a view of one, and
    its shape has to equal the broadcast shape of the operands exactly.

    Parameters
    ----------
    dest : DistributedArray or SubArray
    func : callable
        Elementwise function, called with numpy arrays and scalars
    *operands : DistributedArray, numpy arrays, scalars or ``broadcasted`` nodes
    client : distributed.Client, optional

    Raises
    ------
    ShapeMismatch
        Before any work is sent, if the shapes do not agree
    RemoteExecutionError
        Once all units have finished, if any of them failed.  Blocks written
        by the other units keep their new values.

    Examples
    --------
    >>> apply_into(x, np.add, x, 1)  # doctest: +SKIP
    >>> apply_into(view(x, slice(0, 2)), np.multiply, y, 10)  # doctest: +SKIP
    """
    base, _ = base_and_region(dest)
    if isinstance(func, Node) and not operands:
        node = func
    else:
        node = broadcasted(func, *operands)
    check_destination(dest.shape, node.shape)
    client = client or base.client
    return client.sync(_apply_into, dest, node, client)
