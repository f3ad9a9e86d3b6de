import pytest

np = pytest.importorskip("numpy")

import dask
from distributed.utils_test import captured_logger, gen_cluster

from ddarray.core import local_storage
from ddarray.exceptions import ShapeMismatch
from ddarray.localize import bcview, evaluate, fetch_block, localize, localpart
from ddarray.partition import distribute
from ddarray.plan import LOCAL, Leaf, Node, broadcasted, build_plan


def test_bcview_singleton_dimensions():
    assert bcview((3, 1), (range(1, 3), range(2, 4))) == (range(1, 3), range(0, 1))
    assert bcview((1, 4), (range(1, 3), range(2, 4))) == (range(0, 1), range(2, 4))
    assert bcview((1,), (range(5, 9),)) == (range(0, 1),)


def test_bcview_nested_ranges():
    index = (range(2, 4), range(0, 5))
    assert bcview((6, 5), index) == index
    assert bcview((4, 5), index) == index


def test_bcview_aligns_trailing_dimensions():
    index = (range(0, 2), range(1, 3), range(3, 4))
    assert bcview((4, 4), index) == (range(1, 3), range(3, 4))
    assert bcview((4,), index) == (range(3, 4),)
    assert bcview((), index) == ()
    assert bcview((), ()) == ()


def test_bcview_partial_overlap_fails():
    with pytest.raises(ShapeMismatch, match="could not be constructed"):
        bcview((4,), (range(2, 6),))
    with pytest.raises(ShapeMismatch):
        bcview((3, 3), (range(0, 2),))


def test_evaluate():
    tree = Node(np.add, [Node(np.multiply, [np.arange(3), 2], (3,)), 1], (3,))
    np.testing.assert_array_equal(evaluate(tree), [1, 3, 5])
    assert evaluate(5) == 5


def test_localize_leaves_scalars_and_local_values_alone():
    x = np.arange(4)
    node = broadcasted(np.add, 1, Leaf(LOCAL, x))
    local = localize(node, (range(0, 4),))
    assert isinstance(local, Node)
    assert local.args[0] == 1
    assert local.args[1] is x
    np.testing.assert_array_equal(evaluate(local), x + 1)


def test_localize_narrows_nested_nodes():
    inner = broadcasted(np.negative, np.ones((3, 1)))
    node = broadcasted(np.add, inner, np.ones(4))
    local = localize(node, (range(1, 3), range(0, 2)))
    assert local.shape == (2, 2)
    assert local.args[0].shape == (2, 1)
    assert local.args[0].func is np.negative


def local_view_shares_memory(arr, index):
    return np.shares_memory(localpart(arr, index), local_storage(arr))


def run_localpart(arr, index):
    return localpart(arr, index)


def overwrite_localpart(arr, index):
    localpart(arr, index)[...] = -1


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 2)
async def test_localpart_uses_local_storage(c, s, a, b):
    x = np.arange(20).reshape(10, 2)
    d = await distribute(x)
    owned = d.indices[a.address]
    index = (range(owned[0].start, owned[0].start + 2), range(0, 2))
    assert await c.submit(
        local_view_shares_memory, d, index, workers=[a.address], pure=False
    )


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 3)
async def test_localpart_fetches_foreign_ranges(c, s, a, b, w3):
    x = np.arange(30).reshape(10, 3)
    d = await distribute(x, workers=[a.address, b.address])
    # the whole array spans both owners; w3 owns nothing
    for w in (a, b, w3):
        full = await c.submit(
            run_localpart, d, (range(0, 10), range(0, 3)), workers=[w.address], pure=False
        )
        np.testing.assert_array_equal(full, x)

    middle = (range(3, 7), range(1, 3))
    part = await c.submit(run_localpart, d, middle, workers=[w3.address], pure=False)
    np.testing.assert_array_equal(part, x[3:7, 1:3])

    # fetched data is a copy, the owners' blocks are untouched
    await c.submit(overwrite_localpart, d, middle, workers=[w3.address], pure=False)
    await c.submit(overwrite_localpart, d, middle, workers=[a.address], pure=False)
    np.testing.assert_array_equal(await d.compute(), x)


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 3)
async def test_large_foreign_fetch_warns(c, s, a, b, w3):
    d = await distribute(np.arange(40.0), workers=[a.address, b.address])
    whole = (range(0, 40),)
    with captured_logger("ddarray.localize") as sio:
        await c.submit(run_localpart, d, whole, workers=[w3.address], pure=False)
        assert not sio.getvalue()
        with dask.config.set({"ddarray.localize.warn-foreign-bytes": 1}):
            await c.submit(
                run_localpart, d, whole, workers=[w3.address], pure=False
            )
    assert "Fetching 320 B of %s[0:40] onto %s" % (d.name, w3.address) in sio.getvalue()


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 2)
async def test_fetch_block(c, s, a, b):
    d = await distribute(np.arange(8))
    key = d.keys[b.address]
    result = await c.run(fetch_block, key, (slice(1, 3),), workers=[b.address])
    expected = np.arange(8)[d.indices[b.address][0].start :][1:3]
    np.testing.assert_array_equal(result[b.address], expected)


def run_plan(plan, index):
    return evaluate(localize(plan, index))


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 3)
async def test_localize_and_evaluate_on_workers(c, s, *ws):
    A = np.arange(1, 4).reshape(3, 1)
    B = np.full((1, 4), 10)
    plan = await build_plan(broadcasted(np.add, A, B))
    expected = A + B
    for w in ws:
        for index in [
            (range(0, 3), range(0, 4)),
            (range(1, 2), range(2, 4)),
            (range(2, 3), range(0, 1)),
        ]:
            result = await c.submit(run_plan, plan, index, workers=[w.address], pure=False)
            np.testing.assert_array_equal(
                result,
                expected[index[0].start : index[0].stop, index[1].start : index[1].stop],
            )


@gen_cluster(client=True, nthreads=[("127.0.0.1", 1)] * 2)
async def test_localize_rejects_ranges_outside_operands(c, s, a, b):
    plan = await build_plan(broadcasted(np.negative, np.arange(4)))
    with pytest.raises(ShapeMismatch):
        await c.submit(run_plan, plan, (range(2, 6),), pure=False)
