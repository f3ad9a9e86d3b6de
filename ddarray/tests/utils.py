from __future__ import annotations

import numpy as np

from ddarray.core import check_cover


def assert_eq(a, b):
    """Compare a gathered DistributedArray (or SubArray) with a numpy array"""
    assert a.shape == np.shape(b), (a.shape, np.shape(b))
    np.testing.assert_array_equal(np.asarray(a), b)


def assert_cover(arr):
    """Every axis is tiled exactly once by the owners' ranges"""
    check_cover(arr.shape, arr.indices)
    assert sum(int(np.prod([len(r) for r in box])) for box in arr.indices.values()) == arr.size
    assert set(arr.indices) == set(arr.futures) == set(arr.keys)
