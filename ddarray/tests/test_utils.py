from ddarray.utils import (
    contains,
    format_index,
    full_index,
    index_shape,
    intersect,
    intersect_index,
    is_empty,
    nested,
    shift,
    to_slices,
)


def test_intersect():
    assert intersect(range(0, 5), range(3, 8)) == range(3, 5)
    assert intersect(range(3, 8), range(0, 5)) == range(3, 5)
    assert len(intersect(range(0, 2), range(4, 8))) == 0
    assert intersect(range(2, 6), range(0, 10)) == range(2, 6)


def test_intersect_index_and_emptiness():
    a = (range(0, 4), range(0, 4))
    b = (range(2, 6), range(4, 8))
    common = intersect_index(a, b)
    assert common[0] == range(2, 4)
    assert is_empty(common)
    assert not is_empty(intersect_index(a, (range(3, 9), range(1, 2))))
    assert not is_empty(())


def test_nesting():
    assert nested(range(2, 4), range(0, 5))
    assert nested(range(0, 5), range(0, 5))
    assert not nested(range(3, 7), range(0, 5))
    assert contains((range(0, 4), range(2, 6)), (range(1, 3), range(2, 6)))
    assert not contains((range(0, 4), range(2, 6)), (range(1, 3), range(0, 6)))
    assert contains((), ())


def test_translation():
    index = (range(5, 8), range(2, 3))
    assert shift(index, (4, 2)) == (range(1, 4), range(0, 1))
    assert to_slices(index) == (slice(5, 8), slice(2, 3))
    assert to_slices(index, (5, 0)) == (slice(0, 3), slice(2, 3))
    assert index_shape(index) == (3, 1)
    assert full_index((2, 3)) == (range(0, 2), range(0, 3))
    assert format_index(index) == "[5:8, 2:3]"
