from __future__ import annotations

from itertools import zip_longest

from .exceptions import ShapeMismatch


def broadcast_shapes(*shapes):
    """
    Determines output shape from broadcasting operands.

    Dimensions are aligned from the trailing end and a missing dimension
    counts as size 1.  The unified size of a dimension is the largest size
    declared for it, and every other operand must declare either that size
    or 1.

    Parameters
    ----------
    shapes : tuples
        The shapes of the operands.

    Returns
    -------
    output_shape : tuple

    Raises
    ------
    ShapeMismatch
        If the shapes cannot be broadcast together.

    Examples
    --------
    >>> broadcast_shapes((3, 1), (1, 4))
    (3, 4)
    >>> broadcast_shapes((5, 2), (2,), ())
    (5, 2)
    """
    if len(shapes) == 1:
        return tuple(shapes[0])
    out = []
    for sizes in zip_longest(*map(reversed, shapes), fillvalue=1):
        dim = 0 if 0 in sizes else max(sizes)
        if any(i not in (1, dim) for i in sizes):
            raise ShapeMismatch(
                "operands could not be broadcast together with "
                "shapes {0}".format(" ".join(map(str, shapes)))
            )
        out.append(dim)
    return tuple(reversed(out))


def check_destination(dest_shape, shape):
    """Raise unless a destination has exactly the unified shape

    Broadcast compatibility is not enough, a destination is never expanded.

    >>> check_destination((3, 4), (3, 4))
    >>> check_destination((1, 4), (3, 4))
    Traceback (most recent call last):
    ...
    ddarray.exceptions.ShapeMismatch: destination of shape (1, 4) does not match the operation's shape (3, 4)
    """
    if tuple(dest_shape) != tuple(shape):
        raise ShapeMismatch(
            f"destination of shape {tuple(dest_shape)} does not match "
            f"the operation's shape {tuple(shape)}"
        )
