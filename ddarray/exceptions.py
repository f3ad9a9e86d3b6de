from __future__ import annotations


class DDArrayError(Exception):
    """Base class for ddarray exceptions."""


class ShapeMismatch(DDArrayError, ValueError):
    """Operand or destination shapes cannot be reconciled"""


class RemoteExecutionError(DDArrayError, RuntimeError):
    """A unit of work failed on a worker

    The original exception is available as ``exception`` and is also chained
    as ``__cause__`` when raised.
    """

    def __init__(self, worker, exception):
        super().__init__(
            f"Elementwise evaluation failed on worker {worker}: {exception!r}"
        )
        self.worker = worker
        self.exception = exception

    def __reduce__(self):
        return type(self), (self.worker, self.exception)
