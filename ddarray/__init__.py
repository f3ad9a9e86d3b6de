from . import config  # load ddarray configuration first
from .core import (
    DistributedArray,
    SubArray,
    gather,
    linear_view,
    local_storage,
    owned_range,
    owners,
    view,
)
from .dispatch import apply_into
from .exceptions import DDArrayError, RemoteExecutionError, ShapeMismatch
from .materialize import apply
from .partition import distribute, from_function, full, ones, zeros
from .plan import broadcasted, build_plan
from .shape import broadcast_shapes

__version__ = "0.1.0"
