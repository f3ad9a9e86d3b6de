import logging
import os
import sys

import dask
import yaml

config = dask.config.config


fn = os.path.join(os.path.dirname(__file__), "ddarray.yaml")
dask.config.ensure_file(source=fn)

with open(fn) as f:
    defaults = yaml.safe_load(f)

dask.config.update_defaults(defaults)


#########################
# Logging specific code #
#########################
#
# Here we enact the policies in the admin part of the configuration

logger = logging.getLogger(__name__)


def initialize_logging(config):
    """Attach a stderr handler to the ``ddarray`` logger

    Level and format come from ``ddarray.admin.log-level`` and
    ``ddarray.admin.log-format``.
    """
    level = dask.config.get("ddarray.admin.log-level", config=config)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(dask.config.get("ddarray.admin.log-format", config=config))
    )
    root = logging.getLogger("ddarray")
    root.setLevel(level)
    root.handlers[:] = []
    root.addHandler(handler)
    root.propagate = False


initialize_logging(dask.config.config)
