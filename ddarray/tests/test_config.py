import logging

import dask

import ddarray  # noqa: F401
from ddarray.config import initialize_logging


def test_defaults():
    assert dask.config.get("ddarray.partition.max-workers") is None
    assert dask.config.get("ddarray.partition.min-block-size") == 1
    assert dask.config.get("ddarray.localize.warn-foreign-bytes") == "64MiB"
    assert dask.config.get("ddarray.admin.log-level") == "warning"


def test_initialize_logging():
    logger = logging.getLogger("ddarray")
    try:
        with dask.config.set({"ddarray.admin.log-level": "debug"}):
            initialize_logging(dask.config.config)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not logger.propagate

        with dask.config.set({"ddarray.admin.log-format": "%(message)s"}):
            initialize_logging(dask.config.config)
        assert logger.handlers[0].formatter._fmt == "%(message)s"
    finally:
        initialize_logging(dask.config.config)
