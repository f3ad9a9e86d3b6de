from __future__ import annotations

import pytest

pytest.register_assert_rewrite("ddarray.tests.utils")


def pytest_addoption(parser):
    parser.addoption("--runslow", action="store_true", help="run slow tests")


def pytest_runtest_setup(item):
    if "slow" in item.keywords and not item.config.getoption("--runslow"):
        pytest.skip("need --runslow option to run")


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: marks tests that need --runslow")
