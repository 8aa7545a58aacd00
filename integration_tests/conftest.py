"""
Configuration for integration tests.

Provides pytest fixtures for function-style tests; the unittest classes build
their own environment through integration_tests.support.
"""

import shutil

import pytest

from integration_tests.support import FakeClock, make_workspace
from stagefs.config import ServerConfig
from stagefs.orchestrator import MutationOrchestrator


@pytest.fixture
def workspace():
    """Return (root, data_dir) temporary directories, removed afterwards."""
    root, data_dir = make_workspace()
    yield root, data_dir
    shutil.rmtree(root, ignore_errors=True)
    shutil.rmtree(data_dir, ignore_errors=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(workspace):
    root, data_dir = workspace
    return ServerConfig.create([root], data_dir=data_dir, lock_timeout=2)


@pytest.fixture
def orchestrator(config, clock):
    """Return an orchestrator over the temporary workspace with a fake clock."""
    return MutationOrchestrator.startup(config, clock=clock.time, clock_ms=clock.ms)
