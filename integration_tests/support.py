"""
Shared test environment for the StageFS integration tests.

Each test gets a fresh allowed root and a separate data directory, so backups
and staging files never show up inside the sandbox being tested.
"""

import os
import shutil
import tempfile
import unittest

from stagefs.config import ServerConfig
from stagefs.orchestrator import MutationOrchestrator

START_TIME = 1_700_000_000.0


class FakeClock:
    """Deterministic clock shared by the version store and the session registry."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def time(self) -> float:
        return self.now

    def ms(self) -> int:
        return int(self.now * 1000)

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_workspace(prefix: str = "stagefs_test_"):
    """Creates (root, data_dir) temp directories with symlinks resolved."""
    root = os.path.realpath(tempfile.mkdtemp(prefix=prefix + "root_"))
    data_dir = os.path.realpath(tempfile.mkdtemp(prefix=prefix + "data_"))
    return root, data_dir


def write_file(path: str, content: str) -> str:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)
    return path


def read_file(path: str) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


class StageFSTestCase(unittest.TestCase):
    """Base class providing a configured orchestrator over a temporary root."""

    session_timeout = 3600.0

    def setUp(self):
        self.root, self.data_dir = make_workspace()
        self.clock = FakeClock()
        self.config = ServerConfig.create(
            [self.root],
            data_dir=self.data_dir,
            session_timeout=self.session_timeout,
            lock_timeout=2,
        )
        self.orchestrator = MutationOrchestrator.startup(
            self.config, clock=self.clock.time, clock_ms=self.clock.ms
        )

    def tearDown(self):
        for d in (self.root, self.data_dir):
            shutil.rmtree(d, ignore_errors=True)

    def path(self, *parts: str) -> str:
        return os.path.join(self.root, *parts)

    def assertError(self, result: dict, code: str) -> None:
        self.assertEqual(result.get("status"), "error", result)
        self.assertEqual(result.get("error"), code, result)
        self.assertTrue(result.get("message"))
