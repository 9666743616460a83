import os
import sys
from pathlib import Path

# Keep test runs from writing rotating log files into the repository.
os.environ.setdefault("GENUI_LOG_TO_FILE", "0")

# To allow imports from core and genui
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def valid_output():
    return {"confidence": 0.8, "ui": {"layout": {}, "components": []}}


@pytest.fixture
def no_sleep():
    """Zero-delay replacement for asyncio.sleep that records requested delays."""
    delays = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays
    return _sleep
