"""Pytest configuration for the pipe field tests."""
import random
import sys
from pathlib import Path

import pytest

# Make the top-level modules importable without installing the project
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pipe_core import OccupancyGrid  # noqa: E402
from pipe_render import SvgPipeScene  # noqa: E402


class ScriptedRandom(random.Random):
    """Random source whose random() replays fixed values, then falls back to a seed."""

    def __init__(self, values, seed=0):
        super().__init__(seed)
        self.values = list(values)

    def random(self):
        if self.values:
            return self.values.pop(0)
        return super().random()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def scene():
    return SvgPipeScene()


@pytest.fixture
def grid():
    return OccupancyGrid()


@pytest.fixture
def scripted():
    return ScriptedRandom
