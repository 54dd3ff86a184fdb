from __future__ import annotations

from pathlib import Path

import pytest

from git_statusline.config import Options
from git_statusline.engine import StatusEngine
from tests.fakes import FakeRunner, FakeWatchFactory


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def watches() -> FakeWatchFactory:
    return FakeWatchFactory()


@pytest.fixture
def options(tmp_path: Path) -> Options:
    return Options(working_directory=str(tmp_path), status_cooldown=50, debug_logging=True)


@pytest.fixture
def engine(options: Options, runner: FakeRunner, watches: FakeWatchFactory) -> StatusEngine:
    return StatusEngine(options, runner=runner, watch_factory=watches)
