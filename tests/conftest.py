import logging
from unittest.mock import MagicMock

import pytest

from stackstrap.config_models import AppSettings


class FakeClock:
    """Monotonic clock and sleep that only advance when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def app_settings():
    """Fixture to provide a basic AppSettings object."""
    return AppSettings(
        log_prefix="test_prefix",
        container_runtime_command="docker",
        process_lookup_command="pgrep",
        symbols={"warning": "!", "gear": "⚙️", "error": "❌"},
    )


@pytest.fixture
def mock_logger():
    """Fixture to create a mock logger for testing."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def fake_clock():
    return FakeClock()
