"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from fswatch_core.config import fix_config  # noqa: E402
from fswatch_core.models import TriggerConfig, WatchConfig  # noqa: E402


class RecordingNotifier:
    """Notifier collecting (level, message) pairs."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def info(self, msg: str) -> None:
        self.messages.append(("info", msg))

    def warning(self, msg: str) -> None:
        self.messages.append(("warning", msg))

    def error(self, msg: str) -> None:
        self.messages.append(("error", msg))

    def lines(self, level: str | None = None) -> list[str]:
        return [m for lvl, m in self.messages if level is None or lvl == level]


@pytest.fixture
def notifier():
    """Fresh recording notifier."""
    return RecordingNotifier()


@pytest.fixture
def make_trigger():
    """Build a fixed TriggerConfig."""

    def factory(patterns=None, command="echo run", delay="0ms", signal="TERM", name="test", environ=None):
        config = WatchConfig(
            triggers=[
                TriggerConfig(
                    name=name,
                    patterns=list(patterns or ["*.go"]),
                    environ=environ or {},
                    command=command,
                    delay=delay,
                    signal=signal,
                )
            ]
        )
        return fix_config(config).triggers[0]

    return factory
