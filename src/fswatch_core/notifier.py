"""Pluggable notification protocol for fswatch_core.

Every user-visible status line (watch registration, restarts, exits) goes
through a notifier, so the engine never decides how lines are presented.
Can be replaced with custom handlers for testing or embedding.
"""

import logging
from typing import Protocol


class FswatchNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent no-op notifier - default for embedded mode."""

    def info(self, msg: str) -> None:
        """Do nothing."""
        pass

    def warning(self, msg: str) -> None:
        """Do nothing."""
        pass

    def error(self, msg: str) -> None:
        """Do nothing."""
        pass


class LoggingNotifier:
    """Implementation using stdlib logging - used by the fswatch CLI."""

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("fswatch")

    def info(self, msg: str) -> None:
        self.logger.info(msg)

    def warning(self, msg: str) -> None:
        self.logger.warning(msg)

    def error(self, msg: str) -> None:
        self.logger.error(msg)
