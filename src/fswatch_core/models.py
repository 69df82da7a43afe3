"""Shared data models for fswatch_core."""

import os
from dataclasses import dataclass, field
from signal import Signals

from pathspec import GitIgnoreSpec


@dataclass(frozen=True)
class FSEvent:
    """A single accepted file change, passed by value through the bus."""

    path: str
    """Path of the changed file."""


@dataclass
class TriggerConfig:
    """A named rule pairing a file-pattern set with a command to run/restart."""

    name: str = ""
    """Identifier used in log output (not required to be unique)."""

    patterns: list[str] = field(default_factory=list)
    """Gitignore-style rules selecting the paths this trigger reacts to."""

    environ: dict[str, str] = field(default_factory=dict)
    """Extra environment variables merged on top of the inherited environment."""

    command: str = ""
    """Shell command line to execute."""

    delay: str | None = None
    """Restart delay as a duration string (e.g. "100ms")."""

    signal: str | None = None
    """Name of the signal used to terminate a running instance."""

    # Filled in by fix_config()
    delay_seconds: float | None = field(default=None, repr=False, compare=False)
    kill_signal: Signals | None = field(default=None, repr=False, compare=False)
    matcher: GitIgnoreSpec | None = field(default=None, repr=False, compare=False)

    @property
    def is_fixed(self) -> bool:
        """Whether delay, signal and patterns have been resolved."""
        return (
            self.delay_seconds is not None
            and self.kill_signal is not None
            and self.matcher is not None
        )

    def matches(self, path: str) -> bool:
        """Check a changed path against the compiled pattern rules.

        Args:
            path: Path of the changed file (absolute or relative to cwd)

        Returns:
            True if the last matching rule includes the path

        Raises:
            RuntimeError: If the trigger was never passed through fix_config()
        """
        if self.matcher is None:
            raise RuntimeError(f"Trigger '{self.name}' has no compiled patterns")
        return self.matcher.match_file(_match_path(path))


@dataclass
class WatchConfig:
    """Root configuration, built once before the engine starts."""

    description: str = ""
    """Free text, informational only."""

    watch_paths: list[str] = field(default_factory=list)
    """Root directories to watch (defaults to the current directory)."""

    watch_depth: int | None = None
    """Maximum directory nesting depth to register below each root."""

    triggers: list[TriggerConfig] = field(default_factory=list)
    """Ordered trigger rules."""


def _match_path(path: str) -> str:
    """Express a path relative to cwd so patterns read like .gitignore rules."""
    if not os.path.isabs(path):
        return path
    try:
        return os.path.relpath(path)
    except ValueError:
        # Different drive on Windows
        return path
