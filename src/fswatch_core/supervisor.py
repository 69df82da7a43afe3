"""Process lifecycle for a single trigger: spawn, observe exit, terminate by signal."""

import asyncio
import logging
import os
import signal
import subprocess
import time

from fswatch_core.notifier import FswatchNotifier, NoOpNotifier

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


def build_environment(overrides: dict[str, str] | None = None) -> dict[str, str]:
    """Inherited environment with trigger-specific overrides on top."""
    env = dict(os.environ)
    env.update(overrides or {})
    return env


def format_duration(seconds: float) -> str:
    """Format elapsed seconds for status lines (e.g. "850ms", "3.2s", "2m5s")."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs}s"


def describe_exit(returncode: int) -> str:
    """Human-readable exit condition of a finished process."""
    if returncode < 0:
        try:
            return f"signal: {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status {returncode}"


class ProcessSupervisor:
    """Owns at most one running instance of a trigger's command.

    Only the owning trigger engine touches a supervisor, so no locking is needed.
    """

    def __init__(
        self,
        name: str,
        command: str,
        environ: dict[str, str] | None = None,
        kill_signal: signal.Signals = signal.SIGTERM,
        notifier: FswatchNotifier | None = None,
    ):
        """Initialize supervisor.

        Args:
            name: Trigger name used in status lines
            command: Shell command line
            environ: Extra environment variables
            kill_signal: Signal sent by stop()
            notifier: Where status lines are reported
        """
        self.name = name
        self.command = command
        self.environ = environ or {}
        self.kill_signal = kill_signal
        self.notifier = notifier or NoOpNotifier()
        self.process: asyncio.subprocess.Process | None = None
        self._waiters: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        """Whether a started process has not been stopped and has not exited."""
        return self.process is not None and self.process.returncode is None

    async def start(self) -> asyncio.subprocess.Process:
        """Spawn the command and detach a task that reports its exit.

        Raises:
            OSError: If the process cannot be spawned
        """
        self.notifier.info(f"[{self.name}] exec start: {self.command}")
        started = time.monotonic()

        kwargs = {}
        if IS_WINDOWS:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True

        process = await asyncio.create_subprocess_shell(
            self.command,
            env=build_environment(self.environ),
            **kwargs,
        )
        self.process = process

        # Never awaited by the trigger; keep a reference so it is not collected
        waiter = asyncio.create_task(self._wait(process, started))
        self._waiters.add(waiter)
        waiter.add_done_callback(self._waiters.discard)
        return process

    async def _wait(self, process: asyncio.subprocess.Process, started: float) -> None:
        returncode = await process.wait()
        if returncode != 0:
            self.notifier.error(f"[{self.name}] program exited: {describe_exit(returncode)}")
        self.notifier.info(f"[{self.name}] finish in {format_duration(time.monotonic() - started)}")

    def stop(self) -> bool:
        """Send the kill signal to the running process tree.

        Returns:
            True if a signal was sent, False if nothing was running
        """
        process, self.process = self.process, None
        if process is None or process.returncode is not None:
            return False

        try:
            self._terminate(process)
        except ProcessLookupError:
            logger.debug(f"[{self.name}] process {process.pid} already gone")
            return False

        self.notifier.info(f"[{self.name}] program terminated, signal({self.kill_signal.name})")
        return True

    def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if IS_WINDOWS:
            # No process groups to signal; take the whole tree down
            result = subprocess.run(
                ["taskkill", "/T", "/F", "/PID", str(process.pid)],
                capture_output=True,
            )
            if result.returncode != 0:
                raise ProcessLookupError(process.pid)
            return
        os.killpg(process.pid, self.kill_signal)
