"""Per-trigger restart loop driven by change events from the bus."""

import asyncio
import logging
from enum import Enum

from fswatch_core.models import FSEvent, TriggerConfig
from fswatch_core.notifier import FswatchNotifier, NoOpNotifier
from fswatch_core.supervisor import ProcessSupervisor

logger = logging.getLogger(__name__)


class TriggerState(Enum):
    """Lifecycle of a trigger engine."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    TERMINATED = "terminated"


class TriggerEngine:
    """Restart a trigger's command whenever a matching change arrives.

    Starts the command as soon as run() is entered. Each matching event stops
    the current process, waits out the trigger's delay so editor save bursts
    coalesce, then starts a fresh one. A ``None`` on the channel means the bus
    was closed: the process is stopped and run() returns.
    """

    def __init__(
        self,
        trigger: TriggerConfig,
        channel: asyncio.Queue,
        notifier: FswatchNotifier | None = None,
        supervisor: ProcessSupervisor | None = None,
    ):
        """Initialize engine.

        Args:
            trigger: Fixed trigger configuration (see fix_config)
            channel: Bus channel delivering FSEvents, closed with None
            notifier: Where status lines are reported
            supervisor: Process owner; built from the trigger when omitted
        """
        if not trigger.is_fixed:
            raise ValueError(f"Trigger '{trigger.name}' must be fixed before use")
        self.trigger = trigger
        self.channel = channel
        self.notifier = notifier or NoOpNotifier()
        self.supervisor = supervisor or ProcessSupervisor(
            name=trigger.name,
            command=trigger.command,
            environ=trigger.environ,
            kill_signal=trigger.kill_signal,
            notifier=self.notifier,
        )
        self.state = TriggerState.IDLE
        self.restarts = 0

    @property
    def name(self) -> str:
        return self.trigger.name

    async def run(self) -> None:
        """Process events until the channel is closed."""
        await self._start()

        while True:
            event: FSEvent | None = await self.channel.get()
            if event is None:
                break
            if not self.trigger.matches(event.path):
                continue
            await self._restart(event)

        self._stop()
        self.state = TriggerState.TERMINATED
        logger.debug(f"[{self.name}] terminated after {self.restarts} restart(s)")

    async def _restart(self, event: FSEvent) -> None:
        self._stop()
        self.notifier.info(f"changed: {event.path}")
        self.notifier.info(f"delay: {self.trigger.delay}")
        await asyncio.sleep(self.trigger.delay_seconds)
        self.restarts += 1
        await self._start()

    async def _start(self) -> None:
        try:
            await self.supervisor.start()
        except OSError as e:
            # Stay alive; the next matching change tries again
            self.notifier.error(f"[{self.name}] failed to start: {e}")
            self.state = TriggerState.IDLE
            return
        self.state = TriggerState.RUNNING

    def _stop(self) -> None:
        self.state = TriggerState.STOPPING
        self.supervisor.stop()
