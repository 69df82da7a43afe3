"""Controller wiring the watch pipeline to the trigger engines. Primary embed point."""

import asyncio
import logging
import signal

from watchdog.observers import Observer

from fswatch_core.bus import EventBus
from fswatch_core.config import fix_config
from fswatch_core.file_watcher import ChangeFilter, TreeWatcher
from fswatch_core.models import FSEvent, WatchConfig
from fswatch_core.notifier import FswatchNotifier, NoOpNotifier
from fswatch_core.trigger import TriggerEngine

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class FswatchController:
    """Owns the observer, the bus and one engine per trigger.

    Data flows observer thread -> ChangeFilter -> EventBus (loop thread) ->
    TriggerEngine tasks. Shutdown is cooperative: request_shutdown() closes the
    bus, each engine stops its process, and run() returns once all are done.

    Usage (Embedded):
        controller = FswatchController(load_config())
        await controller.run()          # returns after request_shutdown()
    """

    def __init__(
        self,
        config: WatchConfig,
        notifier: FswatchNotifier | None = None,
        observer_factory=Observer,
    ):
        """Initialize controller.

        Args:
            config: Watch configuration; fixed here if it was not already
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
            observer_factory: Callable returning a watchdog observer

        Raises:
            ConfigError: If the configuration is invalid
        """
        self.config = fix_config(config)
        self.notifier = notifier or NoOpNotifier()
        self._observer_factory = observer_factory
        self._loop: asyncio.AbstractEventLoop | None = None
        self._shutdown_requested = False
        self._loop_signals: list[signal.Signals] = []
        self._previous_handlers: dict[signal.Signals, object] = {}

        self.bus = EventBus()
        self.engines: list[TriggerEngine] = []
        self.observer = None
        self.tree_watcher: TreeWatcher | None = None
        self.change_filter: ChangeFilter | None = None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the observer and register every watched directory.

        Idempotent; the loop must already be running.
        """
        if self._loop is not None:
            return

        if not loop.is_running():
            raise RuntimeError("Event loop must be running before attach().")

        self._loop = loop
        self.observer = self._observer_factory()
        self.observer.start()

        self.tree_watcher = TreeWatcher(self.observer, self.notifier)
        self.change_filter = ChangeFilter(self.tree_watcher, self._publish_threadsafe, self.notifier)
        self.tree_watcher.watch(self.config.watch_paths, self.config.watch_depth, self.change_filter)
        self.notifier.info(
            f"Watching {len(self.tree_watcher)} directories "
            f"(paths: {', '.join(self.config.watch_paths)}, depth: {self.config.watch_depth})"
        )

    def detach(self) -> None:
        """Stop the observer and cleanup."""
        if self.observer is not None:
            try:
                self.observer.stop()
                self.observer.join(timeout=2.0)
            except RuntimeError as e:
                logger.error(f"Error stopping observer: {e}")
            self.observer = None
        self._loop = None

    def _publish_threadsafe(self, event: FSEvent) -> None:
        """Hand an accepted event from the observer thread to the loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Change to {event.path} ignored - controller not attached")
            return
        loop.call_soon_threadsafe(self.bus.publish, event)

    def request_shutdown(self, signum: int | None = None) -> None:
        """Close the bus once; every trigger then stops its process and exits."""
        if self._shutdown_requested:
            logger.debug("Shutdown already in progress")
            return
        self._shutdown_requested = True

        if signum is not None:
            self.notifier.info(f"Catch signal {signal.Signals(signum).name}!")
        else:
            self.notifier.info("Shutdown requested")
        self.bus.close()

    async def run(self) -> None:
        """Run until shutdown is requested and every trigger has stopped."""
        if not self.config.triggers:
            self.notifier.warning("No triggers configured, nothing to do")
            return

        loop = asyncio.get_running_loop()
        self.attach(loop)
        self._install_signal_handlers(loop)

        try:
            self.engines = [
                TriggerEngine(trigger, self.bus.subscribe(), self.notifier)
                for trigger in self.config.triggers
            ]
            bus_task = asyncio.create_task(self.bus.run())
            await asyncio.gather(*(engine.run() for engine in self.engines))
            await bus_task
        except BaseException:
            # Do not leave children behind when aborting
            for engine in self.engines:
                engine.supervisor.stop()
            raise
        finally:
            self._restore_signal_handlers(loop)
            self.detach()

        self.notifier.info("Kill all running ... Done")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig)
                self._loop_signals.append(sig)
                continue
            except (NotImplementedError, RuntimeError):
                pass

            # Loops without add_signal_handler (Windows)
            def handler(signum, frame, loop=loop):
                loop.call_soon_threadsafe(self.request_shutdown, signum)

            try:
                self._previous_handlers[sig] = signal.signal(sig, handler)
            except ValueError as e:
                logger.warning(f"Cannot install handler for {sig.name}: {e}")

    def _restore_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._loop_signals:
            loop.remove_signal_handler(sig)
        self._loop_signals.clear()

        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._previous_handlers.clear()
