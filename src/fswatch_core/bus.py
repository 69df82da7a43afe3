"""Single-producer, multi-consumer fan-out of change events."""

import asyncio
import logging

from fswatch_core.models import FSEvent

logger = logging.getLogger(__name__)

# Small buffer per trigger; a slow trigger back-pressures the bus instead of losing events
CHANNEL_SIZE = 1


class EventBus:
    """Broadcast each published FSEvent to every subscribed channel.

    Closing the bus is the sole shutdown signal: once the ingress is drained,
    every channel receives a single ``None`` sentinel meaning "no more events".

    Usage:
        bus = EventBus()
        channel = bus.subscribe()
        task = asyncio.create_task(bus.run())
        bus.publish(FSEvent("main.py"))
        bus.close()
        await task
    """

    def __init__(self, channel_size: int = CHANNEL_SIZE):
        """Initialize bus.

        Args:
            channel_size: Buffer size of each subscriber channel
        """
        self.channel_size = channel_size
        self._ingress: asyncio.Queue[FSEvent | None] = asyncio.Queue()
        self._channels: list[asyncio.Queue[FSEvent | None]] = []
        self._closed = False
        self._running = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def channels(self) -> list[asyncio.Queue]:
        return list(self._channels)

    def subscribe(self) -> asyncio.Queue:
        """Create a channel receiving every future event.

        Raises:
            RuntimeError: If the bus is already running or closed
        """
        if self._running or self._closed:
            raise RuntimeError("Subscribe before the bus starts running")
        channel: asyncio.Queue[FSEvent | None] = asyncio.Queue(maxsize=self.channel_size)
        self._channels.append(channel)
        return channel

    def publish(self, event: FSEvent) -> None:
        """Queue an event for fan-out. Must be called on the loop thread."""
        if self._closed:
            logger.debug(f"Bus closed, dropping event for {event.path}")
            return
        self._ingress.put_nowait(event)

    def close(self) -> None:
        """Close the ingress; channels are closed once pending events are delivered."""
        if self._closed:
            return
        self._closed = True
        self._ingress.put_nowait(None)

    async def run(self) -> None:
        """Deliver events in publish order until the bus is closed."""
        self._running = True
        while True:
            event = await self._ingress.get()
            if event is None:
                break
            for channel in self._channels:
                await channel.put(event)

        for channel in self._channels:
            await channel.put(None)
        logger.debug(f"Bus closed {len(self._channels)} channel(s)")
