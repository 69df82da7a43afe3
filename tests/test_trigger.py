"""Tests for TriggerEngine restart sequencing."""

import asyncio
from unittest.mock import MagicMock

import pytest

from fswatch_core.models import FSEvent, TriggerConfig
from fswatch_core.trigger import TriggerEngine, TriggerState


class FakeSupervisor:
    """Records start/stop calls and tracks how many processes are live."""

    def __init__(self, fail_starts: int = 0):
        self.fail_starts = fail_starts
        self.calls: list[tuple[str, float]] = []
        self.live = 0
        self.max_live = 0

    async def start(self):
        if self.fail_starts:
            self.fail_starts -= 1
            raise OSError("spawn failed")
        self.live += 1
        self.max_live = max(self.max_live, self.live)
        self.calls.append(("start", asyncio.get_running_loop().time()))

    def stop(self) -> bool:
        was_running = self.live > 0
        self.live = 0
        self.calls.append(("stop", asyncio.get_running_loop().time()))
        return was_running

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.calls]


def feed(*paths) -> asyncio.Queue:
    """Channel pre-filled with events and closed."""
    channel: asyncio.Queue = asyncio.Queue()
    for path in paths:
        channel.put_nowait(FSEvent(path))
    channel.put_nowait(None)
    return channel


@pytest.mark.asyncio
async def test_starts_immediately_and_stops_on_close(make_trigger, notifier):
    supervisor = FakeSupervisor()
    engine = TriggerEngine(make_trigger(), feed(), notifier, supervisor)
    assert engine.state == TriggerState.IDLE

    await asyncio.wait_for(engine.run(), timeout=2)

    assert supervisor.kinds == ["start", "stop"]
    assert engine.state == TriggerState.TERMINATED
    assert supervisor.live == 0


@pytest.mark.asyncio
async def test_matching_change_restarts_after_delay(make_trigger, notifier):
    supervisor = FakeSupervisor()
    trigger = make_trigger(patterns=["*.go"], delay="50ms")
    engine = TriggerEngine(trigger, feed("main.go", "README.md"), notifier, supervisor)

    await asyncio.wait_for(engine.run(), timeout=2)

    assert supervisor.kinds == ["start", "stop", "start", "stop"]
    stopped_at = supervisor.calls[1][1]
    restarted_at = supervisor.calls[2][1]
    assert restarted_at - stopped_at >= 0.049
    assert engine.restarts == 1
    assert "changed: main.go" in notifier.lines("info")
    assert "delay: 50ms" in notifier.lines("info")
    assert not any("README.md" in line for line in notifier.lines())


@pytest.mark.asyncio
async def test_non_matching_change_is_ignored(make_trigger, notifier):
    supervisor = FakeSupervisor()
    engine = TriggerEngine(make_trigger(patterns=["*.go"]), feed("README.md", "docs/a.txt"), notifier, supervisor)

    await asyncio.wait_for(engine.run(), timeout=2)

    assert supervisor.kinds == ["start", "stop"]
    assert engine.restarts == 0


@pytest.mark.asyncio
async def test_at_most_one_live_process(make_trigger, notifier):
    supervisor = FakeSupervisor()
    paths = ["a.go", "b.go", "README.md", "c.go"] * 5
    engine = TriggerEngine(make_trigger(patterns=["*.go"]), feed(*paths), notifier, supervisor)

    await asyncio.wait_for(engine.run(), timeout=5)

    assert supervisor.max_live == 1
    # Every start after the first is preceded by a stop
    kinds = supervisor.kinds
    for i, kind in enumerate(kinds[1:], start=1):
        if kind == "start":
            assert kinds[i - 1] == "stop"
    assert engine.restarts == 15


@pytest.mark.asyncio
async def test_start_failure_is_not_fatal(make_trigger, notifier):
    supervisor = FakeSupervisor(fail_starts=1)
    engine = TriggerEngine(make_trigger(patterns=["*.go"]), feed("main.go"), notifier, supervisor)

    await asyncio.wait_for(engine.run(), timeout=2)

    assert any("failed to start" in line for line in notifier.lines("error"))
    assert supervisor.kinds == ["stop", "start", "stop"]
    assert engine.state == TriggerState.TERMINATED


@pytest.mark.asyncio
async def test_events_in_flight_are_processed_before_close(make_trigger, notifier):
    supervisor = FakeSupervisor()
    channel: asyncio.Queue = asyncio.Queue(maxsize=1)
    engine = TriggerEngine(make_trigger(patterns=["*.go"], delay="20ms"), channel, notifier, supervisor)
    task = asyncio.create_task(engine.run())

    await channel.put(FSEvent("one.go"))
    await channel.put(FSEvent("two.go"))
    await channel.put(None)
    await asyncio.wait_for(task, timeout=2)

    assert engine.restarts == 2
    assert supervisor.kinds[-1] == "stop"


@pytest.mark.asyncio
async def test_match_error_propagates(make_trigger, notifier):
    trigger = make_trigger()
    trigger.matcher = MagicMock()
    trigger.matcher.match_file.side_effect = RuntimeError("corrupt rules")
    engine = TriggerEngine(trigger, feed("main.go"), notifier, FakeSupervisor())

    with pytest.raises(RuntimeError, match="corrupt rules"):
        await asyncio.wait_for(engine.run(), timeout=2)


def test_unfixed_trigger_rejected():
    with pytest.raises(ValueError, match="must be fixed"):
        TriggerEngine(TriggerConfig(name="raw", command="true"), asyncio.Queue())


def test_default_supervisor_built_from_trigger(make_trigger):
    trigger = make_trigger(command="make test", environ={"A": "1"}, signal="INT")
    engine = TriggerEngine(trigger, asyncio.Queue())

    assert engine.supervisor.command == "make test"
    assert engine.supervisor.environ == {"A": "1"}
    assert engine.supervisor.kill_signal == trigger.kill_signal
    assert engine.name == "test"
