"""Tests for FswatchController wiring and shutdown coordination."""

import asyncio
import os
import shlex
import signal
import threading
from unittest.mock import MagicMock

import pytest

from fswatch.controller import FswatchController
from fswatch_core.config import ConfigError
from fswatch_core.models import FSEvent, TriggerConfig, WatchConfig
from fswatch_core.notifier import NoOpNotifier

posix_only = pytest.mark.skipif(os.name == "nt", reason="requires POSIX signals")


def make_config(tmp_path, *triggers: TriggerConfig, depth: int = 5) -> WatchConfig:
    return WatchConfig(watch_paths=[str(tmp_path)], watch_depth=depth, triggers=list(triggers))


async def wait_for_file(path, predicate=lambda text: True, timeout: float = 5.0) -> str:
    """Poll until path exists and its content satisfies predicate."""
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if path.exists():
            text = path.read_text()
            if predicate(text):
                return text
        await asyncio.sleep(0.05)
    raise AssertionError(f"Timed out waiting for {path}")


def test_controller_fixes_config(tmp_path):
    config = make_config(tmp_path, TriggerConfig(name="t", patterns=["*.py"], command="true", signal="TERM"))
    controller = FswatchController(config)

    assert controller.config.triggers[0].is_fixed
    assert isinstance(controller.notifier, NoOpNotifier)


def test_controller_rejects_invalid_config(tmp_path):
    config = make_config(tmp_path, TriggerConfig(name="t", command="true", signal="BOGUS"))
    with pytest.raises(ConfigError):
        FswatchController(config)


@pytest.mark.asyncio
async def test_attach_with_not_running_loop(tmp_path):
    controller = FswatchController(make_config(tmp_path), observer_factory=MagicMock)
    loop = asyncio.new_event_loop()
    try:
        with pytest.raises(RuntimeError, match="Event loop must be running"):
            controller.attach(loop)
    finally:
        loop.close()


@pytest.mark.asyncio
async def test_attach_detach(tmp_path, notifier):
    (tmp_path / "src").mkdir()
    factory = MagicMock()
    controller = FswatchController(make_config(tmp_path), notifier=notifier, observer_factory=factory)
    loop = asyncio.get_running_loop()

    controller.attach(loop)
    controller.attach(loop)

    factory.assert_called_once()
    factory.return_value.start.assert_called_once()
    assert controller.tree_watcher.is_watched(str(tmp_path / "src"))

    controller.detach()
    factory.return_value.stop.assert_called_once()
    assert controller.observer is None


@pytest.mark.asyncio
async def test_events_from_observer_thread_reach_bus(tmp_path):
    controller = FswatchController(make_config(tmp_path), observer_factory=MagicMock)
    controller.attach(asyncio.get_running_loop())

    thread = threading.Thread(target=controller._publish_threadsafe, args=(FSEvent("x.go"),))
    thread.start()
    thread.join()
    await asyncio.sleep(0.05)

    assert controller.bus._ingress.qsize() == 1
    controller.detach()


def test_publish_ignored_when_detached(tmp_path):
    controller = FswatchController(make_config(tmp_path), observer_factory=MagicMock)
    controller._publish_threadsafe(FSEvent("x.go"))
    assert controller.bus._ingress.qsize() == 0


def test_request_shutdown_is_idempotent(tmp_path, notifier):
    controller = FswatchController(make_config(tmp_path), notifier=notifier)

    controller.request_shutdown(signal.SIGINT)
    controller.request_shutdown(signal.SIGTERM)

    assert controller.shutdown_requested
    assert controller.bus.closed
    assert notifier.lines("info") == ["Catch signal SIGINT!"]


@pytest.mark.asyncio
async def test_run_without_triggers_returns(tmp_path, notifier):
    controller = FswatchController(make_config(tmp_path), notifier=notifier, observer_factory=MagicMock)
    await asyncio.wait_for(controller.run(), timeout=2)
    assert any("No triggers" in line for line in notifier.lines("warning"))


@posix_only
@pytest.mark.asyncio
async def test_interrupt_stops_every_trigger_before_exit(tmp_path, notifier):
    watched = tmp_path / "project"
    watched.mkdir()
    markers = [tmp_path / "a.stopped", tmp_path / "b.stopped"]
    triggers = [
        TriggerConfig(
            name=f"t{i}",
            patterns=["*.go"],
            command=f"trap 'echo stopped > {shlex.quote(str(marker))}; exit 0' TERM; "
            f"while true; do sleep 0.1; done",
            signal="TERM",
        )
        for i, marker in enumerate(markers)
    ]
    controller = FswatchController(make_config(watched, *triggers), notifier=notifier)

    loop = asyncio.get_running_loop()
    loop.call_later(0.5, os.kill, os.getpid(), signal.SIGINT)
    await asyncio.wait_for(controller.run(), timeout=10)

    info = notifier.lines("info")
    assert "Catch signal SIGINT!" in info
    assert "Kill all running ... Done" in info
    assert sum("program terminated, signal(SIGTERM)" in line for line in info) == 2
    for marker in markers:
        assert (await wait_for_file(marker)).strip() == "stopped"


@posix_only
@pytest.mark.asyncio
async def test_matching_change_restarts_command(tmp_path, notifier):
    watched = tmp_path / "project"
    watched.mkdir()
    log = tmp_path / "starts.log"
    trigger = TriggerConfig(
        name="build",
        patterns=["*.go"],
        command=f"echo started >> {shlex.quote(str(log))}; exec sleep 30",
        delay="50ms",
        signal="TERM",
    )
    controller = FswatchController(make_config(watched, trigger), notifier=notifier)
    task = asyncio.create_task(controller.run())

    try:
        await wait_for_file(log, lambda text: text.count("started") == 1)
        await asyncio.sleep(0.3)

        (watched / "main.go").write_text("package main\n")
        await wait_for_file(log, lambda text: text.count("started") >= 2)
        await asyncio.sleep(0.5)
        starts = log.read_text().count("started")

        (watched / "README.md").write_text("# readme\n")
        await asyncio.sleep(0.5)
        assert log.read_text().count("started") == starts
    finally:
        controller.request_shutdown()
        await asyncio.wait_for(task, timeout=10)

    assert any(line.endswith("main.go") and line.startswith("changed: ") for line in notifier.lines("info"))
    assert not any("README.md" in line for line in notifier.lines())
