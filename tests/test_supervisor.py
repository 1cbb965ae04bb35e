import asyncio
import logging
import time

import pytest

from devreload.local.supervisor import (
    InstallFailedError,
    MissingArtifactError,
    PortTimeoutError,
    ReloadController,
)
from devreload.local.supervisor.installer import ArtifactInstaller


class FakeServer:
    def __init__(self, calls, gate=None, stop_error=None):
        self.calls = calls
        self.gate = gate
        self.stop_error = stop_error

    async def stop(self):
        self.calls.append("stop")
        if self.gate is not None:
            await self.gate.wait()
        if self.stop_error is not None:
            raise self.stop_error

    def start(self):
        self.calls.append("start")
        return True


class FakeInstaller:
    def __init__(self, calls, error=None, gate=None):
        self.calls = calls
        self.error = error
        self.gate = gate

    async def install(self):
        self.calls.append("install")
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


class FakeWatcher:
    instances = []

    def __init__(self, path, on_event, config=None):
        self.path = path
        self.on_event = on_event
        self.close_count = 0
        FakeWatcher.instances.append(self)

    async def start(self):
        pass

    async def close(self):
        self.close_count += 1


@pytest.fixture
def calls():
    return []


@pytest.fixture
def make_controller(make_config, calls):
    FakeWatcher.instances = []

    def _make(server=None, installer=None, **overrides):
        return ReloadController(
            config=make_config(**overrides),
            server=server or FakeServer(calls),
            installer=installer or FakeInstaller(calls),
            watcher_factory=FakeWatcher,
        )

    return _make


def record_reasons(controller, monkeypatch):
    reasons = []
    original = controller.run_restart_cycle

    async def _recording(reason):
        reasons.append(reason)
        return await original(reason)

    monkeypatch.setattr(controller, "run_restart_cycle", _recording)
    return reasons


async def settle(controller, seconds=0.3):
    await asyncio.sleep(seconds)
    while controller.restarting or controller.restart_pending:
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_startup_watches_then_installs_then_starts(make_controller, calls, artifact):
    controller = make_controller()

    await controller.start()

    assert calls == ["install", "start"]
    watcher = FakeWatcher.instances[0]
    assert watcher.path == artifact.resolve()


@pytest.mark.asyncio
async def test_missing_artifact_at_startup_never_starts_server(make_controller, calls):
    controller = make_controller()
    controller.installer = ArtifactInstaller(controller.config)

    with pytest.raises(MissingArtifactError):
        await controller.run()

    assert "start" not in calls
    assert FakeWatcher.instances[0].close_count == 1


@pytest.mark.asyncio
async def test_burst_of_events_runs_one_cycle_with_last_reason(make_controller, calls, monkeypatch):
    controller = make_controller()
    reasons = record_reasons(controller, monkeypatch)

    for i in range(5):
        controller.schedule_restart(f"event-{i}")
        await asyncio.sleep(0.01)
    assert controller.restart_pending

    await settle(controller)

    assert reasons == ["event-4"]
    assert calls == ["stop", "install", "start"]


@pytest.mark.asyncio
async def test_events_further_apart_than_the_window_each_restart(make_controller, calls):
    controller = make_controller()

    controller.on_artifact_event("add")
    await settle(controller)
    controller.on_artifact_event("change")
    await settle(controller)

    assert calls == ["stop", "install", "start"] * 2


@pytest.mark.asyncio
async def test_cycle_arriving_mid_cycle_is_dropped(make_controller, calls):
    gate = asyncio.Event()
    controller = make_controller(server=FakeServer(calls, gate=gate))

    first = asyncio.ensure_future(controller.run_restart_cycle("artifact:add"))
    await asyncio.sleep(0)
    assert controller.restarting

    assert await controller.run_restart_cycle("artifact:change") is False

    gate.set()
    assert await first is True
    assert calls == ["stop", "install", "start"]
    assert not controller.restarting


@pytest.mark.asyncio
async def test_debounced_fire_during_cycle_is_not_queued(make_controller, calls):
    gate = asyncio.Event()
    controller = make_controller(server=FakeServer(calls, gate=gate))

    controller.schedule_restart("artifact:add")
    await asyncio.sleep(0.15)
    controller.schedule_restart("artifact:change")
    await asyncio.sleep(0.15)

    gate.set()
    await settle(controller)

    assert calls.count("stop") == 1
    assert calls.count("start") == 1


@pytest.mark.asyncio
async def test_failed_cycle_leaves_server_stopped_and_unblocks_next(make_controller, calls):
    installer = FakeInstaller(calls, error=InstallFailedError(returncode=1))
    controller = make_controller(installer=installer)

    assert await controller.run_restart_cycle("artifact:change") is True
    assert calls == ["stop", "install"]
    assert not controller.restarting

    installer.error = None
    await controller.run_restart_cycle("artifact:change")
    assert calls == ["stop", "install", "stop", "install", "start"]


@pytest.mark.asyncio
async def test_unexpected_errors_do_not_escape_the_cycle(make_controller, calls, caplog):
    controller = make_controller(server=FakeServer(calls, stop_error=RuntimeError("boom")))

    assert await controller.run_restart_cycle("artifact:change") is True

    assert calls == ["stop"]
    assert "boom" in caplog.text
    assert not controller.restarting


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_restart_and_stops_server(make_controller, calls):
    controller = make_controller()
    await controller.start()
    controller.schedule_restart("artifact:change")

    await controller.shutdown()
    await asyncio.sleep(0.2)

    assert not controller.restart_pending
    assert calls == ["install", "start", "stop"]
    assert FakeWatcher.instances[0].close_count == 1
    assert controller.stopped.is_set()


@pytest.mark.asyncio
async def test_shutdown_completes_when_stop_times_out(make_controller, calls):
    server = FakeServer(calls, stop_error=PortTimeoutError(8080, 8.0))
    controller = make_controller(server=server)
    await controller.start()

    await controller.shutdown()

    assert controller.stopped.is_set()
    assert FakeWatcher.instances[0].close_count == 1


@pytest.mark.asyncio
async def test_termination_mid_cycle_waits_for_stop_and_skips_restart(make_controller, calls):
    gate = asyncio.Event()
    controller = make_controller(server=FakeServer(calls, gate=gate))
    await controller.start()
    calls.clear()

    cycle = asyncio.ensure_future(controller.run_restart_cycle("artifact:change"))
    await asyncio.sleep(0)
    controller.request_shutdown("SIGTERM")
    controller.request_shutdown("SIGINT")
    await asyncio.sleep(0.1)

    assert not controller.stopped.is_set()

    gate.set()
    await asyncio.wait_for(controller.stopped.wait(), timeout=2)
    await cycle

    assert "start" not in calls
    assert FakeWatcher.instances[0].close_count == 1


@pytest.mark.asyncio
async def test_restart_requests_after_shutdown_are_ignored(make_controller, calls):
    controller = make_controller()
    await controller.start()
    await controller.shutdown()
    calls.clear()

    controller.schedule_restart("artifact:change")

    assert not controller.restart_pending
    await asyncio.sleep(0.1)
    assert calls == []


@pytest.mark.asyncio
async def test_termination_during_startup_install_returns_promptly(make_controller, calls, artifact):
    artifact.parent.mkdir(parents=True)
    artifact.write_text("build-1")
    controller = make_controller(INSTALL_COMMAND='{python} -c "import time; time.sleep(6)"')
    controller.installer = ArtifactInstaller(controller.config)

    async def _terminate_soon():
        await asyncio.sleep(0.5)
        controller.request_shutdown("SIGTERM")

    began = time.monotonic()
    terminator = asyncio.ensure_future(_terminate_soon())
    await asyncio.wait_for(controller.run(), timeout=5)
    await terminator

    assert time.monotonic() - began < 3
    assert "start" not in calls
    assert controller.stopped.is_set()
    assert FakeWatcher.instances[0].close_count == 1


@pytest.mark.asyncio
async def test_startup_failure_after_termination_is_not_raised(make_controller, calls, caplog):
    caplog.set_level(logging.INFO)
    install_gate = asyncio.Event()
    stop_gate = asyncio.Event()
    installer = FakeInstaller(calls, error=InstallFailedError(returncode=1), gate=install_gate)
    controller = make_controller(server=FakeServer(calls, gate=stop_gate), installer=installer)

    run = asyncio.ensure_future(controller.run())
    await asyncio.sleep(0.1)
    controller.request_shutdown("SIGINT")
    await asyncio.sleep(0.05)
    install_gate.set()
    await asyncio.sleep(0.05)
    stop_gate.set()

    await asyncio.wait_for(run, timeout=2)

    assert calls == ["install", "stop"]
    assert "Startup interrupted by shutdown" in caplog.text
