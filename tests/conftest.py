"""Shared test fixtures for the webdisplay test suite."""

import random

import pytest

from webdisplay._platform import Platform
from webdisplay._types import ProcessSpawnFailed, parse_pid_tag
from webdisplay.config import Settings
from webdisplay.engines import EngineRegistry
from webdisplay.manager import SessionManager
from webdisplay.process import ProcessSupervisor
from webdisplay.server import ServerHandle


class RecordingSupervisor(ProcessSupervisor):
    """Supervisor that records launches instead of starting processes."""

    def __init__(self):
        super().__init__(Platform())
        self.spawned = []
        self.commands = []
        self.halted = []
        self.next_pid = 4242
        self.fail_spawn = False

    def spawn(self, program, args):
        if self.fail_spawn:
            raise ProcessSpawnFailed(f"Failed to launch {program}")
        self.spawned.append([program, *args])
        pid = self.next_pid
        self.next_pid += 1
        return pid

    def run_shell(self, command):
        self.commands.append(command)
        return 0

    def halt(self, tag):
        self.halted.append(tag)
        return parse_pid_tag(tag) is not None

    def halt_all(self):
        return 0


class KillRecordingPlatform(Platform):
    """Platform that records every kill before delivering it."""

    def __init__(self):
        self.killed = []

    def kill(self, pid):
        self.killed.append(pid)
        super().kill(pid)


class FakeEngine:
    """In-process engine stand-in."""

    def __init__(self, name, available=True):
        self.name = name
        self._available = available
        self.launches = []

    def available(self):
        return self._available

    def launch(self, url, server, batch_mode, width, height):
        self.launches.append((url, batch_mode, width, height))


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep WEBGUI_* and engine variables of the developer machine out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("WEBGUI_"):
            monkeypatch.delenv(name)
    monkeypatch.delenv("CEF_PATH", raising=False)
    monkeypatch.delenv("WEBDISPLAY_ROOT", raising=False)


@pytest.fixture
def fake_listener(monkeypatch):
    """Make ServerHandle.create_engine succeed without opening a socket."""
    specs = []

    def _create_engine(self, spec):
        specs.append(spec)
        self._address = spec.address()
        return True

    monkeypatch.setattr(ServerHandle, "create_engine", _create_engine)
    return specs


@pytest.fixture
def settings():
    return Settings({"HttpPort": 8088, "Chrome": "/opt/chrome", "Firefox": "/opt/firefox"})


@pytest.fixture
def supervisor():
    return RecordingSupervisor()


@pytest.fixture
def engines():
    return EngineRegistry()


@pytest.fixture
def manager(settings, supervisor, engines, fake_listener):
    mgr = SessionManager(
        settings,
        engines=engines,
        platform=Platform(),
        supervisor=supervisor,
        rng=random.Random(1234),
    )
    yield mgr
    mgr.terminate()
