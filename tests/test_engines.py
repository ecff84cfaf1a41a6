"""Tests for webdisplay.engines."""

from unittest.mock import patch

from conftest import FakeEngine
from webdisplay.engines import EngineLauncher, EngineRegistry


class FakeEntryPoint:
    def __init__(self, name, factory=None, error=None):
        self.name = name
        self._factory = factory
        self._error = error

    def load(self):
        if self._error:
            raise self._error
        return self._factory


class TestRegistry:
    def test_register_and_get(self):
        reg = EngineRegistry([FakeEngine("qt5")])
        assert "qt5" in reg
        assert reg.get("qt5").name == "qt5"
        assert reg.names == ["qt5"]

    def test_unavailable_engine_not_returned(self):
        reg = EngineRegistry([FakeEngine("cef", available=False)])
        assert "cef" in reg
        assert reg.get("cef") is None

    def test_failing_availability_check(self):
        class Flaky(FakeEngine):
            def available(self):
                raise RuntimeError("probe failed")

        reg = EngineRegistry([Flaky("cef")])
        assert reg.get("cef") is None

    def test_unregister(self):
        reg = EngineRegistry([FakeEngine("qt5")])
        reg.unregister("qt5")
        reg.unregister("qt5")
        assert reg.get("qt5") is None

    def test_fake_engine_matches_protocol(self):
        assert isinstance(FakeEngine("qt5"), EngineLauncher)


class TestDiscover:
    def test_loads_installed_engines(self):
        eps = [
            FakeEntryPoint("qt5", factory=lambda: FakeEngine("qt5")),
            FakeEntryPoint("cef", error=ImportError("no cef module")),
            FakeEntryPoint("bogus", factory=lambda: object()),
        ]
        with patch("webdisplay.engines.entry_points", return_value=eps):
            reg = EngineRegistry.discover()
        assert reg.names == ["qt5"]

    def test_nothing_installed(self):
        with patch("webdisplay.engines.entry_points", return_value=[]):
            assert EngineRegistry.discover().names == []
