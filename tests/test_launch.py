"""Tests for webdisplay.launch.

Tests cover:
- Mode resolution for all display kinds
- Direct spawn (fork:) for headless chrome/firefox with pid tags
- Direct spawns for interactive browsers; shell launches for custom programs and templates
- Embedded engines (native preference, explicit cef/qt5, fallback)
- Batch mode restrictions and DISPLAY requirement
- Key uniqueness and exhaustion
- Nothing recorded on failure
"""

import pytest

from conftest import FakeEngine
from webdisplay._types import (
    ConfigurationError,
    KeyGenerationFailed,
    LaunchMode,
    MissingDisplayEnvironment,
    ProcessSpawnFailed,
    UnsupportedBatchMode,
)
from webdisplay.config import Settings
from webdisplay.launch import resolve_mode, substitute
from webdisplay.manager import SessionManager


class ConstantRandom:
    def randrange(self, *args):
        return 7


class TestResolveMode:
    @pytest.mark.parametrize(
        "where,mode",
        [
            ("", LaunchMode.NATIVE),
            ("native", LaunchMode.NATIVE),
            ("cef", LaunchMode.CEF),
            ("qt5", LaunchMode.QT5),
            ("chrome", LaunchMode.CHROME),
            ("chromium", LaunchMode.CHROME),
            ("firefox", LaunchMode.FIREFOX),
            ("browser", LaunchMode.BROWSER),
            ("opera", LaunchMode.CUSTOM),
            ("/usr/bin/opera $url", LaunchMode.CUSTOM),
        ],
    )
    def test_modes(self, where, mode):
        assert resolve_mode(where) is mode

    def test_batch_capable_modes(self):
        capable = {m for m in LaunchMode if m.supports_batch}
        assert capable == {LaunchMode.CEF, LaunchMode.CHROME, LaunchMode.FIREFOX}


class TestSubstitute:
    def test_placeholders(self):
        assert substitute("$prog --size=$width,$height '$url'", prog="p", width=1, height=2, url="u") == (
            "p --size=1,2 'u'"
        )

    def test_unknown_placeholder_kept(self):
        assert substitute("$prog $url", url="u") == "$prog u"


class TestDirectSpawn:
    def test_chrome_batch(self, manager, supervisor):
        win = manager.create_window(batch_mode=True)
        result = win.show("chrome")
        url = f"http://localhost:8088/web7gui/win{win.id}/?batch_mode&key={result.key}"
        assert result.url == url
        assert supervisor.spawned == [
            [
                "/opt/chrome",
                "--headless",
                "--disable-gpu",
                "--disable-webgl",
                "--remote-debugging-socket-fd=0",
                url,
            ]
        ]
        assert result.record.tag == "pid:4242"
        assert win.keys[result.key].pid == 4242
        assert supervisor.commands == []

    def test_firefox_batch_uses_window_size(self, manager, supervisor):
        win = manager.create_window(batch_mode=True, width=300, height=200)
        win.show("firefox")
        argv = supervisor.spawned[0]
        assert argv[0] == "/opt/firefox"
        assert "-window-size=300,200" in argv
        assert "-headless" in argv

    def test_custom_fork_template(self, manager, supervisor):
        win = manager.create_window()
        result = win.show("fork:mybrowser --kiosk $url")
        assert supervisor.spawned == [["mybrowser", "--kiosk", result.url]]
        assert result.record.tag.startswith("pid:")

    def test_spawn_failure_records_nothing(self, manager, supervisor):
        supervisor.fail_spawn = True
        win = manager.create_window(batch_mode=True)
        with pytest.raises(ProcessSpawnFailed):
            win.show("chrome")
        assert win.keys == {}

    def test_empty_fork_template(self, manager, supervisor):
        manager.settings.set("ChromeBatch", "fork:")
        win = manager.create_window(batch_mode=True)
        with pytest.raises(ProcessSpawnFailed):
            win.show("chrome")
        assert win.keys == {}


class TestInteractiveLaunch:
    def test_chrome_interactive(self, manager, supervisor):
        win = manager.create_window()
        result = win.show("chromium")
        assert supervisor.spawned == [
            ["/opt/chrome", "--window-size=800,600", f"--app={result.url}"]
        ]
        assert result.record.tag == "pid:4242"
        assert supervisor.commands == []

    def test_firefox_interactive(self, manager, supervisor):
        win = manager.create_window()
        result = win.show("firefox")
        assert supervisor.spawned == [["/opt/firefox", "-new-window", result.url]]

    def test_configured_shell_template(self, manager, supervisor):
        manager.settings.set("ChromeInteractive", "$prog --new-window $url")
        win = manager.create_window(width=1024, height=768)
        result = win.show("chrome")
        assert supervisor.commands == [f"/opt/chrome --new-window {result.url}"]
        assert result.record.tag == "chrome"
        assert supervisor.spawned == []

    def test_custom_program(self, manager, supervisor):
        win = manager.create_window()
        result = win.show("opera")
        assert supervisor.commands == [f"opera {result.url} &"]
        assert result.mode is LaunchMode.CUSTOM
        assert result.record.tag == "opera"

    def test_custom_template(self, manager, supervisor):
        win = manager.create_window(width=640, height=480)
        result = win.show("mybrowser --geometry ${width}x$height $url")
        assert supervisor.commands == [f"mybrowser --geometry 640x480 {result.url}"]

    def test_default_browser(self, manager, supervisor):
        win = manager.create_window()
        result = win.show("browser")
        assert supervisor.spawned == [["xdg-open", result.url]]
        assert result.record.pid == 4242

    def test_native_without_engines_uses_browser(self, manager, supervisor):
        win = manager.create_window()
        result = win.show()
        assert result.mode is LaunchMode.NATIVE
        assert supervisor.spawned[0][0] == "xdg-open"

    def test_display_setting_used_when_where_empty(self, manager, supervisor):
        manager.settings.set("Display", "firefox")
        win = manager.create_window()
        win.show()
        assert supervisor.spawned[0][0] == "/opt/firefox"

    def test_key_in_query(self, manager):
        win = manager.create_window()
        result = win.show("browser")
        assert result.url.endswith(f"/win{win.id}/?key={result.key}")


class TestEngines:
    def test_native_prefers_engine(self, manager, engines, supervisor):
        qt5 = FakeEngine("qt5")
        engines.register(qt5)
        win = manager.create_window(width=500)
        result = win.show()
        assert result.record.tag == "qt5"
        assert qt5.launches == [(f"/web7gui/win{win.id}/?key={result.key}", False, 500, 0)]
        assert supervisor.spawned == []
        assert supervisor.commands == []
        assert not manager.server.is_listening

    def test_unavailable_engine_skipped(self, manager, engines, supervisor):
        engines.register(FakeEngine("qt5", available=False))
        win = manager.create_window()
        win.show("qt5")
        assert supervisor.spawned[0][0] == "xdg-open"

    def test_cef_requires_install_paths(self, manager, engines, supervisor, tmp_path, monkeypatch):
        cef = FakeEngine("cef")
        engines.register(cef)
        win = manager.create_window()

        win.show("cef")
        assert cef.launches == []

        monkeypatch.setenv("CEF_PATH", str(tmp_path))
        monkeypatch.setenv("WEBDISPLAY_ROOT", str(tmp_path))
        result = win.show("cef")
        assert result.record.tag == "cef"
        assert len(cef.launches) == 1

    def test_engine_failure_records_nothing(self, manager, engines):
        class Broken(FakeEngine):
            def launch(self, *args):
                raise RuntimeError("no GPU")

        engines.register(Broken("qt5"))
        win = manager.create_window()
        with pytest.raises(ProcessSpawnFailed):
            win.show("qt5")
        assert win.keys == {}


class TestBatchRestrictions:
    @pytest.mark.parametrize("where", ["browser", "qt5", "opera", "native"])
    def test_unsupported(self, manager, where):
        win = manager.create_window(batch_mode=True)
        with pytest.raises(UnsupportedBatchMode):
            win.show(where)
        assert win.keys == {}

    def test_cef_needs_display(self, manager, monkeypatch):
        monkeypatch.delenv("DISPLAY", raising=False)
        win = manager.create_window(batch_mode=True)
        with pytest.raises(MissingDisplayEnvironment):
            win.show("cef")

    def test_native_with_cef_engine_is_batch_capable(self, manager, engines, monkeypatch, tmp_path):
        monkeypatch.setenv("DISPLAY", ":0")
        monkeypatch.setenv("CEF_PATH", str(tmp_path))
        monkeypatch.setenv("WEBDISPLAY_ROOT", str(tmp_path))
        cef = FakeEngine("cef")
        engines.register(cef)
        win = manager.create_window(batch_mode=True)
        result = win.show()
        assert result.record.tag == "cef"
        assert cef.launches[0][1] is True


class TestKeys:
    def test_keys_unique_per_window(self, manager):
        win = manager.create_window()
        keys = [win.show("browser").key for _ in range(50)]
        assert len(set(keys)) == 50
        assert all(0 <= int(k) < 0x100000 for k in keys)

    def test_key_exhaustion(self, settings, engines, supervisor, fake_listener):
        mgr = SessionManager(settings, engines=engines, supervisor=supervisor, rng=ConstantRandom())
        win = mgr.create_window()
        assert win.show("browser").key == "7"
        with pytest.raises(KeyGenerationFailed):
            win.show("browser")
        assert list(win.keys) == ["7"]
        assert len(supervisor.spawned) == 1


class TestNetworkFailures:
    def test_configuration_error_records_nothing(self, engines, supervisor, fake_listener):
        mgr = SessionManager(Settings({"HttpPort": -1}, use_env=False), engines=engines, supervisor=supervisor)
        win = mgr.create_window()
        with pytest.raises(ConfigurationError):
            win.show("browser")
        assert win.keys == {}
        assert supervisor.commands == []
        assert supervisor.spawned == []
