"""Presenting windows: the ``show()`` state machine.

``where`` selects how a window is presented:

      cef - embedded Chromium engine (in-process, if installed)
      qt5 - embedded Qt5 WebEngine (in-process, if installed)
  browser - default system web browser, via the HTTP listener
   chrome - Google Chrome / Chromium, supports headless (batch) mode
 chromium - same as chrome
  firefox - Mozilla Firefox, supports headless (batch) mode
   native - any installed embedded engine, else the default browser
   <prog> - any other program, started as ``<prog> $url &``
 template - a string containing ``$`` is used as the command template;
            ``fork:<prog> <args>`` spawns prog directly

Templates may use ``$url``, ``$width``, ``$height`` and ``$prog``. A template
starting with ``fork:`` is spawned directly (its process id is kept so the
client can be halted); any other template is run through the shell. The
built-in templates are all ``fork:`` templates, except for the Windows
default browser.
"""

from __future__ import annotations

import logging
import os
import random
from pathlib import Path
from string import Template
from typing import TYPE_CHECKING

from webdisplay._types import (
    KeyGenerationFailed,
    LaunchMode,
    LaunchSpec,
    MissingDisplayEnvironment,
    ProcessSpawnFailed,
    ServerNotReady,
    ShowResult,
    UnsupportedBatchMode,
)
from webdisplay.process import pid_tag
from webdisplay.window import with_key

if TYPE_CHECKING:
    from webdisplay.manager import SessionManager
    from webdisplay.window import Window

logger = logging.getLogger(__name__)

KEY_SPACE = 0x100000
_KEY_ATTEMPTS = 1000
_DEFAULT_WIDTH = 800
_DEFAULT_HEIGHT = 600
_FORK_MARKER = "fork:"

# (mode, batch) -> (settings key, default template)
_TEMPLATES: dict[tuple[LaunchMode, bool], tuple[str, str]] = {
    (LaunchMode.CHROME, True): (
        "ChromeBatch",
        "fork:--headless --disable-gpu --disable-webgl --remote-debugging-socket-fd=0 $url",
    ),
    (LaunchMode.CHROME, False): (
        "ChromeInteractive",
        "fork:--window-size=$width,$height --app=$url",
    ),
    (LaunchMode.FIREFOX, True): (
        "FirefoxBatch",
        "fork:-headless -no-remote -window-size=$width,$height $url",
    ),
    (LaunchMode.FIREFOX, False): (
        "FirefoxInteractive",
        "fork:-new-window $url",
    ),
}
_PROGRAM_KEYS = {LaunchMode.CHROME: "Chrome", LaunchMode.FIREFOX: "Firefox"}
_CUSTOM_TEMPLATE = "$prog $url &"

_ALIASES = {
    "": LaunchMode.NATIVE,
    "native": LaunchMode.NATIVE,
    "cef": LaunchMode.CEF,
    "qt5": LaunchMode.QT5,
    "chrome": LaunchMode.CHROME,
    "chromium": LaunchMode.CHROME,
    "firefox": LaunchMode.FIREFOX,
    "browser": LaunchMode.BROWSER,
}


def resolve_mode(where: str) -> LaunchMode:
    return _ALIASES.get(where, LaunchMode.CUSTOM)


def substitute(template: str, **values: object) -> str:
    """Replace ``$name`` placeholders, leaving unknown ones untouched."""
    return Template(template).safe_substitute({k: str(v) for k, v in values.items()})


class LaunchStrategy:
    """Resolves and executes the presentation of a window for a manager."""

    def __init__(self, manager: SessionManager, rng: random.Random | None = None) -> None:
        self._manager = manager
        self._rng = rng or random.Random()

    def new_key(self, window: Window) -> str:
        """Draw a key not yet issued for window."""
        for _ in range(_KEY_ATTEMPTS):
            key = str(self._rng.randrange(KEY_SPACE))
            if not window.has_key(key):
                return key
        logger.error(f"Fail to create unique key for window {window.id}")
        raise KeyGenerationFailed(
            f"No unique key for window {window.id} after {_KEY_ATTEMPTS} attempts"
        )

    def show(self, window: Window, where: str = "") -> ShowResult:
        """Present window as selected by where; see module docstring.

        The key is recorded on the window only once the client was handed
        the URL.
        """
        mgr = self._manager
        if mgr.server is None:
            raise ServerNotReady("Server instance does not exist to show window")

        key = self.new_key(window)
        url = with_key(mgr.get_url(window, remote=False), key)

        where = where or mgr.settings.display
        mode = resolve_mode(where)
        use_cef = mode is LaunchMode.CEF or (
            mode is LaunchMode.NATIVE and "cef" in mgr.engines
        )

        if window.batch_mode:
            if not use_cef and not mode.supports_batch:
                raise UnsupportedBatchMode(
                    "Batch mode requires 'cef', 'chrome' or 'firefox' as display, "
                    f"got {where or 'native'!r}"
                )
            if use_cef and mgr.platform.needs_display and not os.environ.get("DISPLAY"):
                raise MissingDisplayEnvironment(
                    "The DISPLAY variable must be set to use cef in batch mode"
                )

        result = self._show_in_engine(window, key, url, mode)
        if result is not None:
            return result

        address = mgr.ensure_server(require_network=True)
        url = f"{address.url}{url}"
        spec = self.resolve_spec(mode, where, window.batch_mode)
        width = window.width or _DEFAULT_WIDTH
        height = window.height or _DEFAULT_HEIGHT

        if spec.async_mode:
            args = [
                substitute(token, url=url, width=width, height=height)
                for token in spec.args_template.split()
            ]
            if not args:
                raise ProcessSpawnFailed(f"Empty argument list for {spec.program}")
            pid = mgr.supervisor.spawn(spec.program, args)
            record = window.add_key(key, pid_tag(pid))
            return ShowResult(key, url, record, mode, [spec.program, *args])

        command = substitute(
            spec.args_template,
            url=url,
            width=width,
            height=height,
            prog=mgr.platform.escape_program(spec.program),
        )
        mgr.supervisor.run_shell(command)
        # no handle on the shell's child, so only the display kind is known
        record = window.add_key(key, where)
        return ShowResult(key, url, record, mode, [command])

    def _show_in_engine(
        self, window: Window, key: str, url: str, mode: LaunchMode
    ) -> ShowResult | None:
        mgr = self._manager
        if mode is LaunchMode.NATIVE:
            names = ["cef", "qt5"]
        elif mode in (LaunchMode.CEF, LaunchMode.QT5):
            names = [mode.value]
        else:
            return None

        for name in names:
            if name == "cef" and not _cef_environment_ok():
                continue
            launcher = mgr.engines.get(name)
            if launcher is None:
                continue
            logger.debug(f"Show window {url} in {name}")
            try:
                launcher.launch(url, mgr.server, window.batch_mode, window.width, window.height)
            except Exception as e:
                raise ProcessSpawnFailed(f"Engine {name!r} failed to show {url}: {e}") from e
            record = window.add_key(key, name)
            return ShowResult(key, url, record, mode)

        if mode is not LaunchMode.NATIVE:
            logger.warning(f"Engine {mode.value!r} not available, using the system browser")
        return None

    def resolve_spec(self, mode: LaunchMode, where: str, batch_mode: bool) -> LaunchSpec:
        """Pick program and command template for a network launch."""
        settings = self._manager.settings
        platform = self._manager.platform
        program = ""
        candidates: tuple[str, ...] = ()

        if (mode, batch_mode) in _TEMPLATES:
            key, default = _TEMPLATES[(mode, batch_mode)]
            template = settings.get_str(key, default)
            program = settings.get_str(_PROGRAM_KEYS[mode], "")
            if mode is LaunchMode.CHROME:
                candidates = platform.chrome_candidates
            else:
                candidates = platform.firefox_candidates
        elif mode is LaunchMode.CUSTOM:
            template = where if "$" in where else _CUSTOM_TEMPLATE
            if template.startswith(_FORK_MARKER):
                # fork:<program> <args...>
                program, _, rest = template[len(_FORK_MARKER):].strip().partition(" ")
                template = _FORK_MARKER + rest
        else:
            template = platform.browser_template
            program = platform.browser_program

        if not program:
            program = platform.find_program(candidates) or where

        async_mode = template.startswith(_FORK_MARKER)
        if async_mode:
            template = template[len(_FORK_MARKER):]
        return LaunchSpec(program=program, args_template=template, async_mode=async_mode)


def _cef_environment_ok() -> bool:
    """The embedded Chromium engine needs its install path and our install root."""
    cef_path = os.environ.get("CEF_PATH")
    root = os.environ.get("WEBDISPLAY_ROOT")
    return bool(cef_path and Path(cef_path).exists() and root)
