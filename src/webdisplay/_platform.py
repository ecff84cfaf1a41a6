"""Platform capabilities: process spawn/kill, browser lookup, escaping.

One ``Platform`` variant per OS family, selected from ``sys.platform`` by
``current_platform()``.
"""

from __future__ import annotations

import os
import signal
import sys
from pathlib import Path
from typing import Any


class Platform:
    """Generic POSIX (Linux, BSD) behaviour."""

    name = "posix"
    needs_display = True
    """Headless engine modes need an X display variable here."""

    chrome_candidates: tuple[str, ...] = (
        "/usr/bin/chromium",
        "/usr/bin/chromium-browser",
        "/usr/bin/chrome-browser",
        "/usr/bin/google-chrome",
    )
    firefox_candidates: tuple[str, ...] = ("/usr/bin/firefox",)
    browser_program = "xdg-open"
    browser_template = "fork:$url"

    def find_program(self, candidates: tuple[str, ...]) -> str | None:
        """First candidate path that exists, in priority order."""
        for candidate in candidates:
            if Path(candidate).exists():
                return candidate
        return None

    def escape_program(self, program: str) -> str:
        return program

    def popen_kwargs(self) -> dict[str, Any]:
        """Popen kwargs for detaching a display client from our session."""
        return {"start_new_session": True}

    def kill(self, pid: int) -> None:
        """Forcefully terminate pid. Raises OSError if it cannot be signalled."""
        os.kill(pid, signal.SIGKILL)

    def __repr__(self) -> str:
        return f"<Platform {self.name}>"


class MacOSPlatform(Platform):
    name = "macos"
    needs_display = False
    chrome_candidates = ("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",)
    firefox_candidates = ("/Applications/Firefox.app/Contents/MacOS/firefox",)
    browser_program = "open"
    browser_template = "fork:$url"

    def escape_program(self, program: str) -> str:
        return program.replace(" ", "\\ ")


class WindowsPlatform(Platform):
    name = "windows"
    needs_display = False
    chrome_candidates = (
        r"C:\Program Files\Google\Chrome\Application\chrome.exe",
        r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
    )
    firefox_candidates = (
        r"C:\Program Files\Mozilla Firefox\firefox.exe",
        r"C:\Program Files (x86)\Mozilla Firefox\firefox.exe",
    )
    # "start" is a cmd.exe builtin, so this one goes through the shell
    browser_program = ""
    browser_template = "start $url"

    def escape_program(self, program: str) -> str:
        if " " in program and not program.startswith('"'):
            return f'"{program}"'
        return program

    def popen_kwargs(self) -> dict[str, Any]:
        CREATE_NEW_PROCESS_GROUP = 0x00000200
        DETACHED_PROCESS = 0x00000008
        return {"creationflags": CREATE_NEW_PROCESS_GROUP | DETACHED_PROCESS}

    def kill(self, pid: int) -> None:
        # os.kill maps any non-console signal to TerminateProcess on Windows
        os.kill(pid, signal.SIGTERM)


def current_platform() -> Platform:
    if sys.platform == "win32":
        return WindowsPlatform()
    if sys.platform == "darwin":
        return MacOSPlatform()
    return Platform()
