"""webdisplay: web-window session manager.

Owns an embedded HTTP/WebSocket server, allocates windows bound to
WebSocket endpoints, issues single-use session keys and launches the
browser (or an embedded engine) that displays each window.

Quick Start:
    import webdisplay

    mgr = webdisplay.get_manager()
    win = mgr.create_window()
    win.show("chrome")
    win.wait_for_connection(timeout=10)
"""

from __future__ import annotations

import logging
import threading

from webdisplay._types import (
    BindExhausted,
    ConfigurationError,
    EndpointNotFound,
    KeyGenerationFailed,
    LaunchMode,
    LaunchRecord,
    LaunchSpec,
    MissingDisplayEnvironment,
    PortConfig,
    ProcessSpawnFailed,
    ServerAddress,
    ServerNotReady,
    ShowResult,
    UnsupportedBatchMode,
    WebDisplayError,
)
from webdisplay.config import Settings
from webdisplay.engines import EngineLauncher, EngineRegistry
from webdisplay.manager import SessionManager
from webdisplay.wait import wait_for
from webdisplay.window import Window

__all__ = [
    "BindExhausted",
    "ConfigurationError",
    "EndpointNotFound",
    "EngineLauncher",
    "EngineRegistry",
    "KeyGenerationFailed",
    "LaunchMode",
    "LaunchRecord",
    "LaunchSpec",
    "MissingDisplayEnvironment",
    "PortConfig",
    "ProcessSpawnFailed",
    "ServerAddress",
    "ServerNotReady",
    "SessionManager",
    "Settings",
    "ShowResult",
    "UnsupportedBatchMode",
    "WebDisplayError",
    "Window",
    "get_manager",
    "set_manager",
    "wait_for",
]

logger = logging.getLogger(__name__)

# Process-wide default manager (thread-safe via _lock)
_lock = threading.Lock()
_manager: SessionManager | None = None


def get_manager() -> SessionManager:
    """Return the application's default manager, creating it on first use."""
    global _manager
    with _lock:
        if _manager is None:
            _manager = SessionManager()
            logger.debug("Created default session manager")
        return _manager


def set_manager(manager: SessionManager | None) -> SessionManager | None:
    """Replace the default manager (e.g. one configured by the host).

    Returns the previous default, which is not terminated.
    """
    global _manager
    with _lock:
        previous, _manager = _manager, manager
    return previous
