"""Session manager: owns the server, the windows and the display clients.

Typical use::

    mgr = SessionManager()
    win = mgr.create_window()
    win.show("chrome")
    if win.wait_for_connection(timeout=10):
        ...
    win.destroy()
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable

from webdisplay._platform import Platform, current_platform
from webdisplay._types import ServerAddress, ServerNotReady, ShowResult
from webdisplay.config import Settings
from webdisplay.engines import EngineRegistry
from webdisplay.launch import LaunchStrategy
from webdisplay.ports import PortNegotiator
from webdisplay.process import ProcessSupervisor
from webdisplay.server import DEFAULT_BASE_ENDPOINT, ServerHandle
from webdisplay.wait import wait_for
from webdisplay.window import Window, window_path

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates and shows web windows.

    Args:
        settings: Configuration lookup (default: environment only).
        engines: Embedded engine registry (default: discovered entry points).
        platform: OS capabilities (default: detected from ``sys.platform``).
        supervisor: Display client process supervisor.
        rng: Random source for ports and session keys.
        event_pump: Processes pending events of the embedding application
            while ``wait_for()`` blocks.
        base_endpoint: First path component of window URLs.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        engines: EngineRegistry | None = None,
        platform: Platform | None = None,
        supervisor: ProcessSupervisor | None = None,
        rng: random.Random | None = None,
        event_pump: Callable[[], None] | None = None,
        base_endpoint: str = DEFAULT_BASE_ENDPOINT,
    ) -> None:
        self.settings = settings or Settings()
        self.engines = engines if engines is not None else EngineRegistry.discover()
        self.platform = platform or current_platform()
        self.supervisor = supervisor or ProcessSupervisor(self.platform)
        self.event_pump = event_pump
        self.base_endpoint = base_endpoint
        self._rng = rng or random.Random()
        self._server: ServerHandle | None = None
        self._ports: PortNegotiator | None = None
        self._windows: dict[int, Window] = {}
        self._id_counter = 0
        self._lock = threading.Lock()
        self._launcher = LaunchStrategy(self, rng=self._rng)

    # --- Server ---

    @property
    def server(self) -> ServerHandle | None:
        return self._server

    def _create_server(self) -> ServerHandle:
        with self._lock:
            if self._server is None:
                self._server = ServerHandle(self.base_endpoint)
                self._ports = PortNegotiator(self._server, self.settings, rng=self._rng)
                logger.debug(f"Created server {self._server}")
            return self._server

    def ensure_server(self, require_network: bool = False) -> ServerAddress | None:
        """Create the server object on demand; bind a port if required.

        Returns the advertised address, or None when no listener was
        requested and none exists yet.
        """
        self._create_server()
        assert self._ports is not None
        return self._ports.ensure_server(require_network)

    @property
    def address(self) -> ServerAddress | None:
        return self._server.address if self._server is not None else None

    # --- Windows ---

    def create_window(
        self, batch_mode: bool = False, width: int = 0, height: int = 0
    ) -> Window:
        """Allocate a window and register its endpoint. Use ``show()`` to display it."""
        server = self._create_server()
        with self._lock:
            self._id_counter += 1
            win_id = self._id_counter
        window = Window(
            self,
            win_id,
            batch_mode=batch_mode or self.settings.force_batch,
            width=width,
            height=height,
        )
        server.register_endpoint(window.endpoint_name, window)
        with self._lock:
            self._windows[win_id] = window
        logger.debug(f"Created {window}")
        return window

    def get_window(self, win_id: int) -> Window | None:
        with self._lock:
            return self._windows.get(win_id)

    @property
    def windows(self) -> list[Window]:
        with self._lock:
            return list(self._windows.values())

    def unregister(self, window: Window) -> None:
        """Release the endpoint of window; called by ``Window.destroy()``."""
        with self._lock:
            self._windows.pop(window.id, None)
            server = self._server
        if server is not None:
            server.unregister_endpoint(window)

    def get_url(self, window: Window, remote: bool = False) -> str:
        """URL of window; remote URLs require (and trigger) a network listener."""
        if self._server is None:
            logger.error("Server instance does not exist when requesting window URL")
            raise ServerNotReady("Server instance does not exist")
        url = window_path(self.base_endpoint, window.endpoint_name, window.batch_mode)
        if remote:
            address = self.ensure_server(require_network=True)
            assert address is not None
            url = f"{address.url}{url}"
        return url

    def show(self, window: Window, where: str = "") -> ShowResult:
        """Present window in the location selected by where."""
        return self._launcher.show(window, where)

    # --- Clients ---

    def halt_client(self, tag: str) -> bool:
        """Kill the display client recorded under tag (``pid:<n>`` only)."""
        return self.supervisor.halt(tag)

    def wait_for(self, check: Callable[[float], int], timeout: float = -1) -> int:
        """Block until check returns non-zero, pumping the host event loop.

        A negative timeout uses the ``WaitForTmout`` setting; 0 waits forever.
        """
        return wait_for(
            check,
            timeout,
            pump=self.event_pump,
            default_timeout=self.settings.wait_timeout,
        )

    def terminate(self) -> None:
        """Destroy all windows, halt spawned clients and stop the server."""
        for window in self.windows:
            window.destroy()
        self.supervisor.halt_all()
        with self._lock:
            server, self._server, self._ports = self._server, None, None
        if server is not None:
            server.set_terminate()
        logger.debug("Session manager terminated")
