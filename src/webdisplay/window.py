"""Logical web windows: identity, URL, session keys and client sessions."""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.websockets import WebSocket, WebSocketDisconnect

from webdisplay._types import LaunchRecord, ServerNotReady, ShowResult

if TYPE_CHECKING:
    from webdisplay.manager import SessionManager

logger = logging.getLogger(__name__)

_POLICY_VIOLATION = 1008

_DEFAULT_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
<script>
  const proto = location.protocol === "https:" ? "wss:" : "ws:";
  const ws = new WebSocket(proto + "//" + location.host + location.pathname + "ws" + location.search);
  ws.onmessage = (ev) => {{ document.body.dataset.last = ev.data; }};
</script>
</body>
</html>
"""


def window_path(base_endpoint: str, endpoint_name: str, batch_mode: bool) -> str:
    """Local URL path of a window, e.g. ``/web7gui/win3/?batch_mode``."""
    path = f"/{base_endpoint}/{endpoint_name}/"
    if batch_mode:
        path += "?batch_mode"
    return path


def with_key(url: str, key: str) -> str:
    """Append ``key=<key>`` as the next query parameter of url."""
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}key={key}"


class Window:
    """One web window bound to an endpoint of the manager's server.

    Created by ``SessionManager.create_window()``; the manager holds the only
    strong reference. Clients attach over ``ws?key=<key>`` using a key issued
    by ``show()``; each key admits a single connection.
    """

    def __init__(
        self,
        manager: SessionManager,
        win_id: int,
        batch_mode: bool = False,
        width: int = 0,
        height: int = 0,
    ) -> None:
        if width < 0 or height < 0:
            raise ValueError("Window dimensions must be >= 0")
        self._manager = weakref.ref(manager)
        self.id = win_id
        self.batch_mode = batch_mode
        self.width = width
        self.height = height
        self.title = f"Web window {win_id}"
        self.endpoint_name = f"win{win_id}"
        self.on_message: Callable[[str, str], Any] | None = None
        """Called with (key, text) for each text frame a client sends."""
        self._keys: dict[str, LaunchRecord] = {}
        self._connections = 0
        self._destroyed = False
        self._lock = threading.Lock()

    @property
    def manager(self) -> SessionManager:
        mgr = self._manager()
        if mgr is None:
            raise ServerNotReady(f"Manager of window {self.id} no longer exists")
        return mgr

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # --- Delegation to the manager ---

    def get_url(self, remote: bool = False) -> str:
        return self.manager.get_url(self, remote=remote)

    def show(self, where: str = "") -> ShowResult:
        return self.manager.show(self, where)

    def wait_for_connection(self, timeout: float = -1) -> int:
        """Block until at least one client is attached; 0 on timeout."""
        return self.manager.wait_for(lambda _spent: self.num_connections, timeout)

    # --- Session keys ---

    def has_key(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def add_key(self, key: str, tag: str) -> LaunchRecord:
        record = LaunchRecord(key=key, tag=tag)
        with self._lock:
            self._keys[key] = record
        return record

    def remove_key(self, key: str) -> LaunchRecord | None:
        """Forget key and halt the client launched with it."""
        with self._lock:
            record = self._keys.pop(key, None)
        if record is not None:
            self._halt(record)
        return record

    @property
    def keys(self) -> dict[str, LaunchRecord]:
        with self._lock:
            return dict(self._keys)

    @property
    def num_connections(self) -> int:
        with self._lock:
            return self._connections

    def close_connections(self) -> int:
        """Halt every recorded client. Returns how many were signalled."""
        with self._lock:
            records = list(self._keys.values())
        return sum(self._halt(r) for r in records)

    def _halt(self, record: LaunchRecord) -> bool:
        with self._lock:
            if record.halted:
                return False
            record.halted = True
        mgr = self._manager()
        if mgr is None:
            return False
        return mgr.halt_client(record.tag)

    # --- Lifecycle ---

    def destroy(self) -> None:
        """Halt clients and unregister the endpoint. Safe to call twice."""
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
        self.close_connections()
        mgr = self._manager()
        if mgr is not None:
            mgr.unregister(self)
        logger.debug(f"Window {self.id} destroyed")

    def __enter__(self) -> Window:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.destroy()

    # --- Endpoint handler ---

    async def handle_page(self, request: Request) -> Response:
        return HTMLResponse(_DEFAULT_PAGE.format(title=self.title))

    async def handle_websocket(self, ws: WebSocket) -> None:
        """Accept a client that presents a fresh key, reject anything else."""
        key = ws.query_params.get("key", "")
        with self._lock:
            record = self._keys.get(key)
            accepted = record is not None and not record.connected
            if accepted:
                record.connected = True
                self._connections += 1
        if not accepted:
            logger.warning(f"Window {self.id}: rejecting client with key {key!r}")
            await ws.close(code=_POLICY_VIOLATION)
            return

        try:
            await ws.accept()
            logger.debug(f"Window {self.id}: client connected with key {key}")
            while True:
                text = await ws.receive_text()
                if self.on_message is not None:
                    self.on_message(key, text)
        except WebSocketDisconnect:
            logger.debug(f"Window {self.id}: client {key} disconnected")
        except Exception:
            logger.debug(f"Window {self.id}: connection {key} closed", exc_info=True)
        finally:
            with self._lock:
                self._connections -= 1
            # headless clients have nobody to close them; reaping runs off the loop
            if self.batch_mode and record is not None:
                await asyncio.to_thread(self._halt, record)

    def __repr__(self) -> str:
        return (
            f"Window(id={self.id}, endpoint={self.endpoint_name!r}, "
            f"batch_mode={self.batch_mode}, keys={len(self._keys)})"
        )
