"""Embedded HTTP/WebSocket server: Starlette app + uvicorn listener.

The Starlette app exists as soon as a ``ServerHandle`` is constructed and can
be driven in-process (e.g. by an embedded engine or a test client) without
any network listener. A real listener is opened by ``create_engine()``, which
binds the socket synchronously and then serves it from a background daemon
thread.

Endpoints:
    GET  /api/health                 → health check (window count, listener)
    GET  /{base}/{name}/             → page of the window registered as name
    WS   /{base}/{name}/ws?key=...   → WebSocket session of that window
"""

from __future__ import annotations

import asyncio
import logging
import socket
import sys
import threading
import time
from typing import Any, Protocol

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from webdisplay._types import EndpointNotFound, EngineSpec, ServerAddress

logger = logging.getLogger(__name__)

DEFAULT_BASE_ENDPOINT = "web7gui"
_STARTUP_TIMEOUT = 5.0
_POLICY_VIOLATION = 1008


class EndpointHandler(Protocol):
    """Target of a registered endpoint (normally a ``Window``)."""

    @property
    def endpoint_name(self) -> str: ...

    async def handle_page(self, request: Request) -> Response: ...

    async def handle_websocket(self, ws: WebSocket) -> None: ...


class ServerHandle:
    """Owns the embedded server and the endpoint table.

    Args:
        base_endpoint: First path component of every window URL.
    """

    def __init__(self, base_endpoint: str = DEFAULT_BASE_ENDPOINT) -> None:
        self.base_endpoint = base_endpoint
        self._handlers: dict[str, EndpointHandler] = {}
        self._lock = threading.Lock()
        self._address: ServerAddress | None = None
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._started = threading.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._app = self._build_app()

    def _build_app(self) -> Starlette:
        """Build the Starlette application with all routes."""
        base = self.base_endpoint
        routes = [
            Route("/api/health", self._api_health),
            Route(f"/{base}/{{name}}/", self._endpoint_page),
            WebSocketRoute(f"/{base}/{{name}}/ws", self._endpoint_ws),
        ]
        return Starlette(routes=routes)

    @property
    def app(self) -> Starlette:
        return self._app

    @property
    def address(self) -> ServerAddress | None:
        """Advertised address; None while no network listener is active."""
        return self._address

    @property
    def is_listening(self) -> bool:
        return self._address is not None

    @property
    def is_running(self) -> bool:
        """Check if the uvicorn thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    # --- Endpoint table ---

    def register_endpoint(self, name: str, handler: EndpointHandler) -> None:
        """Route ``/{base}/{name}/`` to handler.

        Re-registering the same handler is a no-op; a different handler under
        an existing name is rejected.
        """
        with self._lock:
            current = self._handlers.get(name)
            if current is not None and current is not handler:
                raise ValueError(f"Endpoint {name!r} is already registered")
            self._handlers[name] = handler
        logger.debug(f"Registered endpoint /{self.base_endpoint}/{name}/")

    def unregister_endpoint(self, handler: EndpointHandler) -> bool:
        """Remove every route pointing at handler. Returns False if none did."""
        with self._lock:
            names = [n for n, h in self._handlers.items() if h is handler]
            for name in names:
                del self._handlers[name]
        if names:
            logger.debug(f"Unregistered endpoint(s) {names}")
        return bool(names)

    def get_handler(self, name: str) -> EndpointHandler:
        with self._lock:
            handler = self._handlers.get(name)
        if handler is None:
            raise EndpointNotFound(f"No endpoint registered as {name!r}")
        return handler

    @property
    def endpoint_names(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    # --- Routes ---

    async def _api_health(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "windows": len(self.endpoint_names),
                "listening": self.is_listening,
            }
        )

    async def _endpoint_page(self, request: Request) -> Response:
        try:
            handler = self.get_handler(request.path_params["name"])
        except EndpointNotFound as e:
            return JSONResponse({"error": str(e)}, status_code=404)
        return await handler.handle_page(request)

    async def _endpoint_ws(self, ws: WebSocket) -> None:
        try:
            handler = self.get_handler(ws.path_params["name"])
        except EndpointNotFound as e:
            logger.debug(f"Rejecting WebSocket: {e}")
            await ws.close(code=_POLICY_VIOLATION)
            return
        await handler.handle_websocket(ws)

    # --- Lifecycle ---

    def create_engine(self, spec: EngineSpec) -> bool:
        """Open a network listener described by spec.

        Returns False if the port cannot be bound or the server fails to
        start; the handle then stays unbound. Never rebinds once listening.
        """
        if self._address is not None:
            return True

        family = socket.AF_INET6 if ":" in spec.bind_host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            if sys.platform != "win32":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((spec.bind_host, spec.port))
        except OSError as e:
            logger.debug(f"Cannot bind {spec.bind_host}:{spec.port}: {e}")
            sock.close()
            return False

        config = uvicorn.Config(
            app=self._app,
            log_level="warning",
            access_log=False,
            ws_ping_timeout=spec.ws_timeout_ms / 1000.0,
            ssl_certfile=spec.cert_path if spec.use_tls else None,
        )
        try:
            config.load()
        except Exception as e:
            logger.warning(f"Cannot configure HTTP engine {spec}: {e}")
            sock.close()
            return False

        server = uvicorn.Server(config)
        self._started.clear()

        def _run() -> None:
            self._loop = asyncio.new_event_loop()
            asyncio.set_event_loop(self._loop)
            self._started.set()
            self._loop.run_until_complete(server.serve(sockets=[sock]))

        thread = threading.Thread(target=_run, name="webdisplay-http", daemon=True)
        thread.start()
        self._started.wait(timeout=_STARTUP_TIMEOUT)

        if not self._wait_for_server(server, thread):
            logger.warning(f"HTTP engine {spec} did not start")
            server.should_exit = True
            thread.join(timeout=1)
            sock.close()
            return False

        self._server, self._thread, self._socket = server, thread, sock
        self._address = spec.address()
        logger.debug(f"HTTP engine started: {spec} -> {self._address}")
        return True

    def _wait_for_server(
        self,
        server: uvicorn.Server,
        thread: threading.Thread,
        timeout: float = _STARTUP_TIMEOUT,
    ) -> bool:
        """Wait for uvicorn to report startup; False if the thread died."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if server.started:
                return True
            if not thread.is_alive():
                return False
            time.sleep(0.01)
        return server.started

    def set_terminate(self) -> None:
        """Ask the listener to exit and wait briefly for its thread."""
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=3)
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._server = None
        self._address = None
        logger.debug("HTTP engine stopped")

    def __repr__(self) -> str:
        return f"ServerHandle(base={self.base_endpoint!r}, address={self._address})"


def describe(handle: ServerHandle) -> dict[str, Any]:
    """Summary used by the CLI status output."""
    return {
        "base_endpoint": handle.base_endpoint,
        "address": handle.address.url if handle.address else None,
        "endpoints": handle.endpoint_names,
        "running": handle.is_running,
    }
