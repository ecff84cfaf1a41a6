"""Port negotiation for the embedded HTTP server.

A fixed port (``HttpPort``) is tried first; otherwise, or after it failed,
ports are drawn uniformly from ``[HttpPortMin, HttpPortMax)``. At most
``min(100, max - min)`` bind attempts are made. The first successful bind is
sticky for the lifetime of the server handle.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Protocol

from webdisplay._types import (
    BindExhausted,
    ConfigurationError,
    EngineSpec,
    PortConfig,
    ServerAddress,
)
from webdisplay.config import Settings

logger = logging.getLogger(__name__)

_MAX_ATTEMPTS = 100


class Bindable(Protocol):
    @property
    def address(self) -> ServerAddress | None: ...

    def create_engine(self, spec: EngineSpec) -> bool: ...


class PortNegotiator:
    """Picks and binds a TCP port for a server handle.

    Args:
        server: Handle whose listener is created.
        settings: Configuration source, consulted on every attempt round.
        rng: Random source for port draws (seedable for tests).
    """

    def __init__(
        self,
        server: Bindable,
        settings: Settings,
        rng: random.Random | None = None,
    ) -> None:
        self.server = server
        self.settings = settings
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self.attempts = 0
        """Bind attempts made by the last negotiation round."""

    def ensure_server(self, require_network: bool = True) -> ServerAddress | None:
        """Return the bound address, binding a port first if required.

        With ``require_network=False`` the current (possibly absent) address
        is returned as is.

        Raises:
            ConfigurationError: Negative fixed port, bad range, missing cert.
            BindExhausted: No attempt managed to bind.
        """
        if not require_network:
            return self.server.address
        with self._lock:
            if self.server.address is not None:
                return self.server.address
            return self._negotiate(self.settings.port_config())

    def _negotiate(self, cfg: PortConfig) -> ServerAddress:
        if cfg.fixed_port < 0:
            logger.error("Not allowed to create real HTTP server, check HttpPort")
            raise ConfigurationError(
                f"HttpPort is {cfg.fixed_port}; negative values forbid a real HTTP server"
            )
        if cfg.use_tls and not cfg.cert_path:
            raise ConfigurationError("UseHttps requires ServerCert to be set")

        port = cfg.fixed_port
        if not port:
            _check_range(cfg)

        attempts = min(_MAX_ATTEMPTS, cfg.max_port - cfg.min_port)
        if port:
            attempts = max(attempts, 1)

        self.attempts = 0
        for _ in range(attempts):
            if not port:
                _check_range(cfg)
                port = self._rng.randrange(cfg.min_port, cfg.max_port)
            self.attempts += 1
            spec = cfg.engine_spec(port)
            if self.server.create_engine(spec):
                address = self.server.address or spec.address()
                logger.debug(f"Bound HTTP server to {address} after {self.attempts} attempt(s)")
                return address
            port = 0

        raise BindExhausted(
            f"Could not bind HTTP server after {self.attempts} attempt(s) "
            f"in range [{cfg.min_port}, {cfg.max_port})"
        )


def _check_range(cfg: PortConfig) -> None:
    if cfg.min_port <= 0 or cfg.max_port <= cfg.min_port:
        raise ConfigurationError(
            f"Wrong HTTP port range [{cfg.min_port}, {cfg.max_port}), "
            "check HttpPortMin/HttpPortMax"
        )
