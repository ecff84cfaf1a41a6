"""Type definitions for the webdisplay session manager.

Defines the core data structures shared across the package:
server addresses, engine specs, port configuration, launch modes and
records, and the error taxonomy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LaunchMode(str, Enum):
    """Resolved strategy for presenting a window."""

    NATIVE = "native"
    CEF = "cef"
    QT5 = "qt5"
    CHROME = "chrome"
    FIREFOX = "firefox"
    BROWSER = "browser"
    CUSTOM = "custom"

    @property
    def supports_batch(self) -> bool:
        """Whether this mode can run without a visible display surface."""
        return self in (LaunchMode.CEF, LaunchMode.CHROME, LaunchMode.FIREFOX)


# ---------------------------------------------------------------------------
# Server addressing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerAddress:
    """Address of the bound HTTP server as advertised to clients."""

    scheme: str
    host: str
    port: int

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class EngineSpec:
    """Everything the HTTP engine needs to open a listener."""

    port: int
    use_tls: bool = False
    loopback: bool = False
    bind_address: str = ""
    cert_path: str = ""
    ws_timeout_ms: int = 10_000

    @property
    def scheme(self) -> str:
        return "https" if self.use_tls else "http"

    @property
    def bind_host(self) -> str:
        """Interface to bind the listening socket to."""
        if self.loopback:
            return "127.0.0.1"
        if self.bind_address:
            return self.bind_address
        return "0.0.0.0"

    @property
    def public_host(self) -> str:
        """Host name clients should use to reach the listener."""
        if not self.loopback and self.bind_address:
            return self.bind_address
        return "localhost"

    def address(self) -> ServerAddress:
        return ServerAddress(self.scheme, self.public_host, self.port)

    def __str__(self) -> str:
        spec = f"{self.scheme}:{self.port}?websocket_timeout={self.ws_timeout_ms}"
        if self.loopback:
            spec += "&loopback"
        elif self.bind_address:
            spec += f"&bind={self.bind_address}"
        if self.use_tls:
            spec += f"&ssl_cert={self.cert_path}"
        return spec


@dataclass(frozen=True)
class PortConfig:
    """Port negotiation settings, read once per server creation attempt."""

    fixed_port: int = 0
    min_port: int = 8800
    max_port: int = 9800
    loopback: bool = False
    bind_address: str = ""
    use_tls: bool = False
    cert_path: str = "rootserver.pem"
    ws_timeout_ms: int = 10_000

    def engine_spec(self, port: int) -> EngineSpec:
        return EngineSpec(
            port=port,
            use_tls=self.use_tls,
            loopback=self.loopback,
            bind_address=self.bind_address,
            cert_path=self.cert_path,
            ws_timeout_ms=self.ws_timeout_ms,
        )


# ---------------------------------------------------------------------------
# Launching
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LaunchSpec:
    """A resolved command line for presenting a window.

    ``args_template`` still contains ``$url``, ``$width``, ``$height`` (and,
    for shell launches, ``$prog``) placeholders. ``async_mode`` selects a
    direct spawn whose process id is tracked; otherwise the template is run
    through the shell.
    """

    program: str
    args_template: str
    async_mode: bool = False


@dataclass
class LaunchRecord:
    """Launch metadata for one issued session key."""

    key: str
    tag: str
    connected: bool = False
    """Set once a client attached with this key; the key cannot be reused."""
    halted: bool = False
    """Set once the client was asked to halt; it is never signalled again."""

    @property
    def pid(self) -> int | None:
        """Process id encoded in the tag, if it is a ``pid:<n>`` tag."""
        return parse_pid_tag(self.tag)


def parse_pid_tag(tag: str) -> int | None:
    if not tag.startswith("pid:"):
        return None
    try:
        pid = int(tag[4:])
    except ValueError:
        return None
    return pid if pid > 0 else None


@dataclass
class ShowResult:
    """Outcome of a successful ``show()``."""

    key: str
    url: str
    record: LaunchRecord
    mode: LaunchMode
    command: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class WebDisplayError(RuntimeError):
    """Base class for all webdisplay failures."""


class ConfigurationError(WebDisplayError):
    """Invalid port range, negative fixed port, or similar."""


class BindExhausted(WebDisplayError):
    """Every bind attempt failed; the server stays unbound."""


class ServerNotReady(WebDisplayError):
    """The server instance does not exist yet."""


class EndpointNotFound(WebDisplayError):
    """No handler is registered under the requested endpoint name."""


class KeyGenerationFailed(WebDisplayError):
    """Could not draw a session key that is unique for the window."""


class UnsupportedBatchMode(WebDisplayError):
    """Batch window requested with a launch mode that cannot run headless."""


class MissingDisplayEnvironment(WebDisplayError):
    """A headless engine mode requires a display server variable."""


class ProcessSpawnFailed(WebDisplayError):
    """The external display client could not be started."""
