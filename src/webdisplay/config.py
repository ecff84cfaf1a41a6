"""Configuration lookup for webdisplay.

Values come from an explicit mapping (or an rc file with ``Key: value``
lines) and are overridden by environment variables with the ``WEBGUI_``
prefix and the upper-cased key, e.g. ``WEBGUI_HTTPPORT=8088``.

Recognised keys:
    HttpPort: Fixed HTTP port (default 0 = random from range, <0 = forbidden)
    HttpPortMin / HttpPortMax: Random port range (default 8800..9800)
    HttpWStmout: WebSocket timeout in ms (default 10000)
    HttpLoopback: Bind to loopback only ("yes"/"no", default "no")
    HttpBind: Bind address, also used as host in URLs
    UseHttps / ServerCert: Enable TLS and the certificate to use
    WaitForTmout: Default wait_for() timeout in seconds (default 100)
    Chrome / Firefox: Explicit browser executables
    ChromeBatch / ChromeInteractive / FirefoxBatch / FirefoxInteractive:
        Command templates overriding the built-in ones
    Display: Default ``where`` for show() (default: native)
    Batch: Force all windows into batch mode ("yes"/"no")
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from webdisplay._types import PortConfig

logger = logging.getLogger(__name__)

_ENV_PREFIX = "WEBGUI_"
_TRUE_VALUES = ("yes", "1", "true", "on")


def _env(key: str) -> str | None:
    """Read the environment override for a configuration key."""
    return os.getenv(f"{_ENV_PREFIX}{key.upper()}")


class Settings:
    """Key -> value configuration with typed getters and defaults.

    Args:
        values: Explicit values. Environment variables take precedence
            unless ``use_env`` is False.
        use_env: Consult ``WEBGUI_*`` environment variables.
    """

    def __init__(
        self,
        values: Mapping[str, object] | None = None,
        use_env: bool = True,
    ) -> None:
        self._values: dict[str, str] = {
            k: str(v) for k, v in (values or {}).items()
        }
        self.use_env = use_env

    @classmethod
    def load(cls, path: Path | str, use_env: bool = True) -> Settings:
        """Read ``Key: value`` lines from an rc file.

        Blank lines and lines starting with ``#`` are ignored. A leading
        ``WebGui.`` prefix on keys is accepted and stripped.
        """
        values: dict[str, str] = {}
        for raw in Path(path).read_text().splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or ":" not in line:
                continue
            key, _, value = line.partition(":")
            key = key.strip()
            if key.startswith("WebGui."):
                key = key[len("WebGui."):]
            values[key] = value.strip()
        logger.debug(f"Loaded {len(values)} setting(s) from {path}")
        return cls(values, use_env=use_env)

    def set(self, key: str, value: object) -> None:
        self._values[key] = str(value)

    def get_str(self, key: str, default: str = "") -> str:
        if self.use_env:
            env = _env(key)
            if env is not None:
                return env
        return self._values.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        raw = self.get_str(key, "")
        if raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Invalid integer for {key}: {raw!r}, using {default}")
            return default

    def get_float(self, key: str, default: float) -> float:
        raw = self.get_str(key, "")
        if raw == "":
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Invalid number for {key}: {raw!r}, using {default}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get_str(key, "")
        if raw == "":
            return default
        lowered = raw.lower()
        # rc files historically say "yes"; anything containing it counts
        return "yes" in lowered or lowered in _TRUE_VALUES

    # --- Derived views ---

    def port_config(self) -> PortConfig:
        return PortConfig(
            fixed_port=self.get_int("HttpPort", 0),
            min_port=self.get_int("HttpPortMin", 8800),
            max_port=self.get_int("HttpPortMax", 9800),
            loopback=self.get_bool("HttpLoopback"),
            bind_address=self.get_str("HttpBind", ""),
            use_tls=self.get_bool("UseHttps"),
            cert_path=self.get_str("ServerCert", "rootserver.pem"),
            ws_timeout_ms=self.get_int("HttpWStmout", 10_000),
        )

    @property
    def wait_timeout(self) -> float:
        return self.get_float("WaitForTmout", 100.0)

    @property
    def display(self) -> str:
        return self.get_str("Display", "")

    @property
    def force_batch(self) -> bool:
        return self.get_bool("Batch")
