"""Registry of optional in-process rendering engines.

Engines (e.g. an embedded Chromium or Qt WebEngine view) are provided by
separate distributions that declare an entry point in the
``webdisplay.engines`` group. The entry point must resolve to a zero-argument
callable returning an ``EngineLauncher``. Engines whose module cannot be
imported are skipped, so only installed engines ever appear here.
"""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from webdisplay.server import ServerHandle

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "webdisplay.engines"


@runtime_checkable
class EngineLauncher(Protocol):
    """Shows a window URL inside the current process."""

    name: str

    def available(self) -> bool: ...

    def launch(
        self,
        url: str,
        server: ServerHandle,
        batch_mode: bool,
        width: int,
        height: int,
    ) -> None: ...


class EngineRegistry:
    """Mapping of engine name to launcher."""

    def __init__(self, launchers: list[EngineLauncher] | None = None) -> None:
        self._launchers: dict[str, EngineLauncher] = {}
        for launcher in launchers or []:
            self.register(launcher)

    @classmethod
    def discover(cls) -> EngineRegistry:
        """Build a registry from installed ``webdisplay.engines`` entry points."""
        registry = cls()
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                factory = ep.load()
                launcher = factory()
            except Exception as e:
                logger.debug(f"Skipping engine {ep.name!r}: {e}")
                continue
            if not isinstance(launcher, EngineLauncher):
                logger.warning(f"Entry point {ep.name!r} did not produce an EngineLauncher")
                continue
            registry.register(launcher, name=ep.name)
        return registry

    def register(self, launcher: EngineLauncher, name: str | None = None) -> None:
        name = name or launcher.name
        self._launchers[name] = launcher
        logger.debug(f"Registered engine {name!r}")

    def unregister(self, name: str) -> None:
        self._launchers.pop(name, None)

    def get(self, name: str) -> EngineLauncher | None:
        """Return the launcher if registered and currently available."""
        launcher = self._launchers.get(name)
        if launcher is None:
            return None
        try:
            return launcher if launcher.available() else None
        except Exception:
            logger.debug(f"Engine {name!r} availability check failed", exc_info=True)
            return None

    def __contains__(self, name: object) -> bool:
        return name in self._launchers

    @property
    def names(self) -> list[str]:
        return sorted(self._launchers)
