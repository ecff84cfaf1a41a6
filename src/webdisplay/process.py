"""Spawning and halting external display clients.

Direct spawns are tracked by process id so they can later be halted through
a ``pid:<n>`` tag. Shell launches are fire-and-forget and cannot be halted.
"""

from __future__ import annotations

import logging
import subprocess
import threading

from webdisplay._platform import Platform, current_platform
from webdisplay._types import ProcessSpawnFailed, parse_pid_tag

logger = logging.getLogger(__name__)


def pid_tag(pid: int) -> str:
    return f"pid:{pid}"


class ProcessSupervisor:
    """Starts display clients and kills them on request."""

    def __init__(self, platform: Platform | None = None) -> None:
        self.platform = platform or current_platform()
        self._children: dict[int, subprocess.Popen] = {}
        self._finished: set[int] = set()
        """Pids this supervisor halted or reaped; never signalled again."""
        self._lock = threading.Lock()

    def spawn(self, program: str, args: list[str]) -> int:
        """Start ``program args...`` without waiting and return its pid.

        Raises:
            ProcessSpawnFailed: The program could not be executed.
        """
        argv = [program, *args]
        logger.debug(f"Spawning display client: {argv}")
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **self.platform.popen_kwargs(),
            )
        except (OSError, ValueError) as e:
            logger.error(f"Fail to launch {program}: {e}")
            raise ProcessSpawnFailed(f"Failed to launch {program}: {e}") from e
        with self._lock:
            self._prune()
            # the OS may hand out a reaped pid again
            self._finished.discard(proc.pid)
            self._children[proc.pid] = proc
        return proc.pid

    def _prune(self) -> None:
        """Forget children that exited on their own. Caller holds the lock."""
        for pid, proc in list(self._children.items()):
            if proc.poll() is not None:
                del self._children[pid]
                self._finished.add(pid)

    def run_shell(self, command: str) -> int:
        """Run command through the shell and return its exit status.

        Templates put the client in the background themselves (trailing
        ``&``), so this returns as soon as the shell does.

        Raises:
            ProcessSpawnFailed: The shell could not be started.
        """
        logger.debug(f"Show web window with shell command: {command}")
        try:
            completed = subprocess.run(command, shell=True, check=False)
        except OSError as e:
            raise ProcessSpawnFailed(f"Failed to run {command!r}: {e}") from e
        if completed.returncode != 0:
            logger.warning(f"Display command exited with status {completed.returncode}: {command}")
        return completed.returncode

    def halt(self, tag: str) -> bool:
        """Kill the client identified by a ``pid:<n>`` tag.

        Any other tag shape, a process that no longer exists, or a pid this
        supervisor already halted or reaped is ignored. A killed child is
        reaped before returning. Returns True if a termination signal was
        delivered.
        """
        pid = parse_pid_tag(tag)
        if pid is None:
            logger.debug(f"Ignoring halt request for {tag!r}")
            return False

        with self._lock:
            self._prune()
            if pid in self._finished:
                logger.debug(f"pid={pid} already halted or exited")
                return False
            proc = self._children.pop(pid, None)
            self._finished.add(pid)

        try:
            self.platform.kill(pid)
            sent = True
        except OSError as e:
            logger.debug(f"Could not halt pid={pid}: {e}")
            sent = False

        if proc is not None:
            try:
                proc.wait(timeout=1)
            except subprocess.TimeoutExpired:
                logger.debug(f"pid={pid} did not exit after kill")
        return sent

    def halt_all(self) -> int:
        """Halt every child spawned by this supervisor that is still running."""
        with self._lock:
            self._prune()
            pids = list(self._children)
        return sum(self.halt(pid_tag(pid)) for pid in pids)

    @property
    def running(self) -> list[int]:
        with self._lock:
            self._prune()
            return list(self._children)
