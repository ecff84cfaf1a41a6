"""Cooperative blocking wait that keeps the host event loop alive."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.01  # seconds between checks
_DEFAULT_TIMEOUT = 100.0


def wait_for(
    check: Callable[[float], int],
    timeout: float = -1,
    *,
    pump: Callable[[], None] | None = None,
    default_timeout: float = _DEFAULT_TIMEOUT,
    interval: float = _POLL_INTERVAL,
) -> int:
    """Block until check returns non-zero or the timeout expires.

    Between checks the host's pending events are processed via pump and the
    thread sleeps for interval. Everything runs on the caller's thread.

    Args:
        check: Called with the seconds spent so far; non-zero ends the wait.
        timeout: Seconds to wait. 0 waits forever, negative uses
            default_timeout.
        pump: Processes pending events of the embedding application.
        default_timeout: Substitute for a negative timeout.
        interval: Sleep between checks.

    Returns:
        The first non-zero check result, or 0 if the timeout expired.
    """
    if timeout < 0:
        timeout = default_timeout

    start = time.monotonic()
    spent = 0.0
    count = 0
    while True:
        res = check(spent)
        if res:
            logger.debug(f"Waiting result {res} spent time {spent:.3f}s ntry {count}")
            return res
        if pump is not None:
            pump()
        time.sleep(interval)
        spent = time.monotonic() - start
        if timeout > 0 and spent > timeout:
            logger.debug(f"Wait timed out after {spent:.3f}s ntry {count}")
            return 0
        count += 1
