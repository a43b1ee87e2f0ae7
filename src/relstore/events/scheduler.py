"""Task scheduler abstraction used by the change notifier.

The notifier only needs "run this callback later, and let me cancel it".
``AsyncioScheduler`` maps that onto the running event loop;
``ManualScheduler`` queues callbacks until the host drains them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Cancellable(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class TaskScheduler(Protocol):
    """Protocol that flush schedulers must implement."""

    def schedule(self, callback: Callable[[], None]) -> Cancellable | None:
        """Arrange for ``callback`` to run on a later turn. Returns a cancel handle."""
        ...


class AsyncioScheduler:
    """Schedule on the running asyncio loop (next turn, or after ``delay`` seconds)."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay

    def schedule(self, callback: Callable[[], None]) -> Cancellable | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; flush deferred until flush() is called")
            return None
        if self.delay > 0:
            return loop.call_later(self.delay, callback)
        return loop.call_soon(callback)


class _ManualHandle:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Queue callbacks until ``run_pending()`` is called."""

    def __init__(self) -> None:
        self._queue: list[_ManualHandle] = []

    @property
    def pending(self) -> int:
        return sum(1 for h in self._queue if not h.cancelled)

    def schedule(self, callback: Callable[[], None]) -> Cancellable:
        handle = _ManualHandle(callback)
        self._queue.append(handle)
        return handle

    def run_pending(self) -> int:
        """Run every queued, non-cancelled callback. Returns how many ran."""
        queue, self._queue = self._queue, []
        ran = 0
        for handle in queue:
            if handle.cancelled:
                continue
            handle.callback()
            ran += 1
        return ran
