"""Debounced change notifier.

Mutations queue one ``ChangeEvent`` per type. Events for a type already in the
queue replace its payload but keep their position, so a flush carries one
event per distinct type in first-touch order. Every emit cancels the pending
flush and schedules a new one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from relstore.events.scheduler import AsyncioScheduler, Cancellable, TaskScheduler

logger = logging.getLogger(__name__)


@dataclass
class ChangeEvent:
    """All records of ``type`` at the moment the event was queued."""

    type: str
    payload: list[dict[str, Any]]


@dataclass
class ChangeFilter:
    """Restrict delivery to the listed type names. ``None`` means every type."""

    types: frozenset[str] | None = None

    def __init__(self, types: Iterable[str] | None = None) -> None:
        self.types = frozenset(types) if types is not None else None

    def matches(self, event: ChangeEvent) -> bool:
        return self.types is None or event.type in self.types


# Listener: receives the filtered batch; may return an awaitable
ChangeListener = Callable[[list[ChangeEvent]], Any]


@dataclass
class _Subscription:
    listener: ChangeListener
    filter: ChangeFilter | None = None
    tasks: set[asyncio.Task] = field(default_factory=set)


class ChangeNotifier:
    """Coalesce change events and flush them as batches to subscribers."""

    def __init__(self, scheduler: TaskScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncioScheduler()
        self._subscriptions: dict[str, _Subscription] = {}
        self._pending: dict[str, ChangeEvent] = {}
        self._handle: Cancellable | None = None

    # ── Subscriptions ────────────────────────────────────────

    def subscribe(self, listener: ChangeListener, filter: ChangeFilter | None = None) -> str:
        listener_id = f"listener_{uuid.uuid4().hex[:12]}"
        self._subscriptions[listener_id] = _Subscription(listener, filter)
        return listener_id

    def unsubscribe(self, listener_id: str) -> bool:
        return self._subscriptions.pop(listener_id, None) is not None

    def clear(self) -> None:
        self._subscriptions.clear()

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    @property
    def pending_types(self) -> list[str]:
        return list(self._pending)

    # ── Emission ─────────────────────────────────────────────

    def emit(self, event: ChangeEvent) -> None:
        if event.type in self._pending:
            self._pending[event.type].payload = event.payload
        else:
            self._pending[event.type] = event

        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._scheduler.schedule(self.flush)

    def flush(self) -> int:
        """Deliver pending events now. Returns the number of events flushed."""
        self._handle = None
        if not self._pending:
            return 0

        events = list(self._pending.values())
        self._pending = {}
        logger.debug("Flushing %d change event(s): %s", len(events), [e.type for e in events])

        for listener_id, sub in list(self._subscriptions.items()):
            batch = [e for e in events if sub.filter is None or sub.filter.matches(e)]
            if not batch:
                continue
            try:
                result = sub.listener(batch)
            except Exception:
                logger.exception("Error in data change listener %s", listener_id)
                continue
            if inspect.isawaitable(result):
                self._track(listener_id, sub, result)
        return len(events)

    def _track(self, listener_id: str, sub: _Subscription, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Listener %s returned an awaitable outside an event loop", listener_id)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        sub.tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            sub.tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Error in async data change listener %s",
                    listener_id,
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)
