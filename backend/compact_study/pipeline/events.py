"""
EventBus: synchronous publish/subscribe for pipeline observers.

Listeners run inline, in registration order.  A listener that raises is
logged and skipped; it never interrupts delivery to the remaining
listeners or the pipeline's own control flow.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from compact_study.core.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[[Any], None]


class EventBus:
    """Per-pipeline event registry."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        """Register `listener` for `event`."""
        self._listeners[str(event)].append(listener)

    def off(self, event: str, listener: Listener) -> bool:
        """Remove one registration of `listener`.  Returns False if it was not registered."""
        listeners = self._listeners.get(str(event), [])
        try:
            listeners.remove(listener)
        except ValueError:
            return False
        return True

    def emit(self, event: str, payload: Any = None) -> int:
        """
        Deliver `payload` to every listener registered for `event`.

        Returns the number of listeners that ran without raising.
        """
        event = str(event)
        delivered = 0
        # Snapshot so listeners may (un)subscribe while being notified
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(payload)
            except Exception:
                logger.exception("Error in event listener", event_name=event)
                continue
            delivered += 1
        return delivered

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(str(event), ()))
