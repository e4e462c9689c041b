"""
Per-request lifecycle event channel.

A single producer (the pipeline) notifies every registered listener. Both
result modes wrap the same emitter, so promise and stream consumers observe
identical events.
"""
import logging
from typing import Any, Callable, Dict, List

from .types import EventListener

logger = logging.getLogger("fetch_pipeline.events")

EVENT_NAMES = frozenset({
    "request",
    "response",
    "redirect",
    "retry",
    "upload_progress",
    "download_progress",
    "error",
})


class EventEmitter:
    """Observer list keyed by event name."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventListener]] = {}

    def on(self, event: str, listener: EventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Args:
            event: Event name (see EVENT_NAMES)
            listener: Callable invoked with the event payload

        Returns:
            Function to remove the listener
        """
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event!r}. Must be one of: {sorted(EVENT_NAMES)}")
        self._listeners.setdefault(event, []).append(listener)
        return lambda: self.off(event, listener)

    def once(self, event: str, listener: EventListener) -> Callable[[], None]:
        """Add a listener that is removed after its first call."""

        def wrapper(*args: Any) -> None:
            self.off(event, wrapper)
            listener(*args)

        return self.on(event, wrapper)

    def off(self, event: str, listener: EventListener) -> None:
        """Remove an event listener."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        """Emit an event to all listeners."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception:
                logger.exception(f"EventEmitter.emit: listener for '{event}' raised")
