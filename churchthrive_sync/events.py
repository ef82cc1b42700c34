"""
In-process pub/sub used to fan out sync state, connectivity changes and
toast notifications to whatever UI layer is attached.

The bus is an explicit object owned by the composition root; nothing here
is module-level state.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Event = dict[str, Any]
Handler = Callable[[Event], None]
Unsubscribe = Callable[[], None]

WILDCARD = "*"

# Topics published by this package
TOPIC_SYNC_STATE = "sync.state"
TOPIC_CONNECTIVITY = "connectivity"
TOPIC_TOASTS = "toasts"


class EventBus:
    """In-process event bus with topic routing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Unsubscribe:
        """Subscribe a handler to a topic ("*" for all).

        Returns:
            Callable removing the subscription
        """
        with self._lock:
            self._subscribers[topic].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(topic, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, event: Event) -> None:
        """Publish an event to a topic. Handler errors are logged, not raised."""
        handlers: list[Handler] = []
        with self._lock:
            handlers.extend(self._subscribers.get(topic, []))
            if topic != WILDCARD:
                handlers.extend(self._subscribers.get(WILDCARD, []))
        for handler in handlers:
            try:
                handler({"topic": topic, **event})
            except Exception as exc:
                logger.error(f"EventBus handler failed for topic '{topic}': {exc}")

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))


# =============================================================================
# Toasts
# =============================================================================


class ToastType(Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Seconds a toast stays visible when no duration is given
DEFAULT_DURATIONS = {
    ToastType.SUCCESS: 3.0,
    ToastType.ERROR: 5.0,
    ToastType.WARNING: 4.0,
    ToastType.INFO: 3.0,
}


@dataclass
class Toast:
    id: str
    type: ToastType
    message: str
    duration: float
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "duration": self.duration,
        }


class ToastCenter:
    """Transient user notifications published on the "toasts" topic.

    Every change publishes the full current list, so a listener can render
    it without tracking deltas. When a loop is running, toasts with a
    positive duration remove themselves after that many seconds.
    """

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._toasts: list[Toast] = []
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    @property
    def toasts(self) -> list[Toast]:
        return list(self._toasts)

    def add(
        self,
        toast_type: ToastType | str,
        message: str,
        duration: float | None = None,
    ) -> Toast:
        """Show a toast.

        Args:
            toast_type: success, error, warning or info
            message: Text to display
            duration: Seconds until auto-removal (None uses the type default,
                zero or less keeps it until removed)
        """
        kind = toast_type if isinstance(toast_type, ToastType) else ToastType(toast_type)
        if duration is None:
            duration = DEFAULT_DURATIONS[kind]
        toast = Toast(
            id=f"toast-{int(time.time() * 1000)}-{next(self._ids)}",
            type=kind,
            message=message,
            duration=duration,
        )
        self._toasts.append(toast)
        self._schedule_removal(toast)
        self._notify()
        return toast

    def success(self, message: str, duration: float | None = None) -> Toast:
        return self.add(ToastType.SUCCESS, message, duration)

    def error(self, message: str, duration: float | None = None) -> Toast:
        return self.add(ToastType.ERROR, message, duration)

    def warning(self, message: str, duration: float | None = None) -> Toast:
        return self.add(ToastType.WARNING, message, duration)

    def info(self, message: str, duration: float | None = None) -> Toast:
        return self.add(ToastType.INFO, message, duration)

    def remove(self, toast_id: str) -> bool:
        """Remove a toast. Returns False if it was already gone."""
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        remaining = [t for t in self._toasts if t.id != toast_id]
        if len(remaining) == len(self._toasts):
            return False
        self._toasts = remaining
        self._notify()
        return True

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._toasts = []
        self._notify()

    def _schedule_removal(self, toast: Toast) -> None:
        if toast.duration <= 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the toast stays until removed explicitly
            return
        self._timers[toast.id] = loop.call_later(toast.duration, self.remove, toast.id)

    def _notify(self) -> None:
        self.bus.publish(TOPIC_TOASTS, {"toasts": [t.to_dict() for t in self._toasts]})
