"""
Progress notification.

The copy engine publishes three observable properties: its lifecycle phase,
the number of bytes copied so far and the path it is currently working on.
Renderers (a GUI, a log, a progress bar) subscribe by event type and are
called synchronously, so they must not block.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(Enum):
    """
    Events emitted by the copy engine.

    Attributes
    ----------
    STATE : str
        Phase transition, values are CopierState members
    BYTE_COUNTER : str
        Cumulative number of copied bytes
    FILE : str
        Path of the directory being scanned or the file being processed
    """

    STATE = "state"
    BYTE_COUNTER = "byte_counter"
    FILE = "file"


@dataclass(frozen=True)
class CopyEvent:
    """
    A change of one observable property.

    Attributes
    ----------
    type : EventType
        Which property changed
    old_value : Any
        Previous value (None for file events)
    new_value : Any
        Current value
    """

    type: EventType
    old_value: Any
    new_value: Any


Listener = Callable[[CopyEvent], None]


class ProgressNotifier:
    """
    Registry of progress listeners, keyed by event type.

    Listeners are called on the thread that fires the event: the caller's
    thread for state and file events, and the worker thread that completes a
    slice for byte counter events. Byte counter events are never fired
    concurrently.
    """

    def __init__(self):
        self._listeners: dict[EventType, list[Listener]] = {t: [] for t in EventType}
        self._lock = threading.Lock()

    def add_listener(self, event_type: EventType, listener: Listener) -> None:
        """
        Subscribe to an event type.

        Parameters
        ----------
        event_type : EventType
            The property to watch
        listener : Callable[[CopyEvent], None]
            Called with every change of that property
        """
        with self._lock:
            self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: EventType, listener: Listener) -> None:
        """Unsubscribe; unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners[event_type]:
                self._listeners[event_type].remove(listener)

    def fire(self, event_type: EventType, old_value: Any, new_value: Any) -> None:
        """
        Deliver a change to all listeners of its type.

        Nothing is delivered when old and new value are equal and not None.
        """
        if old_value is not None and old_value == new_value:
            return
        with self._lock:
            listeners = list(self._listeners[event_type])
        event = CopyEvent(type=event_type, old_value=old_value, new_value=new_value)
        for listener in listeners:
            listener(event)


class LoggingProgressReporter:
    """
    Log phase changes and copy progress.

    Parameters
    ----------
    total_size : Callable[[], int]
        Returns the total byte count of the running invocation
    update_interval : float, default=2.0
        Minimum interval between progress lines in seconds
    """

    def __init__(self, total_size: Callable[[], int], update_interval: float = 2.0):
        self.total_size = total_size
        self.update_interval = update_interval
        self.last_update = 0.0

    def attach(self, notifier: ProgressNotifier) -> None:
        """Subscribe to state and byte counter events."""
        notifier.add_listener(EventType.STATE, self.on_state)
        notifier.add_listener(EventType.BYTE_COUNTER, self.on_bytes)

    def detach(self, notifier: ProgressNotifier) -> None:
        """Unsubscribe from the notifier."""
        notifier.remove_listener(EventType.STATE, self.on_state)
        notifier.remove_listener(EventType.BYTE_COUNTER, self.on_bytes)

    def on_state(self, event: CopyEvent) -> None:
        logger.info(f"state: {event.new_value.value}")

    def on_bytes(self, event: CopyEvent) -> None:
        current_time = time.monotonic()
        total = self.total_size()
        # always log completion
        if current_time - self.last_update < self.update_interval and event.new_value < total:
            return
        self.last_update = current_time
        percentage = (event.new_value / total * 100) if total > 0 else 0
        logger.info(f"copied {event.new_value:,} of {total:,} bytes ({percentage:.1f}%)")
