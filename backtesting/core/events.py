"""
Event Queue for the Backtesting Engine

The queue is a strict FIFO: downstream causality (data, signal, order, fill)
for a single exchange/asset/pair stream depends on arrival order, so events are
never reordered by timestamp or priority.
"""

from collections import deque
from typing import Any, Dict, Optional
import logging

from .interfaces import (
    Event, EventType, DataEvent, SignalEvent, OrderEvent, FillEvent
)

logger = logging.getLogger(__name__)


class EventQueue:
    """
    Ordered buffer of pending simulation events.

    Single-threaded: the engine is the only producer and consumer during a run.
    """

    def __init__(self):
        self._queue = deque()
        self._event_count = 0
        self._processed_count = 0

    def push(self, event: Event) -> None:
        """
        Append event to the tail of the queue.

        Args:
            event: Event to add
        """
        self._queue.append(event)
        self._event_count += 1
        logger.debug(f"Added {event.event_type.value} event at {event.timestamp}")

    def pop(self) -> Optional[Event]:
        """
        Remove and return the head of the queue.

        Returns:
            Next event or None if queue is empty
        """
        if not self._queue:
            return None
        event = self._queue.popleft()
        self._processed_count += 1
        logger.debug(f"Processing {event.event_type.value} event at {event.timestamp}")
        return event

    def peek(self) -> Optional[Event]:
        return self._queue[0] if self._queue else None

    def size(self) -> int:
        return len(self._queue)

    def is_empty(self) -> bool:
        return not self._queue

    def clear(self) -> None:
        self._queue.clear()

    def __len__(self) -> int:
        return len(self._queue)

    def get_statistics(self) -> Dict[str, Any]:
        """Get queue statistics."""
        return {
            'current_size': len(self._queue),
            'total_events': self._event_count,
            'processed_events': self._processed_count,
        }


class EventLogger:
    """
    Event logger for debugging and analysis.

    Counts every dispatched event by type and logs it at a level that
    matches how often it occurs.
    """

    def __init__(self, log_level: str = "INFO"):
        self.logger = logging.getLogger(f"{__name__}.EventLogger")
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.event_counts: Dict[EventType, int] = {}

    def log_event(self, event: Event) -> None:
        """
        Log an event.

        Args:
            event: Event to log
        """
        self.event_counts[event.event_type] = self.event_counts.get(event.event_type, 0) + 1

        if isinstance(event, DataEvent):
            self.logger.debug(
                f"DATA: {event.timestamp} {event.exchange} {event.asset.value} {event.pair} "
                f"Close={event.close:.4f} Volume={event.volume}"
            )
        elif isinstance(event, SignalEvent):
            self.logger.debug(
                f"SIGNAL: {event.timestamp} {event.pair} {event.direction.value} {event.reason}"
            )
        elif isinstance(event, OrderEvent):
            self.logger.info(
                f"ORDER: {event.timestamp} {event.pair} "
                f"{event.direction.value} {event.amount} @ {event.close}"
            )
        elif isinstance(event, FillEvent):
            self.logger.info(
                f"FILL: {event.timestamp} {event.pair} {event.status.value} "
                f"{event.amount} @ {event.fill_price:.4f} Fee={event.fee:.4f}"
            )

    def get_event_counts(self) -> Dict[str, int]:
        """Get event counts by type."""
        return {et.value: count for et, count in self.event_counts.items()}

    def reset_counts(self) -> None:
        self.event_counts.clear()
