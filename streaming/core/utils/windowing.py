"""
Windowing utilities for stream processing.

Implements the bounded event buffer used by the live stream: only the most
recent events are retained, oldest first.
"""

from typing import Iterable, List
from collections import deque

from streaming.core.models.events import BrewEvent


class EventBuffer:
    """Count-bounded buffer keeping the most recent events."""

    def __init__(self, max_events: int):
        """
        Initialize the buffer.

        Args:
            max_events: Number of most recent events to retain
        """
        if max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self.max_events = max_events
        self.events = deque(maxlen=max_events)

    def add_event(self, event: BrewEvent):
        """Add event to buffer, evicting the oldest if full."""
        self.events.append(event)

    def extend(self, events: Iterable[BrewEvent]):
        """Add several events in arrival order."""
        self.events.extend(events)

    def get_events(self) -> List[BrewEvent]:
        """Get all buffered events, oldest first."""
        return list(self.events)

    def size(self) -> int:
        """Get number of events in buffer."""
        return len(self.events)

    def get_events_in_range(self, start_timestamp: int, end_timestamp: int) -> List[BrewEvent]:
        """Get events within a specific timestamp range."""
        return [
            event for event in self.events
            if start_timestamp <= event.timestamp <= end_timestamp
        ]

    def clear(self):
        """Clear all events from buffer."""
        self.events.clear()
