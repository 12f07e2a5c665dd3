"""
Simulation Clock and Event Queue

This module provides the single ordered event queue that drives the
simulation. Ticks, channel arrivals, loss fades, operator actions and
retransmission timeouts are all scheduled here and executed one at a
time in time order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional
import heapq


class EventType(Enum):
    """Types of scheduled events."""
    TICK = 0              # Sender may emit one segment
    PACKET_ARRIVAL = 1    # Packet reaches the receiver
    ACK_ARRIVAL = 2       # ACK reaches the sender
    TIMEOUT = 3           # Retransmission timer expiry
    FADE = 4              # Lost unit is removed from the channel
    OPERATOR = 5          # Scripted operator action


@dataclass(order=True)
class ScheduledEvent:
    """
    Event waiting in the queue.

    Ordered by time, then by scheduling order so that events due at the
    same instant run first-in first-out.
    """
    time: float
    order: int
    event_type: EventType = field(compare=False)
    callback: Callable[..., None] = field(compare=False, repr=False)
    data: dict = field(compare=False, default_factory=dict)
    cancelled: bool = field(compare=False, default=False)

    def cancel(self):
        """Invalidate the event; it is dropped when it reaches the head."""
        self.cancelled = True


class EventScheduler:
    """
    Discrete-event clock.

    Attributes:
        now: Current simulation time
        events_processed: Number of handlers executed so far
    """

    def __init__(self, start_time: float = 0.0):
        self.now = start_time
        self.events_processed = 0

        self._queue: List[ScheduledEvent] = []
        self._counter = 0

    def schedule(
        self,
        delay: float,
        event_type: EventType,
        callback: Callable[..., None],
        **data
    ) -> ScheduledEvent:
        """
        Schedule a callback after a delay.

        Args:
            delay: Delay from now in seconds (>= 0)
            event_type: Kind of event, for inspection
            callback: Handler called with ``data`` as keyword arguments
            **data: Event payload

        Returns:
            The scheduled event, usable as a cancellation handle
        """
        if delay < 0:
            raise ValueError(f"Cannot schedule into the past (delay={delay})")

        self._counter += 1
        event = ScheduledEvent(
            time=self.now + delay,
            order=self._counter,
            event_type=event_type,
            callback=callback,
            data=data
        )
        heapq.heappush(self._queue, event)
        return event

    def cancel(self, event: Optional[ScheduledEvent]):
        """Cancel a scheduled event (None is ignored)."""
        if event is not None:
            event.cancel()

    def _discard_cancelled(self):
        while self._queue and self._queue[0].cancelled:
            heapq.heappop(self._queue)

    def next_event_time(self) -> Optional[float]:
        """Time of the next live event, or None if the queue is empty."""
        self._discard_cancelled()
        if not self._queue:
            return None
        return self._queue[0].time

    def step(self) -> Optional[ScheduledEvent]:
        """
        Execute the next live event.

        Returns:
            The executed event, or None if nothing was pending
        """
        self._discard_cancelled()
        if not self._queue:
            return None

        event = heapq.heappop(self._queue)
        self.now = max(self.now, event.time)
        self.events_processed += 1
        event.callback(**event.data)
        return event

    def run_until(self, end_time: float) -> int:
        """
        Execute every event due at or before ``end_time``.

        The clock ends at ``end_time`` even if the queue drains earlier.

        Returns:
            Number of events executed
        """
        processed = 0
        while True:
            next_time = self.next_event_time()
            if next_time is None or next_time > end_time:
                break
            self.step()
            processed += 1

        self.now = max(self.now, end_time)
        return processed

    def run_for(self, duration: float) -> int:
        """Advance the clock by ``duration`` seconds."""
        return self.run_until(self.now + duration)

    def pending(self, event_type: Optional[EventType] = None) -> List[ScheduledEvent]:
        """Live events in time order, optionally filtered by type."""
        events = sorted(e for e in self._queue if not e.cancelled)
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events

    def pending_count(self) -> int:
        """Number of live events in the queue."""
        return sum(1 for e in self._queue if not e.cancelled)

    def clear(self):
        """Drop every pending event. The clock keeps its current time."""
        for event in self._queue:
            event.cancel()
        self._queue.clear()
