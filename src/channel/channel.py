"""
Operator-Perturbed Channel Model

This module models the link between sender and receiver. Each packet or
ACK is an in-flight unit that arrives after its transit duration unless
an operator marked it lost while the simulation was paused. Loss is
never announced to either side; recovery relies on timeouts only.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from config import ARRIVAL_POLL_INTERVAL, LOSS_FADE_DELAY, TRACE_HISTORY_SIZE
from src.arq.context import SessionContext
from src.utils.clock import EventType, ScheduledEvent
from src.utils.logger import CATEGORY_NETWORK
from src.utils.metrics import UnitRecord


class Direction(Enum):
    """Direction of travel; the value names the unit kind."""
    FORWARD = "packet"    # sender -> receiver
    REVERSE = "ack"       # receiver -> sender


class UnitOutcome(Enum):
    """How a unit left the channel."""
    ARRIVED = "arrived"
    LOST = "lost"
    CLEARED = "cleared"


@dataclass
class InFlightUnit:
    """
    Packet or ACK traversing the channel.

    Attributes:
        unit_id: Channel-wide identifier
        direction: Direction of travel
        seq_num: Sequence number carried (ACK number for ACKs)
        transit_duration: Nominal time in the channel
        sent_at: Emission time
        lost: Marked lost by the operator
        deferred: Times the arrival re-polled because of a pause
    """
    unit_id: int
    direction: Direction
    seq_num: int
    transit_duration: float
    sent_at: float
    lost: bool = False
    deferred: int = 0
    finished_at: Optional[float] = None
    outcome: Optional[UnitOutcome] = None
    event: Optional[ScheduledEvent] = field(default=None, repr=False, compare=False)

    @property
    def kind(self) -> str:
        return self.direction.value

    @property
    def is_packet(self) -> bool:
        return self.direction == Direction.FORWARD

    @property
    def due_at(self) -> float:
        """Nominal arrival time."""
        return self.sent_at + self.transit_duration

    @property
    def label(self) -> str:
        return f"{'Packet' if self.is_packet else 'ACK'} {self.seq_num}"

    def to_record(self) -> UnitRecord:
        return UnitRecord(
            unit_id=self.unit_id,
            kind=self.kind,
            seq_num=self.seq_num,
            sent_at=self.sent_at,
            transit_duration=self.transit_duration,
            outcome=self.outcome.value if self.outcome else "",
            finished_at=self.finished_at if self.finished_at is not None else self.sent_at,
            deferred=self.deferred
        )


class Channel:
    """
    Lossy-by-operator channel.

    Arrivals that come due while the session is paused re-poll every
    ``poll_interval`` until it resumes. A unit marked lost has its arrival
    cancelled and is removed after ``fade_delay``.

    Attributes:
        context: Session context (clock, pause flag, log, metrics)
        in_flight: Units currently in the channel, by id
        history: Most recent units that left the channel, in order
    """

    def __init__(
        self,
        context: SessionContext,
        on_packet_arrive: Callable[[int], object],
        on_ack_arrive: Callable[[int], object],
        fade_delay: float = LOSS_FADE_DELAY,
        poll_interval: float = ARRIVAL_POLL_INTERVAL,
        history_size: int = TRACE_HISTORY_SIZE
    ):
        """
        Initialize channel.

        Args:
            context: Session context
            on_packet_arrive: Receiver entry point (seq_num)
            on_ack_arrive: Sender entry point (ack_num)
            fade_delay: Delay before a lost unit is removed
            poll_interval: Re-check interval for arrivals during a pause
            history_size: Number of finished units kept in ``history``
        """
        self.context = context
        self.on_packet_arrive = on_packet_arrive
        self.on_ack_arrive = on_ack_arrive
        self.fade_delay = fade_delay
        self.poll_interval = poll_interval

        self.in_flight: Dict[int, InFlightUnit] = {}
        self.history: deque = deque(maxlen=history_size)
        self._outcome_counts: Dict[UnitOutcome, int] = {}
        self._finished_deferred = 0
        self._emit_listeners: List[Callable[[InFlightUnit], None]] = []
        self._next_unit_id = 1

    def add_emit_listener(self, listener: Callable[[InFlightUnit], None]):
        """Register an observer called for every emitted unit."""
        self._emit_listeners.append(listener)

    def remove_emit_listener(self, listener: Callable[[InFlightUnit], None]):
        if listener in self._emit_listeners:
            self._emit_listeners.remove(listener)

    def emit_packet(self, seq_num: int, transit_duration: Optional[float] = None) -> InFlightUnit:
        """Put a packet on the forward path."""
        return self._emit(Direction.FORWARD, seq_num, transit_duration)

    def emit_ack(self, ack_num: int, transit_duration: Optional[float] = None) -> InFlightUnit:
        """Put an ACK on the reverse path."""
        return self._emit(Direction.REVERSE, ack_num, transit_duration)

    def _emit(
        self,
        direction: Direction,
        seq_num: int,
        transit_duration: Optional[float]
    ) -> InFlightUnit:
        if transit_duration is None:
            transit_duration = self.context.transit_duration

        unit = InFlightUnit(
            unit_id=self._next_unit_id,
            direction=direction,
            seq_num=seq_num,
            transit_duration=transit_duration,
            sent_at=self.context.now
        )
        self._next_unit_id += 1
        self.in_flight[unit.unit_id] = unit

        event_type = EventType.PACKET_ARRIVAL if unit.is_packet else EventType.ACK_ARRIVAL
        unit.event = self.context.scheduler.schedule(
            transit_duration, event_type, self._arrive, unit_id=unit.unit_id
        )

        for listener in list(self._emit_listeners):
            listener(unit)

        return unit

    def _arrive(self, unit_id: int):
        unit = self.in_flight.get(unit_id)
        if unit is None or unit.lost:
            return

        if self.context.paused:
            # Re-poll until the operator resumes
            unit.deferred += 1
            self.context.metrics.record_deferred_arrival()
            event_type = EventType.PACKET_ARRIVAL if unit.is_packet else EventType.ACK_ARRIVAL
            unit.event = self.context.scheduler.schedule(
                self.poll_interval, event_type, self._arrive, unit_id=unit_id
            )
            return

        self._finish(unit, UnitOutcome.ARRIVED)

        if unit.is_packet:
            self.on_packet_arrive(unit.seq_num)
        else:
            self.on_ack_arrive(unit.seq_num)

    def mark_lost(self, unit_id: int) -> bool:
        """
        Mark an in-flight unit lost (operator action).

        Only permitted while paused. The unit's arrival never fires; it
        is removed after the fade delay.

        Returns:
            True if the unit was marked
        """
        if not self.context.paused:
            self.context.logger.warning(
                f"NETWORK: Unit {unit_id} can only be deleted while paused", CATEGORY_NETWORK
            )
            return False

        unit = self.in_flight.get(unit_id)
        if unit is None or unit.lost:
            return False

        unit.lost = True
        self.context.scheduler.cancel(unit.event)
        unit.event = self.context.scheduler.schedule(
            self.fade_delay, EventType.FADE, self._fade, unit_id=unit_id
        )
        unit.finished_at = self.context.now

        self.context.metrics.record_unit_lost(unit.kind)
        self.context.logger.unit_lost(unit.label)
        return True

    def _fade(self, unit_id: int):
        unit = self.in_flight.pop(unit_id, None)
        if unit is None:
            return
        unit.outcome = UnitOutcome.LOST
        unit.event = None
        self._retire(unit)

    def _finish(self, unit: InFlightUnit, outcome: UnitOutcome):
        self.in_flight.pop(unit.unit_id, None)
        unit.outcome = outcome
        unit.finished_at = self.context.now
        unit.event = None
        self._retire(unit)

    def _retire(self, unit: InFlightUnit):
        self.history.append(unit)
        self._outcome_counts[unit.outcome] = self._outcome_counts.get(unit.outcome, 0) + 1
        self._finished_deferred += unit.deferred
        self.context.metrics.record_unit(unit.to_record())

    def get_unit(self, unit_id: int) -> Optional[InFlightUnit]:
        return self.in_flight.get(unit_id)

    def find(self, direction: Direction, seq_num: int, include_lost: bool = False) -> List[InFlightUnit]:
        """In-flight units carrying a sequence number, oldest first."""
        return [
            u for u in self.in_flight.values()
            if u.direction == direction and u.seq_num == seq_num
            and (include_lost or not u.lost)
        ]

    def units(self, direction: Optional[Direction] = None) -> List[InFlightUnit]:
        """Live (not lost) in-flight units, oldest first."""
        return [
            u for u in self.in_flight.values()
            if not u.lost and (direction is None or u.direction == direction)
        ]

    def clear(self):
        """Drop every in-flight unit and forget the history."""
        for unit in self.in_flight.values():
            self.context.scheduler.cancel(unit.event)
            unit.event = None
            unit.outcome = UnitOutcome.CLEARED
        self.in_flight.clear()
        self.history.clear()
        self._outcome_counts = {}
        self._finished_deferred = 0
        self._next_unit_id = 1

    def get_statistics(self) -> dict:
        """Get channel statistics."""
        return {
            'in_flight': len(self.units()),
            'arrived': self._outcome_counts.get(UnitOutcome.ARRIVED, 0),
            'lost': self._outcome_counts.get(UnitOutcome.LOST, 0),
            'deferred_polls': self._finished_deferred +
                              sum(u.deferred for u in self.in_flight.values())
        }
