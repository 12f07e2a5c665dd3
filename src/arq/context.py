"""
Session Context

Shared state of one simulated session. The simulation driver owns the
context and hands it to the sender, the receiver and the channel, so
none of them reaches for globals.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import (
    DEFAULT_WINDOW_SIZE, DEFAULT_TRANSIT_DURATION, TIMEOUT_MARGIN,
    calculate_timeout
)
from src.utils.clock import EventScheduler
from src.utils.logger import SimulationLogger
from src.utils.metrics import MetricsCollector


@dataclass
class SessionContext:
    """
    Session state shared by the protocol components.

    Attributes:
        scheduler: The single event queue / clock
        logger: Event log
        metrics: Event counters and channel trace
        window_size: Send and receive window capacity
        transit_duration: Nominal channel transit time per unit
        timeout_margin: Added to the round trip for the timeout
        running: Session started and not reset
        paused: Session frozen by the operator
        send_packet: Puts a packet on the channel (seq_num)
        send_ack: Puts an ACK on the channel (ack_num)
        deliver: Hands an in-order segment to the consumer (seq_num)
    """
    scheduler: EventScheduler
    logger: SimulationLogger
    metrics: MetricsCollector
    window_size: int = DEFAULT_WINDOW_SIZE
    transit_duration: float = DEFAULT_TRANSIT_DURATION
    timeout_margin: float = TIMEOUT_MARGIN
    running: bool = False
    paused: bool = False
    send_packet: Optional[Callable[[int], Any]] = None
    send_ack: Optional[Callable[[int], Any]] = None
    deliver: Optional[Callable[[int], None]] = None

    @property
    def now(self) -> float:
        return self.scheduler.now

    def get_timeout(self) -> float:
        """Retransmission timeout for the current transit duration."""
        return calculate_timeout(self.transit_duration, self.timeout_margin)
