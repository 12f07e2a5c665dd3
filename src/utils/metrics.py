"""
Metrics Collection and Calculation

This module provides counters for protocol events and a per-unit
channel trace, with summaries for a single session.
"""

from collections import deque
from dataclasses import dataclass, asdict
from typing import Optional
import os

import pandas as pd

from config import TRACE_HISTORY_SIZE


@dataclass
class UnitRecord:
    """Lifecycle of one packet or ACK in the channel."""
    unit_id: int
    kind: str
    seq_num: int
    sent_at: float
    transit_duration: float
    outcome: str
    finished_at: float
    deferred: int = 0


class MetricsCollector:
    """
    Collects and calculates performance metrics for one session.

    Primary metric: Efficiency = Segments Delivered / Packets Transmitted

    Attributes:
        start_time: Session start time
        end_time: Session end time
        unit_records: Most recent finished channel units, in completion order
    """

    TRACE_COLUMNS = [
        'unit_id', 'kind', 'seq_num', 'sent_at', 'transit_duration',
        'outcome', 'finished_at', 'deferred'
    ]

    def __init__(self, trace_size: int = TRACE_HISTORY_SIZE):
        self.trace_size = trace_size
        self.reset()

    def reset(self):
        """Reset all counters."""
        # Time tracking
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        # Sender side
        self.packets_sent = 0
        self.retransmissions = 0
        self.timeouts = 0
        self.acks_received = 0
        self.acks_ignored = 0

        # Receiver side
        self.segments_delivered = 0
        self.packets_discarded = 0
        self.packets_buffered = 0
        self.duplicates = 0
        self.acks_sent = 0

        # Channel
        self.packets_lost = 0
        self.acks_lost = 0
        self.deferred_arrivals = 0

        self.unit_records: deque = deque(maxlen=self.trace_size)

    def start(self, time: float):
        """Mark session start (kept across pause/resume)."""
        if self.start_time is None:
            self.start_time = time

    def finish(self, time: float):
        """Mark session end."""
        self.end_time = time

    def record_packet_sent(self, resend: bool = False):
        self.packets_sent += 1
        if resend:
            self.retransmissions += 1

    def record_timeout(self):
        self.timeouts += 1

    def record_ack_received(self, ignored: bool = False):
        self.acks_received += 1
        if ignored:
            self.acks_ignored += 1

    def record_delivery(self):
        self.segments_delivered += 1

    def record_discard(self):
        self.packets_discarded += 1

    def record_buffered(self):
        self.packets_buffered += 1

    def record_duplicate(self):
        self.duplicates += 1

    def record_ack_sent(self):
        self.acks_sent += 1

    def record_unit_lost(self, kind: str):
        """Record an operator loss marking ('packet' or 'ack')."""
        if kind == 'packet':
            self.packets_lost += 1
        else:
            self.acks_lost += 1

    def record_deferred_arrival(self):
        """Record an arrival that came due while paused."""
        self.deferred_arrivals += 1

    def record_unit(self, record: UnitRecord):
        """Record a finished channel unit."""
        self.unit_records.append(record)

    def elapsed(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return max(0.0, self.end_time - self.start_time)

    def calculate_efficiency(self) -> float:
        """
        Calculate transmission efficiency.

        Efficiency = Segments Delivered / Packets Transmitted

        Returns:
            Efficiency ratio (0-1)
        """
        if self.packets_sent <= 0:
            return 0.0
        return self.segments_delivered / self.packets_sent

    def calculate_delivery_rate(self) -> float:
        """
        Calculate delivered segments per second of simulation time.
        """
        total_time = self.elapsed()
        if total_time <= 0:
            return 0.0
        return self.segments_delivered / total_time

    def calculate_retransmission_ratio(self) -> float:
        """Share of emissions that were resends."""
        if self.packets_sent <= 0:
            return 0.0
        return self.retransmissions / self.packets_sent

    def get_summary(self) -> dict:
        """Get all metrics as a dictionary."""
        return {
            'elapsed': self.elapsed(),
            'packets_sent': self.packets_sent,
            'retransmissions': self.retransmissions,
            'timeouts': self.timeouts,
            'acks_sent': self.acks_sent,
            'acks_received': self.acks_received,
            'acks_ignored': self.acks_ignored,
            'segments_delivered': self.segments_delivered,
            'packets_discarded': self.packets_discarded,
            'packets_buffered': self.packets_buffered,
            'duplicates': self.duplicates,
            'packets_lost': self.packets_lost,
            'acks_lost': self.acks_lost,
            'deferred_arrivals': self.deferred_arrivals,
            'efficiency': self.calculate_efficiency(),
            'delivery_rate': self.calculate_delivery_rate(),
            'retransmission_ratio': self.calculate_retransmission_ratio()
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Channel trace as a DataFrame, one row per finished unit."""
        rows = [asdict(r) for r in self.unit_records]
        return pd.DataFrame(rows, columns=self.TRACE_COLUMNS)

    def save_trace(self, path: str) -> str:
        """
        Write the channel trace to CSV.

        Returns:
            The path written
        """
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        return path
