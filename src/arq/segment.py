"""
Segment Bookkeeping for the ARQ Sender

This module defines the per-segment status tracked by the sender and
the table that owns those segments for the lifetime of a session.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional


class SegmentStatus(Enum):
    """Segment status enumeration."""
    IN_FLIGHT = "in-flight"
    ACKNOWLEDGED = "acknowledged"
    DISCARDED = "discarded"


@dataclass
class Segment:
    """
    Sender-side segment record.

    Attributes:
        seq_num: Sequence number (positive, assigned by the sender)
        status: Current status
        send_count: Number of times the segment was put on the channel
        first_sent_at: Simulation time of the first emission
        last_sent_at: Simulation time of the latest emission
    """
    seq_num: int
    status: SegmentStatus = SegmentStatus.IN_FLIGHT
    send_count: int = 0
    first_sent_at: float = 0.0
    last_sent_at: float = 0.0

    def __post_init__(self):
        """Validate segment after initialization."""
        if self.seq_num < 1:
            raise ValueError("Sequence numbers start at 1")

    @property
    def is_acknowledged(self) -> bool:
        return self.status == SegmentStatus.ACKNOWLEDGED

    @property
    def is_in_flight(self) -> bool:
        return self.status == SegmentStatus.IN_FLIGHT

    @property
    def retransmissions(self) -> int:
        """Emissions beyond the first."""
        return max(0, self.send_count - 1)

    def __str__(self) -> str:
        return f"Segment(seq={self.seq_num}, {self.status.value}, sent={self.send_count}x)"


class SegmentTable:
    """
    Segments known to the sender, keyed by sequence number.

    Segments are created on first emission and only dropped on reset.
    """

    def __init__(self):
        self._segments: Dict[int, Segment] = {}

    def record_send(self, seq_num: int, current_time: float) -> Segment:
        """
        Record an emission of a segment (first send or resend).

        Returns:
            The segment, now in flight
        """
        segment = self._segments.get(seq_num)
        if segment is None:
            segment = Segment(seq_num=seq_num, first_sent_at=current_time)
            self._segments[seq_num] = segment

        segment.status = SegmentStatus.IN_FLIGHT
        segment.send_count += 1
        segment.last_sent_at = current_time
        return segment

    def get(self, seq_num: int) -> Optional[Segment]:
        return self._segments.get(seq_num)

    def contains(self, seq_num: int) -> bool:
        return seq_num in self._segments

    def is_acknowledged(self, seq_num: int) -> bool:
        segment = self._segments.get(seq_num)
        return segment is not None and segment.is_acknowledged

    def mark_acknowledged(self, seq_num: int) -> bool:
        """
        Mark a segment acknowledged.

        Returns:
            True if the segment exists
        """
        segment = self._segments.get(seq_num)
        if segment is None:
            return False
        segment.status = SegmentStatus.ACKNOWLEDGED
        return True

    def mark_discarded(self, seq_num: int) -> bool:
        """
        Mark an unacknowledged segment discarded (awaiting resend).

        Returns:
            True if the segment changed status
        """
        segment = self._segments.get(seq_num)
        if segment is None or segment.is_acknowledged:
            return False
        segment.status = SegmentStatus.DISCARDED
        return True

    def in_flight(self) -> List[int]:
        """Sequence numbers currently in flight."""
        return sorted(s for s, seg in self._segments.items() if seg.is_in_flight)

    def statuses(self) -> Dict[int, str]:
        """Status value of every segment, by sequence number."""
        return {s: self._segments[s].status.value for s in sorted(self._segments)}

    def clear(self):
        self._segments.clear()

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[Segment]:
        for seq_num in sorted(self._segments):
            yield self._segments[seq_num]
