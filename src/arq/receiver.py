"""
Sliding-Window ARQ Receiver

This module implements the receiver side of Go-Back-N and Selective
Repeat: in-order delivery, out-of-order buffering (SR only) and ACK
generation.
"""

from typing import Optional, List, Set
from dataclasses import dataclass

from .context import SessionContext
from src.utils.logger import CATEGORY_RECEIVER


@dataclass
class ReceiveWindow:
    """
    Sliding window for the receiver.

    Attributes:
        base: Next expected in-order sequence number (rcv_base)
        size: Window size
    """
    base: int = 1
    size: int = 4

    def __post_init__(self):
        if self.size < 1:
            raise ValueError("Window size must be at least 1")

    def in_window(self, seq_num: int) -> bool:
        """Check if sequence number is within the receive window."""
        return self.base <= seq_num < self.base + self.size

    def is_before_window(self, seq_num: int) -> bool:
        """Check if sequence number is before (already delivered)."""
        return seq_num < self.base


class ARQReceiver:
    """
    Common receiver behaviour.

    Delivered sequence numbers are always the gapless prefix
    ``1 .. rcv_base - 1``, in increasing order.

    Attributes:
        context: Session the receiver belongs to
        window: Receive window state
        delivered: Sequence numbers handed to the consumer, in order
    """

    algorithm = "ARQ"

    def __init__(self, context: SessionContext):
        """
        Initialize receiver.

        Args:
            context: Session context (clock, log, metrics, channel hooks)
        """
        self.context = context
        self.window = ReceiveWindow(size=context.window_size)
        self.delivered: List[int] = []

        # Statistics
        self.packets_received = 0
        self.duplicate_packets = 0
        self.discarded_packets = 0
        self.acks_sent = 0

    @property
    def logger(self):
        return self.context.logger

    @property
    def rcv_base(self) -> int:
        return self.window.base

    def on_packet_arrive(self, seq_num: int) -> Optional[int]:
        """
        Process an arriving packet.

        Returns:
            ACK number sent, or None if no ACK was sent
        """
        raise NotImplementedError

    def _deliver(self, seq_num: int, buffered: bool = False):
        """Hand the next in-order segment to the consumer."""
        self.delivered.append(seq_num)
        self.window.base = seq_num + 1

        self.context.metrics.record_delivery()
        self.logger.delivered(self.algorithm, seq_num, buffered)

        if self.context.deliver:
            self.context.deliver(seq_num)

    def _send_ack(self, ack_num: int) -> int:
        """Put an ACK on the channel."""
        self.acks_sent += 1
        self.context.metrics.record_ack_sent()
        self.logger.ack_sent(self.algorithm, ack_num)

        if self.context.send_ack:
            self.context.send_ack(ack_num)
        return ack_num

    def _discard(self, seq_num: int, reason: str):
        self.discarded_packets += 1
        self.context.metrics.record_discard()
        self.logger.discarded(self.algorithm, seq_num, reason)

    def get_window_state(self) -> dict:
        """Get current window state."""
        return {
            'rcv_base': self.window.base,
            'size': self.window.size,
            'buffered': [],
            'delivered_count': len(self.delivered)
        }

    def get_statistics(self) -> dict:
        """Get receiver statistics."""
        return {
            'packets_received': self.packets_received,
            'duplicate_packets': self.duplicate_packets,
            'discarded_packets': self.discarded_packets,
            'acks_sent': self.acks_sent,
            'delivered': len(self.delivered)
        }

    def reset(self):
        """Reset receiver to initial state."""
        self.window = ReceiveWindow(size=self.context.window_size)
        self.delivered = []

        self.packets_received = 0
        self.duplicate_packets = 0
        self.discarded_packets = 0
        self.acks_sent = 0


class GBNReceiver(ARQReceiver):
    """
    Go-Back-N Receiver.

    Accepts only the expected packet and never buffers. Everything else
    is discarded without an ACK, unless ``reack_duplicates`` is set, in
    which case a packet below the window re-acknowledges ``rcv_base - 1``.
    """

    algorithm = "GBN"

    def __init__(self, context: SessionContext, reack_duplicates: bool = False):
        super().__init__(context)
        self.reack_duplicates = reack_duplicates

    def on_packet_arrive(self, seq_num: int) -> Optional[int]:
        self.packets_received += 1

        if seq_num == self.window.base:
            self.logger.info(
                f"RECEIVER ({self.algorithm}): Received Packet {seq_num}. Sending ACK {seq_num}.",
                CATEGORY_RECEIVER
            )
            ack = self._send_ack(seq_num)
            self._deliver(seq_num)
            return ack

        if self.window.is_before_window(seq_num):
            self.duplicate_packets += 1
            self.context.metrics.record_duplicate()
            self._discard(seq_num, f"Expected {self.window.base}")
            if self.reack_duplicates:
                return self._send_ack(self.window.base - 1)
            return None

        self._discard(seq_num, f"Expected {self.window.base}")
        return None


class SRReceiver(ARQReceiver):
    """
    Selective Repeat Receiver.

    Acknowledges every packet inside its window individually, buffers
    out-of-order arrivals and re-acknowledges duplicates below the
    window so the sender can clear them.

    Attributes:
        reorder_buffer: Sequence numbers above rcv_base held for delivery
    """

    algorithm = "SR"

    def __init__(self, context: SessionContext):
        super().__init__(context)
        self.reorder_buffer: Set[int] = set()
        self.out_of_order_packets = 0

    def on_packet_arrive(self, seq_num: int) -> Optional[int]:
        self.packets_received += 1

        # Duplicate of an already delivered segment
        if self.window.is_before_window(seq_num):
            self.duplicate_packets += 1
            self.context.metrics.record_duplicate()
            self.logger.duplicate(self.algorithm, seq_num)
            return self._send_ack(seq_num)

        if not self.window.in_window(seq_num):
            self._discard(seq_num, "Outside window")
            return None

        self.logger.info(
            f"RECEIVER ({self.algorithm}): Received Packet {seq_num}. Sending ACK {seq_num}.",
            CATEGORY_RECEIVER
        )
        ack = self._send_ack(seq_num)

        if seq_num == self.window.base:
            self._deliver(seq_num)
            self._deliver_buffered()
        elif seq_num in self.reorder_buffer:
            self.duplicate_packets += 1
            self.context.metrics.record_duplicate()
            self.logger.duplicate(self.algorithm, seq_num)
        else:
            self.reorder_buffer.add(seq_num)
            self.out_of_order_packets += 1
            self.context.metrics.record_buffered()
            self.logger.buffered(self.algorithm, seq_num)

        return ack

    def _deliver_buffered(self):
        """Deliver buffered packets that are now in order."""
        while self.window.base in self.reorder_buffer:
            seq_num = self.window.base
            self.reorder_buffer.discard(seq_num)
            self._deliver(seq_num, buffered=True)

    def get_window_state(self) -> dict:
        state = super().get_window_state()
        state['buffered'] = sorted(self.reorder_buffer)
        return state

    def get_statistics(self) -> dict:
        stats = super().get_statistics()
        stats['out_of_order_packets'] = self.out_of_order_packets
        stats['buffered'] = len(self.reorder_buffer)
        return stats

    def reset(self):
        super().reset()
        self.reorder_buffer.clear()
        self.out_of_order_packets = 0
