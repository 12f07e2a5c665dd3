"""
Sliding-Window ARQ Sender

This module implements the sender side of Go-Back-N and Selective
Repeat: window management, segment bookkeeping, retransmission timers
and ACK handling.
"""

from typing import Optional
from dataclasses import dataclass

from .context import SessionContext
from .segment import SegmentTable
from .timer import TimerManager
from src.utils.logger import CATEGORY_SENDER


@dataclass
class SendWindow:
    """
    Sliding window for the sender.

    Attributes:
        base: Base of the window (oldest unacknowledged segment)
        next_seq: Next sequence number to emit
        size: Window size
    """
    base: int = 1
    next_seq: int = 1
    size: int = 4

    def __post_init__(self):
        if self.size < 1:
            raise ValueError("Window size must be at least 1")

    @property
    def outstanding(self) -> int:
        """Number of emitted but unacknowledged slots."""
        return self.next_seq - self.base

    @property
    def available_slots(self) -> int:
        """Number of available slots in the window."""
        return self.size - self.outstanding

    @property
    def is_full(self) -> bool:
        """Check if window is full."""
        return self.available_slots <= 0

    def in_window(self, seq_num: int) -> bool:
        """Check if sequence number is within the window."""
        return self.base <= seq_num < self.base + self.size

    def check_invariant(self) -> bool:
        """base <= next_seq <= base + size"""
        return self.base <= self.next_seq <= self.base + self.size


class ARQSender:
    """
    Common sender behaviour.

    Subclasses decide how timers are armed and what ACKs and timeouts
    mean. All methods run inside a single scheduler callback and must
    not be re-entered.

    Attributes:
        context: Session the sender belongs to
        window: Send window state
        segments: Segments emitted so far
        timer_manager: Retransmission timers
    """

    algorithm = "ARQ"

    def __init__(self, context: SessionContext):
        """
        Initialize sender.

        Args:
            context: Session context (clock, log, metrics, channel hooks)
        """
        self.context = context
        self.window = SendWindow(size=context.window_size)
        self.segments = SegmentTable()
        self.timer_manager = TimerManager(
            context.scheduler,
            default_timeout=context.get_timeout(),
            on_timeout=self.on_timeout
        )

        # Statistics
        self.packets_sent = 0
        self.retransmissions = 0
        self.acks_received = 0
        self.acks_ignored = 0
        self.timeouts = 0

    @property
    def logger(self):
        return self.context.logger

    @property
    def base(self) -> int:
        return self.window.base

    @property
    def next_seq(self) -> int:
        return self.window.next_seq

    def tick(self) -> Optional[int]:
        """
        Emit the next eligible segment, if the window allows.

        Returns:
            Sequence number emitted, or None if the window is full
        """
        if self.window.is_full:
            return None

        seq_num = self.window.next_seq
        resend = self.segments.contains(seq_num)
        self._emit(seq_num, resend)
        self.window.next_seq += 1
        self._on_emitted(seq_num)
        return seq_num

    def _emit(self, seq_num: int, resend: bool):
        """Put a segment on the channel."""
        self.segments.record_send(seq_num, self.context.now)

        self.packets_sent += 1
        if resend:
            self.retransmissions += 1
        self.context.metrics.record_packet_sent(resend)
        self.logger.segment_sent(self.algorithm, seq_num, resend)

        if self.context.send_packet:
            self.context.send_packet(seq_num)

    def _start_timer(self, key: int, seq_num: int):
        timeout = self.context.get_timeout()
        self.timer_manager.start_timer(key, seq_num, timeout)
        self.logger.timer_started(self.algorithm, seq_num, timeout)

    def _record_ack(self, ack_num: int, ignored: bool = False):
        self.acks_received += 1
        if ignored:
            self.acks_ignored += 1
        self.context.metrics.record_ack_received(ignored)

    def _on_emitted(self, seq_num: int):
        raise NotImplementedError

    def on_ack_arrive(self, ack_num: int) -> bool:
        """
        Process an arriving ACK.

        Returns:
            True if the ACK changed sender state
        """
        raise NotImplementedError

    def on_timeout(self, seq_num: int):
        """Handle a retransmission timer expiry."""
        raise NotImplementedError

    def pause(self):
        """Freeze all timers, keeping their remaining time."""
        self.timer_manager.pause_all()

    def resume(self):
        """Resume all timers; timers that elapsed while frozen fire now."""
        self.timer_manager.resume_all()

    def check_invariant(self) -> bool:
        return self.window.check_invariant()

    def get_window_state(self) -> dict:
        """Get current window state."""
        return {
            'base': self.window.base,
            'next_seq': self.window.next_seq,
            'size': self.window.size,
            'available': self.window.available_slots,
            'segments': self.segments.statuses(),
            'timers': self.timer_manager.active_keys()
        }

    def get_statistics(self) -> dict:
        """Get sender statistics."""
        return {
            'packets_sent': self.packets_sent,
            'retransmissions': self.retransmissions,
            'acks_received': self.acks_received,
            'acks_ignored': self.acks_ignored,
            'timeouts': self.timeouts,
            **self.timer_manager.get_statistics()
        }

    def reset(self):
        """Reset sender to initial state."""
        self.timer_manager.clear_all()
        self.timer_manager.update_timeout(self.context.get_timeout())
        self.window = SendWindow(size=self.context.window_size)
        self.segments.clear()

        self.packets_sent = 0
        self.retransmissions = 0
        self.acks_received = 0
        self.acks_ignored = 0
        self.timeouts = 0


class GBNSender(ARQSender):
    """
    Go-Back-N Sender.

    One shared timer guards the window base. ACKs are cumulative and a
    timeout rewinds the whole unacknowledged window.
    """

    algorithm = "GBN"

    # Key of the single shared timer (sequence numbers start at 1)
    SHARED_TIMER = 0

    def _on_emitted(self, seq_num: int):
        if seq_num == self.window.base:
            self._start_timer(self.SHARED_TIMER, seq_num)

    @property
    def timer(self):
        """The shared timer, or None if cleared."""
        return self.timer_manager.get_timer(self.SHARED_TIMER)

    def on_ack_arrive(self, ack_num: int) -> bool:
        """
        Process a cumulative ACK.

        ``ack_num >= base`` acknowledges ``[base, ack_num]`` and slides the
        window past it; anything lower is a stale duplicate.
        """
        self.logger.ack_received(self.algorithm, ack_num)

        if ack_num < self.window.base:
            self._record_ack(ack_num, ignored=True)
            self.logger.ack_ignored(self.algorithm, ack_num, self.window.base)
            return False

        self._record_ack(ack_num)
        for seq_num in range(self.window.base, ack_num + 1):
            self.segments.mark_acknowledged(seq_num)
        self.window.base = ack_num + 1

        # A cumulative ACK can cover segments a timeout had rewound
        if self.window.next_seq < self.window.base:
            self.window.next_seq = self.window.base

        if self.window.base < self.window.next_seq:
            self._start_timer(self.SHARED_TIMER, self.window.base)
        else:
            self.timer_manager.cancel_timer(self.SHARED_TIMER)
            self.logger.info(
                f"SENDER ({self.algorithm}): All packets ACKed. Timer stopped.",
                CATEGORY_SENDER
            )

        self.logger.window_update(
            self.algorithm, self.window.base, self.window.next_seq, self.window.size
        )
        return True

    def on_timeout(self, seq_num: int):
        """
        Go back N: discard every segment in ``[base, next_seq)`` and
        rewind ``next_seq`` to the base. Later ticks resend them in order.
        """
        if self.window.outstanding <= 0:
            self.logger.debug(
                f"SENDER ({self.algorithm}): Timeout with nothing outstanding ignored",
                CATEGORY_SENDER
            )
            return

        self.timeouts += 1
        self.context.metrics.record_timeout()
        self.logger.timeout(self.algorithm, self.window.base)
        self.logger.info(
            f"SENDER ({self.algorithm}): Rewinding window to resend from {self.window.base}",
            CATEGORY_SENDER
        )

        for seq in range(self.window.base, self.window.next_seq):
            self.segments.mark_discarded(seq)
        self.window.next_seq = self.window.base
        self.timer_manager.cancel_timer(self.SHARED_TIMER)


class SRSender(ARQSender):
    """
    Selective Repeat Sender.

    Every in-flight segment has its own timer; ACKs are selective and a
    timeout resends only the segment that timed out.
    """

    algorithm = "SR"

    def _on_emitted(self, seq_num: int):
        self._start_timer(seq_num, seq_num)

    def on_ack_arrive(self, ack_num: int) -> bool:
        """
        Process a selective ACK.

        The segment is acknowledged and its timer cancelled wherever it
        sits; an ACK for the base slides the window over every
        contiguous acknowledged segment.
        """
        self.logger.ack_received(self.algorithm, ack_num)

        known = self.segments.mark_acknowledged(ack_num)
        self._record_ack(ack_num, ignored=not known)
        self.timer_manager.cancel_timer(ack_num)

        if ack_num == self.window.base:
            self.logger.info(
                f"SENDER ({self.algorithm}): Base packet {ack_num} ACKed. Sliding window...",
                CATEGORY_SENDER
            )
            while self.segments.is_acknowledged(self.window.base):
                self.window.base += 1
            self.logger.info(
                f"SENDER ({self.algorithm}): New window base is {self.window.base}",
                CATEGORY_SENDER
            )

        return known

    def on_timeout(self, seq_num: int):
        """Resend exactly the segment whose timer fired."""
        segment = self.segments.get(seq_num)
        if segment is None or not segment.is_in_flight:
            self.logger.debug(
                f"SENDER ({self.algorithm}): Timeout for cleared Packet {seq_num} ignored",
                CATEGORY_SENDER
            )
            return

        self.timeouts += 1
        self.context.metrics.record_timeout()
        self.logger.timeout(self.algorithm, seq_num)

        self._emit(seq_num, resend=True)
        self._start_timer(seq_num, seq_num)
