"""
Unit tests for the Go-Back-N ARQ protocol.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.arq.sender import GBNSender, SendWindow
from src.arq.receiver import GBNReceiver
from src.arq.segment import SegmentStatus


def fill_window(sender):
    """Tick until the window is full."""
    while sender.tick() is not None:
        pass


class TestSendWindow:
    """Tests for SendWindow class."""

    def test_initial_state(self):
        """Test window starts empty at sequence 1."""
        window = SendWindow(size=4)

        assert window.base == 1
        assert window.next_seq == 1
        assert window.available_slots == 4
        assert window.check_invariant()

    def test_invalid_size(self):
        """Test that a zero-size window is rejected."""
        with pytest.raises(ValueError):
            SendWindow(size=0)


class TestGBNSender:
    """Tests for GBNSender class."""

    def test_window_fills_then_blocks(self, session):
        """Test that ticks emit 1..W and then stop."""
        sender = GBNSender(session.context)

        fill_window(sender)

        assert session.packets == [1, 2, 3, 4]
        assert sender.window.is_full
        assert sender.tick() is None
        assert session.packets == [1, 2, 3, 4]

    def test_single_shared_timer(self, session):
        """Test that only the base starts the shared timer."""
        sender = GBNSender(session.context)

        fill_window(sender)

        assert sender.timer_manager.active_keys() == [GBNSender.SHARED_TIMER]
        assert sender.timer.seq_num == 1

    def test_cumulative_ack_slides_window(self, session):
        """Test that ACK 2 acknowledges 1 and 2 and re-arms for base 3."""
        sender = GBNSender(session.context)
        fill_window(sender)

        session.scheduler.run_until(1.0)
        assert sender.on_ack_arrive(2)

        assert sender.base == 3
        assert sender.segments.get(1).status == SegmentStatus.ACKNOWLEDGED
        assert sender.segments.get(2).status == SegmentStatus.ACKNOWLEDGED
        assert sender.segments.get(3).status == SegmentStatus.IN_FLIGHT
        assert sender.timer.seq_num == 3
        assert sender.timer.deadline == pytest.approx(13.0)

    def test_stale_ack_ignored(self, session):
        """Test that an ACK below the base changes nothing."""
        sender = GBNSender(session.context)
        fill_window(sender)
        sender.on_ack_arrive(2)

        assert not sender.on_ack_arrive(1)
        assert sender.base == 3
        assert sender.acks_ignored == 1

    def test_ack_equal_to_base_advances(self, session):
        """Test that an ACK for the base itself is a valid advance."""
        sender = GBNSender(session.context)
        fill_window(sender)
        sender.on_ack_arrive(2)

        assert sender.on_ack_arrive(3)
        assert sender.base == 4

    def test_final_ack_stops_timer(self, session):
        """Test that acknowledging everything stops the timer."""
        sender = GBNSender(session.context)
        fill_window(sender)

        sender.on_ack_arrive(4)

        assert sender.base == 5
        assert sender.timer is None
        session.scheduler.run_until(100.0)
        assert sender.timeouts == 0

    def test_timeout_rewinds_window(self, session):
        """Test go-back: timeout discards the window and resends it in order."""
        sender = GBNSender(session.context)
        fill_window(sender)

        session.scheduler.run_until(12.0)

        assert sender.timeouts == 1
        assert sender.next_seq == sender.base == 1
        assert all(sender.segments.get(s).status == SegmentStatus.DISCARDED for s in (1, 2, 3, 4))
        assert sender.check_invariant()

        fill_window(sender)
        assert session.packets == [1, 2, 3, 4, 1, 2, 3, 4]
        assert sender.retransmissions == 4
        assert sender.timer.seq_num == 1

    def test_timeout_with_nothing_outstanding_ignored(self, session):
        """Test that a stray timeout on an empty window is a no-op."""
        sender = GBNSender(session.context)
        fill_window(sender)
        sender.on_ack_arrive(4)

        sender.on_timeout(5)

        assert sender.timeouts == 0
        assert sender.next_seq == 5

    def test_late_ack_after_rewind_keeps_invariant(self, session):
        """Test that an ACK from an old copy covers rewound segments."""
        sender = GBNSender(session.context)
        fill_window(sender)
        session.scheduler.run_until(12.0)
        assert sender.next_seq == 1

        sender.on_ack_arrive(4)

        assert sender.base == 5
        assert sender.next_seq == 5
        assert sender.timer is None
        assert sender.check_invariant()

    def test_pause_freezes_timer(self, session):
        """Test that no timeout fires while the sender is paused."""
        sender = GBNSender(session.context)
        fill_window(sender)

        session.scheduler.run_until(10.0)
        sender.pause()
        session.scheduler.run_until(60.0)
        assert sender.timeouts == 0

        sender.resume()
        session.scheduler.run_until(61.9)
        assert sender.timeouts == 0
        session.scheduler.run_until(62.0)
        assert sender.timeouts == 1

    def test_reset(self, session):
        """Test reset returns the sender to its initial state."""
        sender = GBNSender(session.context)
        fill_window(sender)

        sender.reset()

        assert sender.base == 1
        assert sender.next_seq == 1
        assert len(sender.segments) == 0
        assert sender.timer is None
        assert session.scheduler.pending_count() == 0


class TestGBNReceiver:
    """Tests for GBNReceiver class."""

    def test_in_order_delivery(self, session):
        """Test that the expected packet is ACKed and delivered."""
        receiver = GBNReceiver(session.context)

        assert receiver.on_packet_arrive(1) == 1
        assert receiver.on_packet_arrive(2) == 2

        assert receiver.delivered == [1, 2]
        assert receiver.rcv_base == 3
        assert session.acks == [1, 2]

    def test_out_of_order_discarded_without_ack(self, session):
        """Test that an unexpected packet is dropped silently."""
        receiver = GBNReceiver(session.context)
        receiver.on_packet_arrive(1)

        assert receiver.on_packet_arrive(3) is None

        assert receiver.delivered == [1]
        assert receiver.rcv_base == 2
        assert session.acks == [1]
        assert receiver.discarded_packets == 1

    def test_duplicate_not_acked_by_default(self, session):
        """Test that a duplicate below the window gets no ACK."""
        receiver = GBNReceiver(session.context)
        receiver.on_packet_arrive(1)

        assert receiver.on_packet_arrive(1) is None
        assert receiver.duplicate_packets == 1
        assert session.acks == [1]

    def test_duplicate_reacked_when_enabled(self, session):
        """Test the optional re-ACK of the last delivered segment."""
        receiver = GBNReceiver(session.context, reack_duplicates=True)
        receiver.on_packet_arrive(1)
        receiver.on_packet_arrive(2)

        assert receiver.on_packet_arrive(1) == 2
        assert session.acks == [1, 2, 2]


class TestGoBackNExchange:
    """Sender and receiver driven together without a channel."""

    def test_lost_packet_recovered_by_rewind(self, session):
        """Test packet 2 lost: 1 delivered, 3 discarded, timeout resends 2, 3, 4."""
        sender = GBNSender(session.context)
        receiver = GBNReceiver(session.context)
        fill_window(sender)

        # Packet 2 never arrives
        receiver.on_packet_arrive(1)
        receiver.on_packet_arrive(3)
        receiver.on_packet_arrive(4)
        assert session.acks == [1]
        assert receiver.delivered == [1]

        sender.on_ack_arrive(1)
        assert sender.base == 2
        assert sender.timer.seq_num == 2

        session.scheduler.run_until(12.0)
        assert sender.timeouts == 1
        assert sender.next_seq == 2

        fill_window(sender)
        assert session.packets[4:] == [2, 3, 4, 5]

        for seq in session.packets[4:]:
            receiver.on_packet_arrive(seq)
        assert receiver.delivered == [1, 2, 3, 4, 5]

        sender.on_ack_arrive(5)
        assert sender.base == 6
        assert sender.check_invariant()
