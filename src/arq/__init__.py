"""
ARQ package - Go-Back-N and Selective Repeat protocol components.

Contains implementations for:
- Session context shared by the protocol components
- Segment bookkeeping
- Senders with window management and retransmission timers
- Receivers with in-order delivery and out-of-order buffering (SR)
- Suspendable timer management
"""

from .context import SessionContext
from .segment import Segment, SegmentStatus, SegmentTable
from .sender import SendWindow, ARQSender, GBNSender, SRSender
from .receiver import ReceiveWindow, ARQReceiver, GBNReceiver, SRReceiver
from .timer import TimerManager, RetransmitTimer, TimerState

__all__ = [
    'SessionContext',
    'Segment',
    'SegmentStatus',
    'SegmentTable',
    'SendWindow',
    'ARQSender',
    'GBNSender',
    'SRSender',
    'ReceiveWindow',
    'ARQReceiver',
    'GBNReceiver',
    'SRReceiver',
    'TimerManager',
    'RetransmitTimer',
    'TimerState'
]
