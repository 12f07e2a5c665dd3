"""
Retransmission Timer Management for Sliding-Window ARQ

This module provides suspendable countdown timers. The same component
backs Go-Back-N's single shared timer and Selective Repeat's per-segment
timers. Timers can be frozen while the simulation is paused and resumed
with their remaining time preserved.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable
from enum import Enum

from src.utils.clock import EventScheduler, EventType, ScheduledEvent


class TimerState(Enum):
    """Timer state enumeration."""
    STOPPED = 0
    RUNNING = 1
    PAUSED = 2
    EXPIRED = 3


@dataclass
class RetransmitTimer:
    """
    Suspendable countdown timer.

    Attributes:
        key: Identity of the timer inside its manager
        seq_num: Sequence number the timer currently guards
        timeout: Full countdown duration in seconds
        deadline: Absolute expiry time while running
        remaining: Time left when last started or frozen
        state: Current timer state
        restart_count: Number of times the timer was re-armed
    """
    key: int
    seq_num: int
    timeout: float
    deadline: float = 0.0
    remaining: float = 0.0
    state: TimerState = TimerState.STOPPED
    restart_count: int = 0
    event: Optional[ScheduledEvent] = field(default=None, repr=False, compare=False)

    def start(self, current_time: float):
        """
        Arm the timer for a full timeout.

        Args:
            current_time: Current simulation time
        """
        if self.state != TimerState.STOPPED:
            self.restart_count += 1
        self.deadline = current_time + self.timeout
        self.remaining = self.timeout
        self.state = TimerState.RUNNING

    def pause(self, current_time: float):
        """
        Freeze the countdown.

        The remaining time may be zero or negative when the deadline was
        reached but its expiry event had not run yet.
        """
        if self.state != TimerState.RUNNING:
            return
        self.remaining = self.deadline - current_time
        self.state = TimerState.PAUSED

    def resume(self, current_time: float):
        """Continue the countdown from the frozen remaining time."""
        if self.state != TimerState.PAUSED:
            return
        self.deadline = current_time + max(0.0, self.remaining)
        self.state = TimerState.RUNNING

    def stop(self):
        """Stop the timer."""
        self.state = TimerState.STOPPED

    def get_remaining_time(self, current_time: float) -> float:
        """
        Get remaining time until expiration.

        Returns:
            Remaining time in seconds (0 if expired or stopped)
        """
        if self.state == TimerState.PAUSED:
            return max(0.0, self.remaining)
        if self.state != TimerState.RUNNING:
            return 0.0
        return max(0.0, self.deadline - current_time)

    @property
    def is_active(self) -> bool:
        """Running or frozen."""
        return self.state in (TimerState.RUNNING, TimerState.PAUSED)


class TimerManager:
    """
    Manages keyed retransmission timers on top of the event scheduler.

    Each running timer has exactly one live TIMEOUT event in the queue.
    Pausing cancels those events; resuming schedules fresh ones from the
    preserved remaining time, so an already elapsed timer fires at the
    resume instant.

    Attributes:
        scheduler: Event queue the expiries are scheduled on
        default_timeout: Countdown used when none is given
        timers: Active timers by key
        paused: Whether the manager is frozen
    """

    def __init__(
        self,
        scheduler: EventScheduler,
        default_timeout: float,
        on_timeout: Optional[Callable[[int], None]] = None
    ):
        """
        Initialize timer manager.

        Args:
            scheduler: Simulation event queue
            default_timeout: Default timeout duration in seconds
            on_timeout: Callback when a timer expires (receives seq_num)
        """
        self.scheduler = scheduler
        self.default_timeout = default_timeout
        self.on_timeout = on_timeout

        self.timers: Dict[int, RetransmitTimer] = {}
        self.paused = False

        # Statistics
        self.total_timeouts = 0
        self.total_timers_started = 0

    def start_timer(
        self,
        key: int,
        seq_num: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> RetransmitTimer:
        """
        Start (or restart) a timer.

        Args:
            key: Timer identity
            seq_num: Sequence number guarded (defaults to key)
            timeout: Custom timeout (uses default if None)

        Returns:
            The armed timer
        """
        timeout = timeout or self.default_timeout
        seq_num = key if seq_num is None else seq_num

        timer = self.timers.get(key)
        if timer is None:
            timer = RetransmitTimer(key=key, seq_num=seq_num, timeout=timeout)
            self.timers[key] = timer
        else:
            self.scheduler.cancel(timer.event)
            timer.event = None
            timer.seq_num = seq_num
            timer.timeout = timeout

        timer.start(self.scheduler.now)
        self.total_timers_started += 1

        if self.paused:
            timer.pause(self.scheduler.now)
        else:
            self._schedule(timer)

        return timer

    def _schedule(self, timer: RetransmitTimer):
        delay = max(0.0, timer.deadline - self.scheduler.now)
        timer.event = self.scheduler.schedule(
            delay, EventType.TIMEOUT, self._expire, key=timer.key
        )

    def _expire(self, key: int):
        timer = self.timers.get(key)
        if timer is None or timer.state != TimerState.RUNNING:
            return

        timer.state = TimerState.EXPIRED
        timer.event = None
        del self.timers[key]
        self.total_timeouts += 1

        if self.on_timeout:
            self.on_timeout(timer.seq_num)

    def cancel_timer(self, key: int) -> bool:
        """
        Cancel and remove a timer.

        Returns:
            True if a timer was active under this key
        """
        timer = self.timers.pop(key, None)
        if timer is None:
            return False
        self.scheduler.cancel(timer.event)
        timer.event = None
        timer.stop()
        return True

    def get_timer(self, key: int) -> Optional[RetransmitTimer]:
        """Get the active timer under a key, or None."""
        return self.timers.get(key)

    def has_timer(self, key: int) -> bool:
        return key in self.timers

    def pause_all(self):
        """Freeze every timer, preserving remaining time."""
        if self.paused:
            return
        self.paused = True
        now = self.scheduler.now
        for timer in self.timers.values():
            self.scheduler.cancel(timer.event)
            timer.event = None
            timer.pause(now)

    def resume_all(self):
        """Resume every frozen timer; elapsed ones fire immediately."""
        if not self.paused:
            return
        self.paused = False
        now = self.scheduler.now
        for key in sorted(self.timers):
            timer = self.timers[key]
            timer.resume(now)
            self._schedule(timer)

    def clear_all(self):
        """Cancel and remove every timer."""
        for timer in self.timers.values():
            self.scheduler.cancel(timer.event)
            timer.event = None
            timer.stop()
        self.timers.clear()
        self.paused = False

    def active_keys(self) -> List[int]:
        """Keys of active timers in ascending order."""
        return sorted(self.timers)

    def get_active_count(self) -> int:
        """Get number of active timers."""
        return sum(1 for t in self.timers.values() if t.is_active)

    def get_statistics(self) -> dict:
        """Get timer statistics."""
        return {
            'total_timers_started': self.total_timers_started,
            'total_timeouts': self.total_timeouts,
            'active_timers': self.get_active_count()
        }

    def update_timeout(self, new_timeout: float):
        """
        Update the default timeout value.

        Running timers keep their current deadline.
        """
        self.default_timeout = new_timeout
