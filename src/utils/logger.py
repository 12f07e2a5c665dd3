"""
Simulation Logger

This module provides logging utilities for the simulation,
with configurable verbosity levels, event categories and an
in-memory event log.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, TextIO
from datetime import datetime
from enum import IntEnum
from collections import deque
import os

from config import DEFAULT_LOG_LEVEL, LOG_HISTORY_SIZE


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


# Event categories of the protocol log
CATEGORY_SENDER = "sender"
CATEGORY_RECEIVER = "receiver"
CATEGORY_NETWORK = "network"
CATEGORY_ERROR = "error"


@dataclass
class LogRecord:
    """Single entry of the event log."""
    time: Optional[float]
    level: LogLevel
    category: Optional[str]
    message: str


class SimulationLogger:
    """
    Logger for simulation events.

    Every record is kept in memory (bounded) regardless of level; only
    records at or above ``level`` are echoed to the console and file.

    Attributes:
        name: Logger name
        level: Minimum log level for output
        file: Optional file for logging
        records: Recent log records
    """

    # Color codes for terminal output
    COLORS = {
        LogLevel.DEBUG: '\033[36m',     # Cyan
        LogLevel.INFO: '\033[32m',      # Green
        LogLevel.WARNING: '\033[33m',   # Yellow
        LogLevel.ERROR: '\033[31m',     # Red
        LogLevel.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(
        self,
        name: str = "Simulator",
        level: int = DEFAULT_LOG_LEVEL,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        include_timestamp: bool = True,
        time_source: Optional[Callable[[], float]] = None,
        history_size: int = LOG_HISTORY_SIZE
    ):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Minimum log level
            log_file: Optional file path for logging
            use_colors: Use ANSI colors in output
            include_timestamp: Include timestamps in log messages
            time_source: Callable returning the current simulation time
            history_size: Number of records kept in memory
        """
        self.name = name
        self.level = level
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp
        self.time_source = time_source

        self.file: Optional[TextIO] = None
        if log_file:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            self.file = open(log_file, 'w')

        # Simulation time tracking
        self.sim_time: Optional[float] = None

        # Message counts
        self.message_counts = {level: 0 for level in LogLevel}

        self.records: deque = deque(maxlen=history_size)

    def set_sim_time(self, time: float):
        """Set current simulation time for log messages."""
        self.sim_time = time

    def set_level(self, level: int):
        """Set minimum log level."""
        self.level = level

    def _current_time(self) -> Optional[float]:
        if self.time_source is not None:
            return self.time_source()
        return self.sim_time

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None,
        time: Optional[float] = None
    ) -> str:
        """Format a log message."""
        parts = []

        # Timestamp
        if self.include_timestamp:
            if time is not None:
                parts.append(f"[{time:9.2f}s]")
            else:
                parts.append(f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}]")

        # Level
        level_str = level.name.ljust(8)
        if self.use_colors:
            level_str = f"{self.COLORS[level]}{level_str}{self.RESET}"
        parts.append(level_str)

        # Name
        parts.append(f"[{self.name}]")

        # Category
        if category:
            parts.append(f"[{category}]")

        # Message
        parts.append(message)

        return " ".join(parts)

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ):
        """Log a message."""
        time = self._current_time()
        self.records.append(LogRecord(time, level, category, message))
        self.message_counts[level] += 1

        if level < self.level:
            return

        formatted = self._format_message(level, message, category, time)

        print(formatted)

        if self.file:
            # Strip color codes for file
            clean = formatted
            for color in self.COLORS.values():
                clean = clean.replace(color, '')
            clean = clean.replace(self.RESET, '')
            self.file.write(clean + '\n')
            self.file.flush()

    def log(self, message: str, category: str = CATEGORY_NETWORK):
        """Log a named protocol event (error category logs as a warning)."""
        level = LogLevel.WARNING if category == CATEGORY_ERROR else LogLevel.INFO
        self._log(level, message, category)

    def debug(self, message: str, category: Optional[str] = None):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        """Log info message."""
        self._log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        """Log warning message."""
        self._log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        """Log error message."""
        self._log(LogLevel.ERROR, message, category)

    def critical(self, message: str, category: Optional[str] = None):
        """Log critical message."""
        self._log(LogLevel.CRITICAL, message, category)

    # Convenience methods for protocol events
    def segment_sent(self, algorithm: str, seq_num: int, resend: bool = False):
        """Log segment emission."""
        action = "Re-sending" if resend else "Sending"
        self.info(f"SENDER ({algorithm}): {action} Packet {seq_num}", CATEGORY_SENDER)

    def timer_started(self, algorithm: str, seq_num: int, timeout: float):
        """Log timer (re)start."""
        self.debug(
            f"SENDER ({algorithm}): Timer started for Packet {seq_num} ({timeout:.1f}s)",
            CATEGORY_SENDER
        )

    def timeout(self, algorithm: str, seq_num: int):
        """Log timeout event."""
        self.warning(f"SENDER ({algorithm}): Timeout for Packet {seq_num}!", CATEGORY_ERROR)

    def ack_received(self, algorithm: str, ack_num: int):
        """Log ACK received event."""
        self.info(f"SENDER ({algorithm}): Received ACK {ack_num}", CATEGORY_SENDER)

    def ack_ignored(self, algorithm: str, ack_num: int, base: int):
        """Log stale ACK."""
        self.info(
            f"SENDER ({algorithm}): Ignored duplicate ACK {ack_num} (base {base})",
            CATEGORY_SENDER
        )

    def window_update(self, algorithm: str, base: int, next_seq: int, size: int):
        """Log window update."""
        self.debug(
            f"SENDER ({algorithm}): Window base={base}, next={next_seq}, size={size}",
            CATEGORY_SENDER
        )

    def delivered(self, algorithm: str, seq_num: int, buffered: bool = False):
        """Log in-order delivery."""
        source = "buffered " if buffered else ""
        self.info(f"RECEIVER ({algorithm}): Delivered {source}Packet {seq_num}", CATEGORY_RECEIVER)

    def ack_sent(self, algorithm: str, ack_num: int):
        """Log ACK sent event."""
        self.debug(f"RECEIVER ({algorithm}): Sending ACK {ack_num}", CATEGORY_RECEIVER)

    def discarded(self, algorithm: str, seq_num: int, reason: str):
        """Log discarded packet."""
        self.info(f"RECEIVER ({algorithm}): Discarded Packet {seq_num} ({reason})", CATEGORY_RECEIVER)

    def buffered(self, algorithm: str, seq_num: int):
        """Log out-of-order packet buffered."""
        self.info(f"RECEIVER ({algorithm}): Buffering Packet {seq_num}", CATEGORY_RECEIVER)

    def duplicate(self, algorithm: str, seq_num: int):
        """Log duplicate packet."""
        self.info(f"RECEIVER ({algorithm}): Received duplicate Packet {seq_num}", CATEGORY_RECEIVER)

    def unit_lost(self, label: str):
        """Log operator loss marking."""
        self.warning(f"NETWORK: User deleted {label}!", CATEGORY_ERROR)

    def simulation_event(self, message: str):
        """Log a control-surface event (start, pause, reset...)."""
        self.info(message, CATEGORY_NETWORK)

    def get_records(self, category: Optional[str] = None) -> List[LogRecord]:
        """Get kept records, optionally only one category."""
        if category is None:
            return list(self.records)
        return [r for r in self.records if r.category == category]

    def get_summary(self) -> dict:
        """Get logging summary."""
        return {
            'message_counts': dict(self.message_counts),
            'total_messages': sum(self.message_counts.values())
        }

    def clear(self):
        """Forget kept records."""
        self.records.clear()

    def close(self):
        """Close log file if open."""
        if self.file:
            self.file.close()
            self.file = None

    def __del__(self):
        """Cleanup on deletion."""
        self.close()
