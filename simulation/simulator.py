"""
Simulation Driver - Interactive GBN / SR Session

This module implements the driver that owns the session context, ticks
the sender at a fixed cadence, wires sender, channel and receiver
together and exposes the operator's control surface (start, pause,
resume, reset, select, delete-selected).
"""

from typing import Optional, Dict, List, Tuple, Type
from dataclasses import dataclass, replace
import time
import sys
import os

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import (
    ALGORITHMS, ALGORITHM_GBN, ALGORITHM_SR, DEFAULT_ALGORITHM,
    DEFAULT_WINDOW_SIZE, DEFAULT_TRANSIT_DURATION, TICK_INTERVAL,
    TIMEOUT_MARGIN, calculate_timeout
)
from src.arq.context import SessionContext
from src.arq.sender import ARQSender, GBNSender, SRSender
from src.arq.receiver import ARQReceiver, GBNReceiver, SRReceiver
from src.channel.channel import Channel, InFlightUnit
from src.utils.clock import EventScheduler, EventType, ScheduledEvent
from src.utils.metrics import MetricsCollector
from src.utils.logger import SimulationLogger, LogLevel, CATEGORY_NETWORK


class ConfigurationError(ValueError):
    """Rejected configuration; simulation state was left untouched."""


# Sender / receiver classes per algorithm key
PROTOCOLS: Dict[str, Tuple[Type[ARQSender], Type[ARQReceiver]]] = {
    ALGORITHM_GBN: (GBNSender, GBNReceiver),
    ALGORITHM_SR: (SRSender, SRReceiver),
}


@dataclass
class SimulatorConfig:
    """Configuration for the simulator."""
    # Protocol
    algorithm: str = DEFAULT_ALGORITHM
    window_size: int = DEFAULT_WINDOW_SIZE

    # Timing
    transit_duration: float = DEFAULT_TRANSIT_DURATION
    tick_interval: float = TICK_INTERVAL
    timeout_margin: float = TIMEOUT_MARGIN

    # Protocol options
    gbn_reack_duplicates: bool = False

    # Logging
    log_level: int = LogLevel.WARNING
    log_file: Optional[str] = None

    def validate(self):
        """
        Check every field.

        Raises:
            ConfigurationError: On the first invalid field
        """
        if not isinstance(self.algorithm, str) or self.algorithm.lower() not in ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported algorithm {self.algorithm!r} (expected one of {', '.join(ALGORITHMS)})"
            )
        if isinstance(self.window_size, bool) or not isinstance(self.window_size, int):
            raise ConfigurationError(f"Window size must be an integer, got {self.window_size!r}")
        if self.window_size < 1:
            raise ConfigurationError(f"Window size must be at least 1, got {self.window_size}")
        if self.transit_duration <= 0:
            raise ConfigurationError("Transit duration must be positive")
        if self.tick_interval <= 0:
            raise ConfigurationError("Tick interval must be positive")
        if self.timeout_margin < 0:
            raise ConfigurationError("Timeout margin cannot be negative")

    @property
    def algorithm_key(self) -> str:
        return self.algorithm.lower()

    def get_timeout(self) -> float:
        """Calculate timeout value."""
        return calculate_timeout(self.transit_duration, self.timeout_margin)


class Simulator:
    """
    Simulation driver.

    Owns the event queue, the session context, the channel and the
    current sender/receiver pair. Every state change happens inside one
    scheduler callback or one control-surface call at a time.
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        scheduler: Optional[EventScheduler] = None,
        logger: Optional[SimulationLogger] = None
    ):
        """Initialize simulator."""
        self.config = config or SimulatorConfig()
        self.config.validate()

        self.scheduler = scheduler or EventScheduler()

        # Create logger
        self.logger = logger or SimulationLogger(
            name=self.config.algorithm_key.upper(),
            level=self.config.log_level,
            log_file=self.config.log_file,
            time_source=lambda: self.scheduler.now
        )

        self.metrics = MetricsCollector()

        self.context = SessionContext(
            scheduler=self.scheduler,
            logger=self.logger,
            metrics=self.metrics,
            window_size=self.config.window_size,
            transit_duration=self.config.transit_duration,
            timeout_margin=self.config.timeout_margin
        )

        self.channel = Channel(
            self.context,
            on_packet_arrive=self._on_packet_arrive,
            on_ack_arrive=self._on_ack_arrive
        )
        self.context.send_packet = self.channel.emit_packet
        self.context.send_ack = self.channel.emit_ack
        self.context.deliver = self._on_deliver

        # Consumer side of the receiver
        self.delivered: List[int] = []

        self.selected_unit_id: Optional[int] = None
        self._tick_event: Optional[ScheduledEvent] = None
        # Time left until the next tick, held across a pause
        self._tick_remaining: Optional[float] = None

        self._build_protocol()

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _build_protocol(self):
        sender_cls, receiver_cls = PROTOCOLS[self.config.algorithm_key]
        self.sender: ARQSender = sender_cls(self.context)
        self.receiver: ARQReceiver = receiver_cls(self.context)
        if isinstance(self.receiver, GBNReceiver):
            self.receiver.reack_duplicates = self.config.gbn_reack_duplicates

    def _on_packet_arrive(self, seq_num: int):
        self.receiver.on_packet_arrive(seq_num)

    def _on_ack_arrive(self, ack_num: int):
        self.sender.on_ack_arrive(ack_num)

    def _on_deliver(self, seq_num: int):
        self.delivered.append(seq_num)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.context.running

    @property
    def paused(self) -> bool:
        return self.context.paused

    @property
    def algorithm(self) -> str:
        return self.config.algorithm_key

    @property
    def now(self) -> float:
        return self.scheduler.now

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    def _schedule_tick(self, delay: Optional[float] = None):
        if delay is None:
            delay = self.config.tick_interval
        self._tick_event = self.scheduler.schedule(
            max(0.0, delay), EventType.TICK, self._on_tick
        )

    def _cancel_tick(self):
        self.scheduler.cancel(self._tick_event)
        self._tick_event = None

    def _on_tick(self):
        self._tick_event = None
        if not self.running or self.paused:
            return
        self.sender.tick()
        self._schedule_tick()

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """
        Begin ticking from the current state.

        Returns:
            False if already running
        """
        if self.running:
            return False

        self.context.running = True
        self.context.paused = False
        self.metrics.start(self.now)
        self.logger.simulation_event(f"Simulation Started ({self.algorithm.upper()})")
        self._schedule_tick()
        return True

    def pause(self) -> bool:
        """
        Freeze ticks and timers. In-flight units may now be deleted.

        Returns:
            False if not running or already paused
        """
        if not self.running or self.paused:
            self.logger.warning("Pause ignored: not running or already paused", CATEGORY_NETWORK)
            return False

        self.context.paused = True
        if self._tick_event is not None:
            self._tick_remaining = self._tick_event.time - self.now
        self._cancel_tick()
        self.sender.pause()
        self.logger.simulation_event("Simulation Paused. Select a packet/ACK to delete it.")
        return True

    def resume(self) -> bool:
        """
        Restore ticks and timers.

        Returns:
            False if not running or not paused
        """
        if not self.running or not self.paused:
            self.logger.warning("Resume ignored: not paused", CATEGORY_NETWORK)
            return False

        self.context.paused = False
        self.selected_unit_id = None
        self.logger.simulation_event("Simulation Resumed")
        self.sender.resume()
        self._schedule_tick(self._tick_remaining)
        self._tick_remaining = None
        return True

    def toggle_pause(self) -> bool:
        """Pause if running, resume if paused."""
        if self.paused:
            return self.resume()
        return self.pause()

    def reset(self):
        """Return every component to its initial state and stop."""
        self._cancel_tick()
        self._tick_remaining = None
        self.sender.reset()
        self.receiver.reset()
        self.channel.clear()

        self.context.running = False
        self.context.paused = False
        self.selected_unit_id = None
        self.delivered = []
        self.metrics.reset()

        self.logger.simulation_event("Simulation Reset.")

    def select_unit(self, unit_id: int) -> bool:
        """
        Select an in-flight unit (only while paused).

        Returns:
            True if the unit is now selected
        """
        if not self.paused:
            self.logger.warning("Pause the simulation to select a packet/ACK", CATEGORY_NETWORK)
            return False
        unit = self.channel.get_unit(unit_id)
        if unit is None or unit.lost:
            self.logger.warning(f"Unit {unit_id} is not in flight", CATEGORY_NETWORK)
            return False
        self.selected_unit_id = unit_id
        return True

    def delete_selected(self) -> bool:
        """
        Mark the selected unit lost.

        Returns:
            True if a unit was marked lost
        """
        if not self.paused or self.selected_unit_id is None:
            return False
        unit_id = self.selected_unit_id
        self.selected_unit_id = None
        return self.channel.mark_lost(unit_id)

    def mark_lost(self, unit_id: int) -> bool:
        """Mark any in-flight unit lost (only while paused)."""
        if self.selected_unit_id == unit_id:
            self.selected_unit_id = None
        return self.channel.mark_lost(unit_id)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, **changes) -> SimulatorConfig:
        """
        Change algorithm and/or window size (only while stopped).

        The new configuration is validated as a whole before anything
        is applied. Switching algorithm implies a full reset. Transit
        duration and the GBN duplicate re-ACK flag may change while
        running; they are applied to the live sender/receiver pair.

        Raises:
            ConfigurationError: If running or a value is invalid
        """
        unknown = set(changes) - {'algorithm', 'window_size', 'transit_duration',
                                  'gbn_reack_duplicates'}
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if self.running and ({'algorithm', 'window_size'} & set(changes)):
            raise ConfigurationError("Algorithm and window size can only change while stopped")

        new_config = replace(self.config, **changes)
        new_config.validate()

        algorithm_changed = new_config.algorithm_key != self.config.algorithm_key
        rebuild = (algorithm_changed or
                   new_config.window_size != self.config.window_size)

        if algorithm_changed:
            self.reset()

        self.config = new_config
        self.context.window_size = new_config.window_size
        self.context.transit_duration = new_config.transit_duration

        if rebuild:
            self._build_protocol()
            self.logger.name = new_config.algorithm_key.upper()
            self.logger.simulation_event(
                f"Configured {self.algorithm.upper()}, window size {self.config.window_size}"
            )
        elif isinstance(self.receiver, GBNReceiver):
            # Live toggle; the running protocol pair is kept
            self.receiver.reack_duplicates = new_config.gbn_reack_duplicates
        return self.config

    def set_algorithm(self, algorithm: str) -> SimulatorConfig:
        return self.configure(algorithm=algorithm)

    def set_window_size(self, window_size: int) -> SimulatorConfig:
        return self.configure(window_size=window_size)

    def set_transit_duration(self, transit_duration: float) -> SimulatorConfig:
        """Change the per-unit transit time; applies to new units and timers."""
        return self.configure(transit_duration=transit_duration)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run_for(self, duration: float) -> int:
        """Advance virtual time by ``duration`` seconds."""
        return self.scheduler.run_for(duration)

    def run_until(self, end_time: float) -> int:
        """Advance virtual time to ``end_time``."""
        return self.scheduler.run_until(end_time)

    def run_realtime(self, duration: float, speed: float = 1.0) -> int:
        """
        Run the same event queue paced against the wall clock.

        Args:
            duration: Simulated seconds to run
            speed: Simulated seconds per wall-clock second
        """
        if speed <= 0:
            raise ValueError("Speed must be positive")

        end_time = self.now + duration
        wall_start = time.monotonic()
        sim_start = self.now
        processed = 0

        while True:
            next_time = self.scheduler.next_event_time()
            if next_time is None or next_time > end_time:
                break
            wall_target = wall_start + (next_time - sim_start) / speed
            delay = wall_target - time.monotonic()
            if delay > 0:
                time.sleep(delay)
            self.scheduler.step()
            processed += 1

        self.scheduler.run_until(end_time)
        return processed

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def in_flight_units(self) -> List[InFlightUnit]:
        return self.channel.units()

    def check_invariants(self) -> bool:
        """Window bounds hold and delivery is the gapless prefix."""
        expected = list(range(1, self.receiver.rcv_base))
        return self.sender.check_invariant() and self.delivered == expected

    def get_state(self) -> dict:
        """Snapshot of the session."""
        return {
            'time': self.now,
            'algorithm': self.algorithm,
            'running': self.running,
            'paused': self.paused,
            'sender': self.sender.get_window_state(),
            'receiver': self.receiver.get_window_state(),
            'in_flight': [(u.kind, u.seq_num) for u in self.channel.units()],
            'delivered': list(self.delivered),
            'selected': self.selected_unit_id
        }

    def get_results(self) -> Dict:
        """Summary of the session so far."""
        self.metrics.finish(self.now)
        return {
            'config': {
                'algorithm': self.algorithm,
                'window_size': self.config.window_size,
                'transit_duration': self.config.transit_duration,
                'timeout': self.config.get_timeout()
            },
            'metrics': self.metrics.get_summary(),
            'sender': self.sender.get_statistics(),
            'receiver': self.receiver.get_statistics(),
            'channel': self.channel.get_statistics(),
            'simulation_time': self.now,
            'delivered': len(self.delivered),
            'invariants_hold': self.check_invariants()
        }
