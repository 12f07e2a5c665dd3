"""
Loss-Injection Operators

Automated stand-ins for the human operator. They watch the channel and,
shortly after a chosen unit is emitted, do what a person would do:
pause the session, select the unit, delete it and resume.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import sys
import os

import numpy as np

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import OPERATOR_DROP_FRACTION
from src.channel.channel import Direction, InFlightUnit
from src.utils.clock import EventType
from simulation.simulator import Simulator


@dataclass(frozen=True)
class LossRule:
    """
    Drop one specific transmission.

    Attributes:
        direction: Packet (forward) or ACK (reverse)
        seq_num: Sequence number carried by the unit
        occurrence: Which emission of that number to drop (1 = first)
    """
    direction: Direction
    seq_num: int
    occurrence: int = 1

    @classmethod
    def parse(cls, text: str) -> "LossRule":
        """
        Parse ``packet:2``, ``ack:3`` or ``packet:2@2`` (second emission).

        Raises:
            ValueError: On malformed rules
        """
        try:
            kind, _, rest = text.strip().lower().partition(':')
            number, _, occurrence = rest.partition('@')
            direction = Direction(kind)
            seq_num = int(number)
            count = int(occurrence) if occurrence else 1
        except ValueError:
            raise ValueError(
                f"Invalid loss rule {text!r} (expected packet:N, ack:N or packet:N@K)"
            ) from None

        if seq_num < 1 or count < 1:
            raise ValueError(f"Invalid loss rule {text!r} (numbers start at 1)")
        return cls(direction, seq_num, count)

    def __str__(self) -> str:
        suffix = f"@{self.occurrence}" if self.occurrence != 1 else ""
        return f"{self.direction.value}:{self.seq_num}{suffix}"


class LossOperator:
    """
    Base operator: schedules a pause / select / delete / resume sequence
    for units chosen by ``_should_drop``.

    Attributes:
        simulator: Session being perturbed
        drop_fraction: When to act, as a fraction of the unit's transit
        dropped: Units this operator deleted
    """

    def __init__(self, simulator: Simulator, drop_fraction: float = OPERATOR_DROP_FRACTION):
        if not 0.0 <= drop_fraction < 1.0:
            raise ValueError("drop_fraction must be in [0, 1)")

        self.simulator = simulator
        self.drop_fraction = drop_fraction
        self.dropped: List[InFlightUnit] = []
        self.attached = False

    def attach(self):
        """Start watching the channel."""
        if not self.attached:
            self.simulator.channel.add_emit_listener(self._on_emit)
            self.attached = True

    def detach(self):
        """Stop watching the channel."""
        if self.attached:
            self.simulator.channel.remove_emit_listener(self._on_emit)
            self.attached = False

    def _should_drop(self, unit: InFlightUnit) -> bool:
        raise NotImplementedError

    def _on_emit(self, unit: InFlightUnit):
        if not self._should_drop(unit):
            return
        self.simulator.scheduler.schedule(
            unit.transit_duration * self.drop_fraction,
            EventType.OPERATOR,
            self._drop,
            unit_id=unit.unit_id
        )

    def _drop(self, unit_id: int):
        sim = self.simulator
        unit = sim.channel.get_unit(unit_id)
        if unit is None or unit.lost or not sim.running:
            return

        was_paused = sim.paused
        if not was_paused:
            sim.pause()

        if sim.select_unit(unit_id) and sim.delete_selected():
            self.dropped.append(unit)

        if not was_paused:
            sim.resume()

    def get_statistics(self) -> dict:
        return {
            'dropped_packets': sum(1 for u in self.dropped if u.is_packet),
            'dropped_acks': sum(1 for u in self.dropped if not u.is_packet)
        }


class ScriptedLossOperator(LossOperator):
    """
    Drops the transmissions named by a list of loss rules.
    """

    def __init__(
        self,
        simulator: Simulator,
        rules: Sequence[LossRule],
        drop_fraction: float = OPERATOR_DROP_FRACTION
    ):
        super().__init__(simulator, drop_fraction)
        self.rules = list(rules)
        self._emissions: Dict[Tuple[Direction, int], int] = {}

    def _should_drop(self, unit: InFlightUnit) -> bool:
        key = (unit.direction, unit.seq_num)
        count = self._emissions.get(key, 0) + 1
        self._emissions[key] = count
        return any(
            rule.direction == unit.direction and
            rule.seq_num == unit.seq_num and
            rule.occurrence == count
            for rule in self.rules
        )

    def pending_rules(self) -> List[LossRule]:
        """Rules whose transmission has not been emitted yet."""
        return [
            rule for rule in self.rules
            if self._emissions.get((rule.direction, rule.seq_num), 0) < rule.occurrence
        ]


class RandomLossOperator(LossOperator):
    """
    Drops each unit independently with a fixed probability.

    Attributes:
        probability: Per-unit loss probability
        rng: Seeded numpy generator
    """

    def __init__(
        self,
        simulator: Simulator,
        probability: float,
        seed: Optional[int] = None,
        directions: Sequence[Direction] = (Direction.FORWARD, Direction.REVERSE),
        drop_fraction: float = OPERATOR_DROP_FRACTION
    ):
        if not 0.0 <= probability <= 1.0:
            raise ValueError("Loss probability must be in [0, 1]")

        super().__init__(simulator, drop_fraction)
        self.probability = probability
        self.directions = tuple(directions)
        self.rng = np.random.default_rng(seed)

    def _should_drop(self, unit: InFlightUnit) -> bool:
        if unit.direction not in self.directions:
            return False
        return bool(self.rng.random() < self.probability)

    def reset(self, seed: Optional[int] = None):
        """Reseed the generator."""
        self.rng = np.random.default_rng(seed)
        self.dropped.clear()
