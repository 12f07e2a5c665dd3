"""
Channel package - Channel models.

Contains implementations for:
- Operator-perturbed channel with in-flight packets and ACKs
"""

from .channel import Channel, Direction, InFlightUnit, UnitOutcome

__all__ = [
    'Channel',
    'Direction',
    'InFlightUnit',
    'UnitOutcome'
]
