"""
Utilities package - Helper functions and classes.

Contains implementations for:
- Event queue / simulation clock
- Metrics calculation and channel trace
- Logging utilities
"""

from .clock import EventScheduler, EventType, ScheduledEvent
from .metrics import MetricsCollector, UnitRecord
from .logger import SimulationLogger, LogLevel

__all__ = [
    'EventScheduler',
    'EventType',
    'ScheduledEvent',
    'MetricsCollector',
    'UnitRecord',
    'SimulationLogger',
    'LogLevel'
]
