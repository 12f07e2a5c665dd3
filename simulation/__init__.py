"""
Simulation package - Session driver, loss operators and runners.

Contains:
- Interactive session driver
- Scripted and random loss operators
- Batch runner for GBN / SR comparison sweeps
"""

from .simulator import Simulator, SimulatorConfig, ConfigurationError
from .loss_operator import LossRule, ScriptedLossOperator, RandomLossOperator
from .runner import BatchRunner

__all__ = [
    'Simulator',
    'SimulatorConfig',
    'ConfigurationError',
    'LossRule',
    'ScriptedLossOperator',
    'RandomLossOperator',
    'BatchRunner'
]
