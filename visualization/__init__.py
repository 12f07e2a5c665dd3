"""
Visualization package - Plotting and visualization tools.

Contains:
- Session timeline (sequence diagram)
- GBN vs SR comparison charts
"""

from .timeline import TimelinePlot, ComparisonPlot

__all__ = [
    'TimelinePlot',
    'ComparisonPlot'
]
