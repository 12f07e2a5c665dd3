"""
Tests for the timeline and comparison plots.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import matplotlib
matplotlib.use("Agg")

import pandas as pd

from simulation.simulator import Simulator, SimulatorConfig
from simulation.loss_operator import LossRule, ScriptedLossOperator
from src.utils.logger import LogLevel
from visualization.timeline import TimelinePlot, ComparisonPlot


@pytest.fixture
def lossy_session():
    sim = Simulator(SimulatorConfig(algorithm="sr", log_level=LogLevel.CRITICAL))
    ScriptedLossOperator(sim, [LossRule.parse("packet:2"), LossRule.parse("ack:3")]).attach()
    sim.start()
    sim.run_for(40.0)
    return sim


class TestTimelinePlot:
    """Tests for TimelinePlot class."""

    def test_plot_saved(self, lossy_session, tmp_path):
        """Test that a session with losses renders to PNG."""
        output = str(tmp_path / "timeline.png")

        path = TimelinePlot.from_simulator(lossy_session).plot(output_file=output)

        assert path == output
        assert os.path.getsize(output) > 0

    def test_lost_units_stop_midway(self, lossy_session):
        """Test that a lost packet is drawn only part of the way across."""
        plot = TimelinePlot.from_simulator(lossy_session)
        lost = plot.trace[plot.trace['outcome'] == 'lost']

        assert len(lost) == 2
        for _, row in lost.iterrows():
            start, end = plot._endpoints(row)
            assert 0.0 < abs(end - start) < 1.0

    def test_trace_csv_round_trip(self, lossy_session, tmp_path):
        """Test plotting from a saved trace file."""
        path = lossy_session.metrics.save_trace(str(tmp_path / "trace.csv"))

        plot = TimelinePlot.from_csv(path)

        assert len(plot.trace) == len(lossy_session.metrics.unit_records)

    def test_empty_trace_rejected(self):
        """Test that an empty trace cannot be plotted."""
        sim = Simulator(SimulatorConfig(log_level=LogLevel.CRITICAL))

        with pytest.raises(ValueError):
            TimelinePlot.from_simulator(sim).plot()


class TestComparisonPlot:
    """Tests for ComparisonPlot class."""

    def _results(self):
        rows = []
        for algorithm in ('gbn', 'sr'):
            for window_size in (2, 4):
                for p in (0.0, 0.1):
                    rows.append({
                        'algorithm': algorithm,
                        'window_size': window_size,
                        'loss_probability': p,
                        'efficiency': 0.9 - p * (2 if algorithm == 'gbn' else 1),
                        'error': None
                    })
        return pd.DataFrame(rows)

    def test_plot_saved(self, tmp_path):
        """Test that one panel per window size is rendered."""
        output = str(tmp_path / "comparison.png")

        path = ComparisonPlot(self._results()).plot(output_file=output)

        assert os.path.getsize(path) > 0

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            ComparisonPlot(self._results()).plot(metric='goodput')
