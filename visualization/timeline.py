"""
Session Timeline and Comparison Plots

This module draws the classic sender/receiver sequence diagram of a
session from its channel trace, and line charts comparing GBN and SR
across a sweep.
"""

import os
import sys
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import pandas as pd

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import PLOTS_DIR, RESULTS_CSV


OUTCOME_STYLES = {
    'arrived': {'linestyle': '-', 'alpha': 0.9},
    'lost': {'linestyle': '--', 'alpha': 0.8},
}
KIND_COLORS = {'packet': 'tab:blue', 'ack': 'tab:green'}
LOST_COLOR = 'tab:red'


class TimelinePlot:
    """
    Sequence diagram of one session.

    The sender is drawn on the left, the receiver on the right and time
    runs downwards. Each finished unit is a slanted line; lost units stop
    where the operator deleted them.
    """

    def __init__(self, trace: pd.DataFrame, title: str = "ARQ Session Timeline"):
        """
        Initialize timeline plot.

        Args:
            trace: Channel trace (``MetricsCollector.to_dataframe()``)
            title: Plot title
        """
        self.trace = trace
        self.title = title

    @classmethod
    def from_simulator(cls, simulator) -> "TimelinePlot":
        title = (f"{simulator.algorithm.upper()} Timeline "
                 f"(W={simulator.config.window_size})")
        return cls(simulator.metrics.to_dataframe(), title=title)

    @classmethod
    def from_csv(cls, filepath: str) -> "TimelinePlot":
        return cls(pd.read_csv(filepath))

    def _endpoints(self, row) -> Tuple[float, float]:
        """x positions (0 = sender, 1 = receiver) at start and end."""
        travelled = 1.0
        if row['outcome'] == 'lost' and row['transit_duration'] > 0:
            travelled = (row['finished_at'] - row['sent_at']) / row['transit_duration']
            travelled = min(max(travelled, 0.0), 1.0)
        if row['kind'] == 'packet':
            return 0.0, travelled
        return 1.0, 1.0 - travelled

    def plot(
        self,
        output_file: Optional[str] = None,
        figsize: Tuple[int, int] = (8, 12),
        show_labels: bool = True
    ) -> str:
        """
        Generate and save the timeline.

        Returns:
            Path to saved figure
        """
        if self.trace.empty:
            raise ValueError("No channel trace to plot")

        fig, ax = plt.subplots(figsize=figsize)

        end_time = float(self.trace['finished_at'].max())
        ax.axvline(0.0, color='black', linewidth=2)
        ax.axvline(1.0, color='black', linewidth=2)

        for _, row in self.trace.iterrows():
            x_start, x_end = self._endpoints(row)
            lost = row['outcome'] == 'lost'
            color = LOST_COLOR if lost else KIND_COLORS.get(row['kind'], 'gray')
            style = OUTCOME_STYLES.get(row['outcome'], OUTCOME_STYLES['arrived'])

            ax.plot(
                [x_start, x_end], [row['sent_at'], row['finished_at']],
                color=color, linewidth=1.2, **style
            )
            if lost:
                ax.plot(x_end, row['finished_at'], marker='x', color=LOST_COLOR)

            if show_labels:
                label = f"{'P' if row['kind'] == 'packet' else 'A'}{row['seq_num']}"
                ax.text(
                    x_start + (0.02 if x_start == 0.0 else -0.02), row['sent_at'], label,
                    ha='left' if x_start == 0.0 else 'right', va='center', fontsize=7,
                    color=color
                )

        ax.set_xlim(-0.15, 1.15)
        ax.set_ylim(end_time + 1.0, 0.0)
        ax.set_xticks([0.0, 1.0])
        ax.set_xticklabels(['Sender', 'Receiver'])
        ax.set_ylabel('Simulation time (s)', fontsize=12)
        ax.set_title(self.title, fontsize=14, fontweight='bold')

        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, 'timeline.png')
        else:
            os.makedirs(os.path.dirname(output_file) or ".", exist_ok=True)

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Timeline saved to: {output_file}")
        return output_file


class ComparisonPlot:
    """
    GBN vs SR across loss probabilities, one panel per window size.
    """

    def __init__(self, results: pd.DataFrame):
        """
        Args:
            results: One row per run (``BatchRunner.to_dataframe()``)
        """
        self.results = results

    @classmethod
    def from_csv(cls, filepath: str = RESULTS_CSV) -> "ComparisonPlot":
        frame = pd.read_csv(filepath)
        if 'error' in frame.columns:
            frame = frame[frame['error'].isna()]
        return cls(frame)

    def plot(
        self,
        metric: str = 'efficiency',
        output_file: Optional[str] = None,
        figsize: Tuple[int, int] = (14, 4)
    ) -> str:
        """
        Plot the mean of ``metric`` against loss probability.

        Returns:
            Path to saved figure
        """
        if self.results.empty:
            raise ValueError("No results to plot")
        if metric not in self.results.columns:
            raise ValueError(f"Unknown metric: {metric}")

        means = (self.results
                 .groupby(['window_size', 'algorithm', 'loss_probability'])[metric]
                 .mean()
                 .reset_index())
        window_sizes = sorted(means['window_size'].unique())

        fig, axes = plt.subplots(1, len(window_sizes), figsize=figsize,
                                 sharey=True, squeeze=False)

        for ax, window_size in zip(axes[0], window_sizes):
            subset = means[means['window_size'] == window_size]
            for algorithm, group in subset.groupby('algorithm'):
                ax.plot(group['loss_probability'], group[metric],
                        marker='o', label=str(algorithm).upper())
            ax.set_title(f'W = {window_size}')
            ax.set_xlabel('Loss probability')
            ax.grid(True, alpha=0.3)

        axes[0][0].set_ylabel(metric.replace('_', ' ').title())
        axes[0][-1].legend()

        plt.suptitle(f"GBN vs SR: {metric.replace('_', ' ')}", fontsize=14, fontweight='bold')
        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, f'comparison_{metric}.png')
        else:
            os.makedirs(os.path.dirname(output_file) or ".", exist_ok=True)

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Comparison plot saved to: {output_file}")
        return output_file
