"""
Batch Runner for GBN / SR Comparison Sweeps

This module runs unattended sessions over every combination of
algorithm, window size and random loss probability, several runs each,
and collects one summary row per run.
"""

import os
import csv
import time
from typing import Optional, Callable, List, Dict
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import multiprocessing
import sys

import pandas as pd
from tqdm import tqdm

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import (
    ALGORITHMS, WINDOW_SIZES, LOSS_PROBABILITIES, RUNS_PER_CONFIGURATION,
    SWEEP_DURATION, RNG_SEED_BASE, OUTPUT_DIR, RESULTS_CSV
)
from simulation.simulator import Simulator, SimulatorConfig
from simulation.loss_operator import RandomLossOperator
from src.utils.logger import LogLevel


@dataclass
class RunConfig:
    """Configuration for a single simulation run."""
    algorithm: str
    window_size: int
    loss_probability: float
    run_id: int
    seed: int
    duration: float


def run_single_simulation(run_config: RunConfig) -> Dict:
    """
    Run a single unattended session with random loss.

    This function is designed to be called in a separate process.

    Args:
        run_config: Configuration for this run

    Returns:
        Dictionary with results
    """
    row = {
        'algorithm': run_config.algorithm,
        'window_size': run_config.window_size,
        'loss_probability': run_config.loss_probability,
        'run_id': run_config.run_id,
        'seed': run_config.seed,
    }

    try:
        config = SimulatorConfig(
            algorithm=run_config.algorithm,
            window_size=run_config.window_size,
            log_level=LogLevel.ERROR  # Minimal logging for batch runs
        )

        sim = Simulator(config)
        operator = RandomLossOperator(sim, run_config.loss_probability, seed=run_config.seed)
        operator.attach()

        sim.start()
        sim.run_for(run_config.duration)
        results = sim.get_results()

        metrics = results['metrics']
        row.update({
            'delivered': results['delivered'],
            'packets_sent': metrics['packets_sent'],
            'retransmissions': metrics['retransmissions'],
            'timeouts': metrics['timeouts'],
            'acks_sent': metrics['acks_sent'],
            'packets_lost': metrics['packets_lost'],
            'acks_lost': metrics['acks_lost'],
            'duplicates': metrics['duplicates'],
            'efficiency': metrics['efficiency'],
            'delivery_rate': metrics['delivery_rate'],
            'retransmission_ratio': metrics['retransmission_ratio'],
            'simulation_time': results['simulation_time'],
            'invariants_hold': results['invariants_hold'],
            'error': None
        })

    except Exception as e:
        row.update({'delivered': 0, 'error': str(e)})

    return row


class BatchRunner:
    """
    Batch Runner for comparison sweeps.

    Executes all (algorithm, W, p) combinations with multiple runs each.

    Attributes:
        algorithms: Algorithms to compare
        window_sizes: List of window sizes to test
        loss_probabilities: Per-unit loss probabilities to test
        runs_per_config: Number of runs per configuration
        duration: Simulated seconds per run
    """

    def __init__(
        self,
        algorithms: List[str] = None,
        window_sizes: List[int] = None,
        loss_probabilities: List[float] = None,
        runs_per_config: int = RUNS_PER_CONFIGURATION,
        duration: float = SWEEP_DURATION,
        output_file: str = RESULTS_CSV,
        on_progress: Optional[Callable[[int, int, dict], None]] = None
    ):
        """
        Initialize batch runner.

        Args:
            algorithms: Algorithm keys (default: both)
            window_sizes: List of window sizes (default from config)
            loss_probabilities: Loss probabilities (default from config)
            runs_per_config: Number of runs per configuration
            duration: Simulated seconds per run
            output_file: Path to output CSV file
            on_progress: Callback for progress updates
        """
        self.algorithms = algorithms or list(ALGORITHMS)
        self.window_sizes = window_sizes or WINDOW_SIZES
        self.loss_probabilities = (LOSS_PROBABILITIES if loss_probabilities is None
                                   else loss_probabilities)
        self.runs_per_config = runs_per_config
        self.duration = duration
        self.output_file = output_file
        self.on_progress = on_progress

        # Results storage
        self.results: List[Dict] = []

        # Progress tracking
        self.total_runs = (len(self.algorithms) *
                           len(self.window_sizes) *
                           len(self.loss_probabilities) *
                           self.runs_per_config)
        self.completed_runs = 0
        self.start_time = 0.0

    def _generate_run_configs(self) -> List[RunConfig]:
        """Generate all run configurations."""
        configs = []

        for algorithm in self.algorithms:
            for window_size in self.window_sizes:
                for loss_probability in self.loss_probabilities:
                    for run_id in range(self.runs_per_config):
                        # Same loss pattern seed for both algorithms
                        seed = (RNG_SEED_BASE +
                                window_size * 1000 +
                                int(round(loss_probability * 100)) +
                                run_id * 10000)

                        configs.append(RunConfig(
                            algorithm=algorithm,
                            window_size=window_size,
                            loss_probability=loss_probability,
                            run_id=run_id,
                            seed=seed,
                            duration=self.duration
                        ))

        return configs

    def _record(self, result: Dict):
        self.results.append(result)
        self.completed_runs += 1

        if self.on_progress:
            self.on_progress(self.completed_runs, self.total_runs, result)

    def run_sequential(self) -> List[Dict]:
        """
        Run all simulations sequentially.

        Returns:
            List of result dictionaries
        """
        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        print(f"Running {self.total_runs} simulations sequentially...")

        for config in tqdm(configs, desc="Simulations"):
            self._record(run_single_simulation(config))

        total_time = time.time() - self.start_time
        print(f"Completed {self.total_runs} simulations in {total_time:.1f}s")

        return self.results

    def run_parallel(self, max_workers: Optional[int] = None) -> List[Dict]:
        """
        Run simulations in parallel using multiprocessing.

        Args:
            max_workers: Number of parallel workers (default: CPU count)

        Returns:
            List of result dictionaries
        """
        if max_workers is None:
            max_workers = multiprocessing.cpu_count()

        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        print(f"Running {self.total_runs} simulations with {max_workers} workers...")

        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(run_single_simulation, config): config
                for config in configs
            }

            for future in tqdm(as_completed(futures), total=len(futures),
                               desc="Simulations"):
                self._record(future.result())

        total_time = time.time() - self.start_time
        print(f"Completed {self.total_runs} simulations in {total_time:.1f}s")

        return self.results

    def save_results(self, filepath: Optional[str] = None):
        """
        Save results to CSV file.

        Args:
            filepath: Output file path (default: self.output_file)
        """
        filepath = filepath or self.output_file

        if not self.results:
            print("No results to save!")
            return

        # Ensure directory exists
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Union of keys; failed runs carry fewer columns
        fieldnames: List[str] = []
        for result in self.results:
            for key in result:
                if key not in fieldnames:
                    fieldnames.append(key)

        with open(filepath, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(self.results)

        print(f"Results saved to: {filepath}")

    def to_dataframe(self) -> pd.DataFrame:
        """Results of successful runs as a DataFrame."""
        frame = pd.DataFrame(self.results)
        if frame.empty:
            return frame
        return frame[frame['error'].isna()].reset_index(drop=True)

    def get_summary(self) -> pd.DataFrame:
        """
        Mean metrics per (algorithm, window_size, loss_probability).

        Returns:
            DataFrame indexed by configuration
        """
        frame = self.to_dataframe()
        if frame.empty:
            return frame

        columns = ['delivered', 'packets_sent', 'retransmissions', 'timeouts',
                   'efficiency', 'delivery_rate']
        summary = frame.groupby(
            ['algorithm', 'window_size', 'loss_probability']
        )[columns].mean()
        summary['runs'] = frame.groupby(
            ['algorithm', 'window_size', 'loss_probability']
        ).size()
        return summary

    def get_best_configuration(self) -> Dict:
        """
        Configuration with the highest mean efficiency.

        Returns:
            Dictionary with the best configuration info
        """
        summary = self.get_summary()
        if summary.empty:
            return {'error': 'No results available'}

        algorithm, window_size, loss_probability = summary['efficiency'].idxmax()
        best = summary.loc[(algorithm, window_size, loss_probability)]
        return {
            'algorithm': algorithm,
            'window_size': int(window_size),
            'loss_probability': float(loss_probability),
            'mean_efficiency': float(best['efficiency']),
            'mean_delivered': float(best['delivered'])
        }


if __name__ == "__main__":
    # Test batch runner with small parameter space
    print("=" * 60)
    print("BATCH RUNNER TEST")
    print("=" * 60)

    runner = BatchRunner(
        window_sizes=[2, 4],
        loss_probabilities=[0.0, 0.1],
        runs_per_config=2,
        duration=120.0,
        output_file=os.path.join(OUTPUT_DIR, "test_comparison.csv")
    )

    print(f"\nTest configuration:")
    print(f"  Algorithms: {runner.algorithms}")
    print(f"  Window sizes: {runner.window_sizes}")
    print(f"  Loss probabilities: {runner.loss_probabilities}")
    print(f"  Runs per config: {runner.runs_per_config}")
    print(f"  Total runs: {runner.total_runs}")

    print("\nRunning simulations...")
    runner.run_sequential()
    runner.save_results()

    print("\nSummary:")
    print(runner.get_summary().to_string())
