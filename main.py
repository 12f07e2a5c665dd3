#!/usr/bin/env python3
"""
Go-Back-N / Selective Repeat ARQ Simulator - Main Entry Point

This is the main CLI interface for the ARQ window simulator.
It provides options for:
- Single sessions with scripted or random operator loss
- GBN vs SR comparison sweeps
- Visualization generation

Usage:
    python main.py --single --algorithm gbn --window 4 --lose packet:2
    python main.py --single --algorithm sr --loss-prob 0.1 --plot
    python main.py --compare --runs 5 --parallel
    python main.py --visualize --csv comparison.csv
"""

import argparse
import os
import sys
import time

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import (
    ALGORITHMS, DEFAULT_ALGORITHM, DEFAULT_WINDOW_SIZE, DEFAULT_TRANSIT_DURATION,
    RUNS_PER_CONFIGURATION, SWEEP_DURATION, RNG_SEED_BASE,
    RESULTS_CSV, TRACE_CSV, PLOTS_DIR
)


def run_single_simulation(args):
    """Run a single session with the requested operator."""
    from simulation.simulator import Simulator, SimulatorConfig, ConfigurationError
    from simulation.loss_operator import LossRule, ScriptedLossOperator, RandomLossOperator
    from src.utils.logger import LogLevel

    try:
        rules = [LossRule.parse(text) for text in args.lose]
        config = SimulatorConfig(
            algorithm=args.algorithm,
            window_size=args.window,
            transit_duration=args.transit,
            gbn_reack_duplicates=args.reack,
            log_level=LogLevel.INFO if args.verbose else LogLevel.WARNING
        )
        sim = Simulator(config)
    except ValueError as e:
        print(f"Error: {e}")
        return None

    print("=" * 60)
    print(f"{sim.algorithm.upper()} ARQ SIMULATOR")
    print("=" * 60)
    print(f"\nConfiguration:")
    print(f"  Algorithm: {sim.algorithm.upper()}")
    print(f"  Window size: {config.window_size}")
    print(f"  Transit: {config.transit_duration:.1f} s")
    print(f"  Timeout: {config.get_timeout():.1f} s")
    print(f"  Duration: {args.duration:.1f} s")

    operators = []
    if rules:
        operators.append(ScriptedLossOperator(sim, rules))
        print(f"  Scripted loss: {', '.join(str(r) for r in rules)}")
    if args.loss_prob > 0:
        operators.append(RandomLossOperator(sim, args.loss_prob, seed=args.seed))
        print(f"  Random loss: p={args.loss_prob} (seed {args.seed})")
    for operator in operators:
        operator.attach()

    print("\nRunning simulation...")

    sim.start()
    start_time = time.time()
    if args.realtime:
        sim.run_realtime(args.duration, speed=args.speed)
    else:
        sim.run_for(args.duration)
    elapsed = time.time() - start_time

    results = sim.get_results()

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    state = sim.get_state()
    print(f"\nSession State:")
    print(f"  Sender base / next: {state['sender']['base']} / {state['sender']['next_seq']}")
    print(f"  Receiver base: {state['receiver']['rcv_base']}")
    if state['receiver']['buffered']:
        print(f"  Buffered: {state['receiver']['buffered']}")
    print(f"  Delivered: {results['delivered']}")
    print(f"  Invariants hold: {results['invariants_hold']}")
    print(f"  Simulation Time: {results['simulation_time']:.1f} s")
    print(f"  Real Time: {elapsed:.2f} s")

    metrics = results['metrics']
    print(f"\nPerformance Metrics:")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")
    print(f"  Delivery rate: {metrics['delivery_rate']:.3f} segments/s")

    print(f"\nPacket Statistics:")
    print(f"  Packets Sent: {metrics['packets_sent']}")
    print(f"  Retransmissions: {metrics['retransmissions']}")
    print(f"  Timeouts: {metrics['timeouts']}")
    print(f"  ACKs Sent: {metrics['acks_sent']}")
    print(f"  Duplicates: {metrics['duplicates']}")
    print(f"  Lost (packets / ACKs): {metrics['packets_lost']} / {metrics['acks_lost']}")

    if args.trace:
        path = sim.metrics.save_trace(args.trace)
        print(f"\nTrace saved to: {path}")

    if args.plot:
        from visualization.timeline import TimelinePlot
        TimelinePlot.from_simulator(sim).plot(
            output_file=os.path.join(PLOTS_DIR, f'timeline_{sim.algorithm}.png')
        )

    return results


def run_comparison(args):
    """Run the GBN vs SR comparison sweep."""
    from simulation.runner import BatchRunner

    print("=" * 60)
    print("GBN vs SR COMPARISON")
    print("=" * 60)

    if args.quick:
        window_sizes = [2, 4]
        loss_probabilities = [0.0, 0.1]
        runs = 2
        duration = 120.0
    else:
        window_sizes = None
        loss_probabilities = None
        runs = args.runs
        duration = args.duration

    runner = BatchRunner(
        window_sizes=window_sizes,
        loss_probabilities=loss_probabilities,
        runs_per_config=runs,
        duration=duration,
        output_file=args.output or RESULTS_CSV
    )

    print(f"\nConfiguration:")
    print(f"  Algorithms: {', '.join(a.upper() for a in runner.algorithms)}")
    print(f"  Window sizes: {runner.window_sizes}")
    print(f"  Loss probabilities: {runner.loss_probabilities}")
    print(f"  Runs per config: {runs}")
    print(f"  Total simulations: {runner.total_runs}")
    print(f"  Duration per run: {duration:.0f} s")
    print(f"  Output: {runner.output_file}")

    print("\nStarting comparison...")

    if args.parallel:
        results = runner.run_parallel(max_workers=args.workers)
    else:
        results = runner.run_sequential()

    runner.save_results()

    print("\n" + "=" * 60)
    print("MEAN RESULTS")
    print("=" * 60)
    print(runner.get_summary().to_string(float_format=lambda v: f"{v:.3f}"))

    best = runner.get_best_configuration()
    if 'error' not in best:
        print(f"\nBest efficiency: {best['algorithm'].upper()} "
              f"W={best['window_size']} p={best['loss_probability']} "
              f"({best['mean_efficiency'] * 100:.2f}%)")

    return results


def generate_visualizations(args):
    """Generate comparison plots from a saved sweep."""
    print("=" * 60)
    print("GENERATING VISUALIZATIONS")
    print("=" * 60)

    csv_file = args.csv or RESULTS_CSV

    if not os.path.exists(csv_file):
        print(f"Error: Results file not found: {csv_file}")
        print("Run a comparison first: python main.py --compare")
        return

    from visualization.timeline import ComparisonPlot
    plot = ComparisonPlot.from_csv(csv_file)
    print(f"Loaded {len(plot.results)} results from {csv_file}")

    os.makedirs(PLOTS_DIR, exist_ok=True)
    outputs = [plot.plot(metric) for metric in ('efficiency', 'delivered', 'retransmissions')]

    print("\n" + "=" * 60)
    print("VISUALIZATIONS GENERATED")
    print("=" * 60)
    for output in outputs:
        print(f"  {output}")


def show_config(args):
    """Display current configuration."""
    print("=" * 60)
    print("SIMULATOR CONFIGURATION")
    print("=" * 60)

    import config as cfg

    print(f"\nProtocol:")
    print(f"  Algorithms: {', '.join(a.upper() for a in cfg.ALGORITHMS)}")
    print(f"  Default Algorithm: {cfg.DEFAULT_ALGORITHM.upper()}")
    print(f"  Default Window: {cfg.DEFAULT_WINDOW_SIZE}")

    print(f"\nTiming:")
    print(f"  Tick Interval: {cfg.TICK_INTERVAL} s")
    print(f"  Transit Duration: {cfg.DEFAULT_TRANSIT_DURATION} s")
    print(f"  Timeout Margin: {cfg.TIMEOUT_MARGIN} s")
    print(f"  Timeout: {cfg.calculate_timeout(cfg.DEFAULT_TRANSIT_DURATION)} s")
    print(f"  Arrival Poll Interval: {cfg.ARRIVAL_POLL_INTERVAL} s")
    print(f"  Loss Fade Delay: {cfg.LOSS_FADE_DELAY} s")

    print(f"\nComparison Sweep:")
    print(f"  Window Sizes: {cfg.WINDOW_SIZES}")
    print(f"  Loss Probabilities: {cfg.LOSS_PROBABILITIES}")
    print(f"  Runs per config: {cfg.RUNS_PER_CONFIGURATION}")
    total = (len(cfg.ALGORITHMS) * len(cfg.WINDOW_SIZES) *
             len(cfg.LOSS_PROBABILITIES) * cfg.RUNS_PER_CONFIGURATION)
    print(f"  Total simulations: {total}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Go-Back-N / Selective Repeat ARQ Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Lose the first copy of packet 2 under GBN:
    python main.py --single --algorithm gbn --lose packet:2

  Lose ACK 3 and the second copy of packet 5 under SR:
    python main.py --single --algorithm sr --lose ack:3 --lose packet:5@2

  Random loss with a timeline plot:
    python main.py --single --loss-prob 0.1 --seed 7 --plot

  Quick comparison sweep (for testing):
    python main.py --compare --quick

  Parallel comparison sweep:
    python main.py --compare --parallel --workers 4

  Generate comparison plots:
    python main.py --visualize

  Show configuration:
    python main.py --config
        """
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--single', action='store_true',
                      help='Run a single session')
    mode.add_argument('--compare', action='store_true',
                      help='Run the GBN vs SR comparison sweep')
    mode.add_argument('--visualize', action='store_true',
                      help='Generate comparison plots')
    mode.add_argument('--config', action='store_true',
                      help='Show configuration')

    # Session options
    parser.add_argument('--algorithm', '-a', choices=ALGORITHMS, default=DEFAULT_ALGORITHM,
                        help=f'ARQ algorithm (default: {DEFAULT_ALGORITHM})')
    parser.add_argument('--window', '-w', type=int, default=DEFAULT_WINDOW_SIZE,
                        help=f'Window size (default: {DEFAULT_WINDOW_SIZE})')
    parser.add_argument('--transit', type=float, default=DEFAULT_TRANSIT_DURATION,
                        help=f'Transit duration in seconds (default: {DEFAULT_TRANSIT_DURATION})')
    parser.add_argument('--duration', '-d', type=float, default=None,
                        help='Simulated seconds to run (default: 60 single, '
                             f'{SWEEP_DURATION:.0f} compare)')
    parser.add_argument('--lose', action='append', default=[], metavar='RULE',
                        help='Delete a unit: packet:N, ack:N or packet:N@K (repeatable)')
    parser.add_argument('--loss-prob', type=float, default=0.0,
                        help='Random per-unit loss probability (default: 0)')
    parser.add_argument('--seed', '-s', type=int, default=RNG_SEED_BASE,
                        help=f'Random seed (default: {RNG_SEED_BASE})')
    parser.add_argument('--reack', action='store_true',
                        help='GBN receiver re-acknowledges duplicates')
    parser.add_argument('--realtime', action='store_true',
                        help='Pace the session against the wall clock')
    parser.add_argument('--speed', type=float, default=1.0,
                        help='Simulated seconds per wall-clock second (default: 1)')

    # Comparison options
    parser.add_argument('--runs', '-r', type=int,
                        default=RUNS_PER_CONFIGURATION,
                        help=f'Runs per configuration (default: {RUNS_PER_CONFIGURATION})')
    parser.add_argument('--parallel', action='store_true',
                        help='Run simulations in parallel')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of parallel workers')
    parser.add_argument('--quick', action='store_true',
                        help='Quick test with reduced parameters')

    # Output options
    parser.add_argument('--output', '-o', type=str,
                        help='Output CSV path for the comparison')
    parser.add_argument('--csv', type=str,
                        help='CSV file for visualization')
    parser.add_argument('--trace', nargs='?', const=TRACE_CSV, default=None,
                        help='Save the channel trace CSV')
    parser.add_argument('--plot', action='store_true',
                        help='Save a timeline plot of the session')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.duration is None:
        args.duration = 60.0 if args.single else SWEEP_DURATION

    # Execute selected mode
    if args.single:
        run_single_simulation(args)
    elif args.compare:
        run_comparison(args)
    elif args.visualize:
        generate_visualizations(args)
    elif args.config:
        show_config(args)


if __name__ == "__main__":
    main()
