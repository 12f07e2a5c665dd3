"""
Configuration file for the Go-Back-N / Selective Repeat ARQ Simulator.
Contains the fixed timing constants of the simulated session and the
defaults an operator starts from.
"""

# =============================================================================
# PROTOCOL SELECTION
# =============================================================================

# Supported algorithms (lower-case keys)
ALGORITHM_GBN = "gbn"
ALGORITHM_SR = "sr"
ALGORITHMS = (ALGORITHM_GBN, ALGORITHM_SR)

DEFAULT_ALGORITHM = ALGORITHM_GBN

# Send/receive window capacity
DEFAULT_WINDOW_SIZE = 4

# =============================================================================
# TIMING PARAMETERS (seconds of simulation time)
# =============================================================================

# Sender tick cadence, independent of the transit duration
TICK_INTERVAL = 0.5

# Nominal time a packet or ACK spends in the channel
DEFAULT_TRANSIT_DURATION = 5.0

# Added on top of the round trip when arming a retransmission timer
TIMEOUT_MARGIN = 2.0

# Arrivals that come due while paused re-check at this interval
ARRIVAL_POLL_INTERVAL = 0.5

# A unit marked lost stays visible this long before it is removed
LOSS_FADE_DELAY = 0.3

# Delay between a unit's emission and a scripted operator deleting it,
# as a fraction of its transit duration
OPERATOR_DROP_FRACTION = 0.5

# =============================================================================
# PARAMETER SWEEP CONFIGURATION
# =============================================================================

# Window sizes to compare
WINDOW_SIZES = [1, 2, 4, 8]

# Per-unit loss probabilities to compare
LOSS_PROBABILITIES = [0.0, 0.05, 0.1, 0.2]

# Number of runs per (algorithm, window, loss) triple
RUNS_PER_CONFIGURATION = 5

# Simulated seconds per sweep run
SWEEP_DURATION = 300.0

# =============================================================================
# SIMULATION SETTINGS
# =============================================================================

# Default RNG seed base (actual seed = base + run_id)
RNG_SEED_BASE = 42

# Logging verbosity levels
LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

DEFAULT_LOG_LEVEL = LOG_LEVEL_INFO

# In-memory event log cap (oldest records are dropped first)
LOG_HISTORY_SIZE = 10_000

# Finished channel units kept for the trace and timeline (oldest dropped first)
TRACE_HISTORY_SIZE = 10_000

# =============================================================================
# OUTPUT PATHS
# =============================================================================

import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, "data")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
PLOTS_DIR = os.path.join(OUTPUT_DIR, "plots")

# Results CSV filenames
RESULTS_CSV = os.path.join(OUTPUT_DIR, "comparison.csv")
TRACE_CSV = os.path.join(OUTPUT_DIR, "trace.csv")

# =============================================================================
# DERIVED PARAMETERS
# =============================================================================

def calculate_round_trip(transit_duration):
    """Round trip of one packet and its ACK."""
    return 2 * transit_duration


def calculate_timeout(transit_duration, margin=TIMEOUT_MARGIN):
    """
    Retransmission timeout for a given per-unit transit duration.
    timeout = 2 * transit + margin
    """
    return calculate_round_trip(transit_duration) + margin


# Print configuration summary
if __name__ == "__main__":
    print("=" * 60)
    print("GBN / SR ARQ SIMULATOR - CONFIGURATION")
    print("=" * 60)
    print(f"\nProtocol:")
    print(f"  Algorithms: {', '.join(a.upper() for a in ALGORITHMS)}")
    print(f"  Default: {DEFAULT_ALGORITHM.upper()}")
    print(f"  Window Size: {DEFAULT_WINDOW_SIZE}")

    print(f"\nTiming:")
    print(f"  Tick Interval: {TICK_INTERVAL:.1f} s")
    print(f"  Transit Duration: {DEFAULT_TRANSIT_DURATION:.1f} s")
    print(f"  Timeout: {calculate_timeout(DEFAULT_TRANSIT_DURATION):.1f} s")
    print(f"  Arrival Poll: {ARRIVAL_POLL_INTERVAL:.1f} s")
    print(f"  Loss Fade: {LOSS_FADE_DELAY:.1f} s")

    print(f"\nParameter Sweep:")
    print(f"  Window Sizes: {WINDOW_SIZES}")
    print(f"  Loss Probabilities: {LOSS_PROBABILITIES}")
    print(f"  Runs per config: {RUNS_PER_CONFIGURATION}")
    total = len(ALGORITHMS) * len(WINDOW_SIZES) * len(LOSS_PROBABILITIES) * RUNS_PER_CONFIGURATION
    print(f"  Total simulations: {total}")
