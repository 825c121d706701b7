"""
Configuration file for the Stop-and-Wait ARQ Path Discovery Simulator.
Contains all fixed baseline parameters for the protocol and the network.
"""

import os

# =============================================================================
# FRAME PARAMETERS
# =============================================================================

# Maximum application payload carried by one DATA frame (bytes)
MAX_PAYLOAD_SIZE = 1024

# Hop count ceiling - relays drop frames that would exceed it
MAX_HOP_COUNT = 16

# =============================================================================
# LINK PARAMETERS
# =============================================================================

# Default link bandwidth (bits per second)
DEFAULT_BANDWIDTH = 56_000  # 56 Kbps

# Default one-way propagation delay (seconds)
DEFAULT_PROPAGATION_DELAY = 0.0025  # 2.5 ms

# =============================================================================
# RETRANSMISSION TIMER
# =============================================================================

# timeout = TIMEOUT_MULTIPLIER * (frame_bits / bandwidth + propagation_delay)
TIMEOUT_MULTIPLIER = 9

# =============================================================================
# ECHO (FIND-PATH) DISCOVERY
# =============================================================================

# Delay after boot before the first find-path frame is sent (seconds)
ECHO_DELAY = 1.0

# Interval between find-path attempts while no echo has returned (seconds)
ECHO_RETRY_INTERVAL = 2.0

# Maximum number of find-path frames sent by one node
ECHO_MAX_ATTEMPTS = 3

# =============================================================================
# GILBERT-ELLIOT BURST ERROR MODEL PARAMETERS
# =============================================================================

# Bit Error Rates
GOOD_STATE_BER = 1e-6
BAD_STATE_BER = 5e-3

# State Transition Probabilities (evaluated once per frame)
P_GOOD_TO_BAD = 0.02
P_BAD_TO_GOOD = 0.3

# Independent probability that a frame vanishes on the wire
DEFAULT_LOSS_PROBABILITY = 0.0

# =============================================================================
# APPLICATION LAYER PARAMETERS
# =============================================================================

# Delay between the application being enabled and its next message (seconds).
# Must exceed the time a frame needs along the longest flood path: a late
# flooded copy carrying the same alternating bit as a newer frame would
# otherwise be taken for new data.
APPLICATION_INTERVAL = 0.5

# Messages generated per sending node in a default run
DEFAULT_MESSAGE_COUNT = 20

# =============================================================================
# PARAMETER SWEEP CONFIGURATION
# =============================================================================

# Ring sizes to evaluate
RING_SIZES = [4, 5, 6, 7, 8]

# Frame loss probabilities to evaluate
LOSS_PROBABILITIES = [0.0, 0.05, 0.1, 0.2]

# Number of simulation runs per (ring size, loss) pair
RUNS_PER_CONFIGURATION = 5

# =============================================================================
# SIMULATION SETTINGS
# =============================================================================

# Default RNG seed base (actual seed = base + run_id)
RNG_SEED_BASE = 42

# Simulation time limit (seconds) - failsafe
MAX_SIMULATION_TIME = 600.0

# Logging verbosity levels
LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

DEFAULT_LOG_LEVEL = LOG_LEVEL_INFO

# =============================================================================
# OUTPUT PATHS
# =============================================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, "data")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
PLOTS_DIR = os.path.join(OUTPUT_DIR, "plots")

# Results CSV filename
RESULTS_CSV = os.path.join(OUTPUT_DIR, "results.csv")

# =============================================================================
# DERIVED PARAMETERS (calculated from fixed parameters)
# =============================================================================

def calculate_transmission_time(frame_size_bytes, bandwidth=DEFAULT_BANDWIDTH):
    """Calculate transmission time for a frame of given size."""
    return (frame_size_bytes * 8) / bandwidth

def calculate_retransmission_timeout(frame_size_bytes,
                                     bandwidth=DEFAULT_BANDWIDTH,
                                     propagation_delay=DEFAULT_PROPAGATION_DELAY):
    """
    Retransmission timeout for one frame on one link.
    RTO = multiplier * (Tx + Prop)
    """
    tx = calculate_transmission_time(frame_size_bytes, bandwidth)
    return TIMEOUT_MULTIPLIER * (tx + propagation_delay)

def calculate_steady_state_probabilities():
    """
    Calculate steady-state probabilities for Good and Bad states.
    π_G = P(B→G) / (P(G→B) + P(B→G))
    π_B = P(G→B) / (P(G→B) + P(B→G))
    """
    sum_transitions = P_GOOD_TO_BAD + P_BAD_TO_GOOD
    pi_good = P_BAD_TO_GOOD / sum_transitions
    pi_bad = P_GOOD_TO_BAD / sum_transitions
    return pi_good, pi_bad

def calculate_average_ber():
    """
    Calculate average BER based on steady-state probabilities.
    BER_avg = π_G * pg + π_B * pb
    """
    pi_good, pi_bad = calculate_steady_state_probabilities()
    return pi_good * GOOD_STATE_BER + pi_bad * BAD_STATE_BER


# Print configuration summary
if __name__ == "__main__":
    print("=" * 60)
    print("STOP-AND-WAIT ARQ SIMULATOR - CONFIGURATION")
    print("=" * 60)
    print(f"\nFrames:")
    print(f"  Max payload: {MAX_PAYLOAD_SIZE} bytes")
    print(f"  Hop count ceiling: {MAX_HOP_COUNT}")

    print(f"\nLinks:")
    print(f"  Bandwidth: {DEFAULT_BANDWIDTH / 1e3:.0f} Kbps")
    print(f"  Propagation delay: {DEFAULT_PROPAGATION_DELAY * 1000:.2f} ms")
    print(f"  Timeout multiplier: {TIMEOUT_MULTIPLIER}x")

    print(f"\nGilbert-Elliot Model:")
    pi_good, pi_bad = calculate_steady_state_probabilities()
    print(f"  Good State BER: {GOOD_STATE_BER:.2e}")
    print(f"  Bad State BER: {BAD_STATE_BER:.2e}")
    print(f"  Steady-state P(Good): {pi_good:.4f}")
    print(f"  Average BER: {calculate_average_ber():.2e}")

    print(f"\nParameter Sweep:")
    print(f"  Ring sizes: {RING_SIZES}")
    print(f"  Loss probabilities: {LOSS_PROBABILITIES}")
    print(f"  Runs per config: {RUNS_PER_CONFIGURATION}")

    print(f"\nSample Timeouts:")
    for payload in (0, 64, 256, MAX_PAYLOAD_SIZE):
        rto = calculate_retransmission_timeout(payload + 20)
        print(f"  Payload {payload:4d} bytes: RTO = {rto * 1000:.2f} ms")
