#!/usr/bin/env python3
"""
Stop-and-Wait ARQ Path Discovery Simulator - Main Entry Point

This is the main CLI interface for the network simulator.
It provides options for:
- Single simulation runs on a ring or line topology
- Parameter sweeps over ring sizes and loss probabilities
- Visualization of sweep results

Usage:
    python main.py --single --topology ring --nodes 6 --loss 0.1
    python main.py --sweep --runs 5
    python main.py --visualize --csv results.csv
"""

import argparse
import os
import sys
import time

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import (
    RING_SIZES, LOSS_PROBABILITIES, RUNS_PER_CONFIGURATION,
    DEFAULT_MESSAGE_COUNT, RESULTS_CSV, PLOTS_DIR
)


def build_topology(args):
    from simulation.topology import Topology

    if args.topology == 'line':
        return Topology.line(args.nodes)
    return Topology.ring(args.nodes)


def run_single_simulation(args):
    """Run a single simulation with specified parameters."""
    from arqnet.arq.state_machine import AckPolicy
    from arqnet.utils.logger import LogLevel, SimulationLogger
    from simulation.simulator import NetworkSimulator, SimulatorConfig

    config = SimulatorConfig(
        message_count=args.messages,
        loss_probability=args.loss,
        burst_errors=args.burst_errors,
        ack_policy=AckPolicy[args.ack_policy.upper()],
        echo_discovery=args.echo,
        seed=args.seed,
        log_level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING
    )
    logger = SimulationLogger(name="Sim", level=config.log_level, log_file=args.log_file)

    print("=" * 60)
    print("STOP-AND-WAIT ARQ SIMULATOR")
    print("=" * 60)
    print(f"\nConfiguration:")
    print(f"  Topology: {args.topology} of {args.nodes} nodes")
    print(f"  Messages per node: {config.message_count}")
    print(f"  Loss probability: {config.loss_probability}")
    print(f"  Burst errors: {config.burst_errors}")
    print(f"  Ack policy: {config.ack_policy.name}")
    print(f"  Echo discovery: {config.echo_discovery}")
    print(f"  Seed: {config.seed}")

    print("\nRunning simulation...")

    sim = NetworkSimulator(build_topology(args), config, logger=logger)
    start_time = time.time()
    results = sim.run()
    elapsed = time.time() - start_time
    logger.close()

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    print(f"\nTransfer Status:")
    print(f"  Complete: {results['complete']}")
    print(f"  Data Valid: {results['verification']['valid']}")
    print(f"  Simulation Time: {results['simulation_time']:.4f} s")
    print(f"  Real Time: {elapsed:.2f} s")

    metrics = results['metrics']
    print(f"\nPerformance Metrics:")
    print(f"  Delivered: {metrics['messages_delivered']}/{metrics['messages_submitted']}")
    print(f"  Goodput: {metrics['goodput']:.2f} B/s")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")

    print(f"\nFrame Statistics:")
    print(f"  Frames Transmitted: {metrics['frames_transmitted']}")
    print(f"  Frames Relayed: {metrics['frames_relayed']}")
    print(f"  Retransmissions: {metrics['retransmissions']}")
    print(f"  Duplicates: {metrics['duplicate_frames']}")
    print(f"  Lost / Corrupted: {metrics['frames_lost']} / {metrics['frames_corrupted']}")

    if metrics['latency']['samples'] > 0:
        print(f"\nLatency Statistics:")
        print(f"  Mean: {metrics['latency']['mean'] * 1000:.2f} ms")
        print(f"  Min: {metrics['latency']['min'] * 1000:.2f} ms")
        print(f"  Max: {metrics['latency']['max'] * 1000:.2f} ms")

    print(f"\nDiscovered Paths (destination -> link):")
    for address, table in results['paths'].items():
        print(f"  Node {address}: {table}")

    if args.state:
        print("\n" + "=" * 60)
        print("NODE STATE")
        print("=" * 60)
        print(sim.describe_state())

    return results


def run_parameter_sweep(args):
    """Run full parameter sweep."""
    from simulation.runner import BatchRunner

    print("=" * 60)
    print("PARAMETER SWEEP")
    print("=" * 60)

    if args.quick:
        ring_sizes = [4, 6]
        loss_probabilities = [0.0, 0.1]
        runs = 2
        message_count = 5
    else:
        ring_sizes = RING_SIZES
        loss_probabilities = LOSS_PROBABILITIES
        runs = args.runs
        message_count = args.messages

    runner = BatchRunner(
        ring_sizes=ring_sizes,
        loss_probabilities=loss_probabilities,
        runs_per_config=runs,
        message_count=message_count,
        burst_errors=args.burst_errors,
        echo_discovery=args.echo,
        output_file=args.output or RESULTS_CSV
    )

    print(f"\nConfiguration:")
    print(f"  Ring sizes: {ring_sizes}")
    print(f"  Loss probabilities: {loss_probabilities}")
    print(f"  Runs per config: {runs}")
    print(f"  Total simulations: {runner.total_runs}")
    print(f"  Output: {runner.output_file}")

    print("\nStarting parameter sweep...")

    if args.parallel:
        results = runner.run_parallel(max_workers=args.workers)
    else:
        results = runner.run_sequential()

    runner.save_results()

    print("\n" + "=" * 60)
    print("AGGREGATED RESULTS")
    print("=" * 60)
    for key, data in sorted(runner.get_aggregated_results().items()):
        print(f"  ring={key[0]:2d} loss={key[1]:.2f}: "
              f"goodput={data['goodput_mean']:8.2f} B/s "
              f"retx={data['retx_mean']:6.1f} "
              f"valid={data['valid_runs']}/{len(data['goodputs'])}")

    failed = [r for r in results if r.get('error')]
    if failed:
        print(f"\n{len(failed)} runs failed; first error: {failed[0]['error']}")

    return results


def generate_visualizations(args):
    """Generate visualization plots."""
    print("=" * 60)
    print("GENERATING VISUALIZATIONS")
    print("=" * 60)

    csv_file = args.csv or RESULTS_CSV

    if not os.path.exists(csv_file):
        print(f"Error: Results file not found: {csv_file}")
        print("Run a parameter sweep first: python main.py --sweep")
        return

    from visualization.heatmap import SweepHeatmap
    heatmap = SweepHeatmap(csv_file=csv_file)
    print(f"Loaded {len(heatmap.results)} results from {csv_file}")

    outputs = heatmap.plot_all(output_dir=PLOTS_DIR)

    print("\n" + "=" * 60)
    print("VISUALIZATIONS GENERATED")
    print("=" * 60)
    for output in outputs:
        print(f"  {output}")


def main():
    parser = argparse.ArgumentParser(
        description="Stop-and-Wait ARQ Path Discovery Simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Single simulation on a lossy ring:
    python main.py --single --nodes 6 --loss 0.1

  Single simulation with node state dump:
    python main.py --single --topology line --nodes 3 --state

  Quick parameter sweep (for testing):
    python main.py --sweep --quick

  Parallel parameter sweep:
    python main.py --sweep --parallel --workers 4

  Generate visualizations:
    python main.py --visualize
        """
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument('--single', action='store_true',
                      help='Run single simulation')
    mode.add_argument('--sweep', action='store_true',
                      help='Run parameter sweep')
    mode.add_argument('--visualize', action='store_true',
                      help='Generate visualizations')

    # Network options
    parser.add_argument('--topology', choices=['ring', 'line'], default='ring',
                        help='Topology (default: ring)')
    parser.add_argument('--nodes', '-n', type=int, default=6,
                        help='Number of nodes (default: 6)')
    parser.add_argument('--messages', '-m', type=int, default=DEFAULT_MESSAGE_COUNT,
                        help=f'Messages per node (default: {DEFAULT_MESSAGE_COUNT})')
    parser.add_argument('--loss', '-l', type=float, default=0.0,
                        help='Frame loss probability (default: 0.0)')
    parser.add_argument('--burst-errors', action='store_true',
                        help='Enable Gilbert-Elliott bit errors')
    parser.add_argument('--ack-policy', choices=['match_sequence', 'accept_any'],
                        default='match_sequence',
                        help='ACK matching policy (default: match_sequence)')
    parser.add_argument('--echo', action='store_true',
                        help='Enable echo path discovery')
    parser.add_argument('--seed', '-s', type=int, default=42,
                        help='Random seed (default: 42)')
    parser.add_argument('--state', action='store_true',
                        help='Print every node state after the run')

    # Parameter sweep options
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
                        help='Output file path')
    parser.add_argument('--csv', type=str,
                        help='CSV file for visualization')
    parser.add_argument('--log-file', type=str,
                        help='Write the simulation log to a file')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args()

    if args.single:
        run_single_simulation(args)
    elif args.sweep:
        run_parameter_sweep(args)
    elif args.visualize:
        generate_visualizations(args)


if __name__ == "__main__":
    main()
