"""
Batch Runner for Parameter Sweep Simulations

This module implements the batch runner that executes every
(ring size, loss probability) combination several times and collects
one result row per run.
"""

import os
import csv
import statistics
import time
from typing import Optional, Callable, List, Dict, Tuple
from dataclasses import dataclass
from concurrent.futures import ProcessPoolExecutor, as_completed
import multiprocessing
import sys

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tqdm import tqdm

from config import (
    RING_SIZES, LOSS_PROBABILITIES, RUNS_PER_CONFIGURATION,
    RNG_SEED_BASE, OUTPUT_DIR, RESULTS_CSV, DEFAULT_MESSAGE_COUNT
)
from simulation.simulator import NetworkSimulator, SimulatorConfig
from simulation.topology import Topology
from arqnet.utils.logger import LogLevel


@dataclass
class RunConfig:
    """Configuration for a single simulation run."""
    ring_size: int
    loss_probability: float
    run_id: int
    seed: int
    message_count: int
    burst_errors: bool = False
    echo_discovery: bool = False


def run_single_simulation(run_config: RunConfig) -> Dict:
    """
    Run a single simulation with given configuration.

    This function is designed to be called in a separate process. A run
    that raises is reported as a row with its error message.

    Args:
        run_config: Configuration for this run

    Returns:
        Dictionary with results
    """
    try:
        config = SimulatorConfig(
            message_count=run_config.message_count,
            loss_probability=run_config.loss_probability,
            burst_errors=run_config.burst_errors,
            echo_discovery=run_config.echo_discovery,
            seed=run_config.seed,
            log_level=LogLevel.ERROR  # Minimal logging for batch runs
        )

        sim = NetworkSimulator(Topology.ring(run_config.ring_size), config)
        results = sim.run()

        metrics = results['metrics']
        discovered = sum(len(table) for table in results['paths'].values())
        possible = run_config.ring_size * (run_config.ring_size - 1)

        return {
            'ring_size': run_config.ring_size,
            'loss_probability': run_config.loss_probability,
            'run_id': run_config.run_id,
            'seed': run_config.seed,
            'goodput': metrics['goodput'],
            'delivery_ratio': metrics['delivery_ratio'],
            'efficiency': metrics['efficiency'],
            'messages_delivered': metrics['messages_delivered'],
            'frames_transmitted': metrics['frames_transmitted'],
            'retransmissions': metrics['retransmissions'],
            'frames_relayed': metrics['frames_relayed'],
            'duplicate_frames': metrics['duplicate_frames'],
            'frame_error_rate': metrics['frame_error_rate'],
            'latency_mean': metrics['latency']['mean'],
            'latency_max': metrics['latency']['max'],
            'paths_discovered': discovered / possible if possible else 0,
            'total_time': results['simulation_time'],
            'data_valid': results['verification']['valid'],
            'complete': results['complete'],
            'error': None
        }

    except Exception as e:
        return {
            'ring_size': run_config.ring_size,
            'loss_probability': run_config.loss_probability,
            'run_id': run_config.run_id,
            'seed': run_config.seed,
            'goodput': 0,
            'error': str(e)
        }


class BatchRunner:
    """
    Batch Runner for parameter sweep simulations.

    Executes all (ring size, loss) combinations with multiple runs each.

    Attributes:
        ring_sizes: Ring sizes to test
        loss_probabilities: Frame loss probabilities to test
        runs_per_config: Number of runs per configuration
        message_count: Messages per node per run
    """

    def __init__(
        self,
        ring_sizes: List[int] = None,
        loss_probabilities: List[float] = None,
        runs_per_config: int = RUNS_PER_CONFIGURATION,
        message_count: int = DEFAULT_MESSAGE_COUNT,
        burst_errors: bool = False,
        echo_discovery: bool = False,
        output_file: str = RESULTS_CSV,
        on_progress: Optional[Callable[[int, int, dict], None]] = None
    ):
        """
        Initialize batch runner.

        Args:
            ring_sizes: Ring sizes (default from config)
            loss_probabilities: Loss probabilities (default from config)
            runs_per_config: Number of runs per pair
            message_count: Messages per node per run
            burst_errors: Enable Gilbert-Elliott bit errors
            echo_discovery: Enable echo path discovery on every node
            output_file: Path to output CSV file
            on_progress: Callback for progress updates
        """
        self.ring_sizes = ring_sizes or RING_SIZES
        self.loss_probabilities = (loss_probabilities if loss_probabilities is not None
                                   else LOSS_PROBABILITIES)
        self.runs_per_config = runs_per_config
        self.message_count = message_count
        self.burst_errors = burst_errors
        self.echo_discovery = echo_discovery
        self.output_file = output_file
        self.on_progress = on_progress

        # Results storage
        self.results: List[Dict] = []

        # Progress tracking
        self.total_runs = (len(self.ring_sizes) *
                           len(self.loss_probabilities) *
                           self.runs_per_config)
        self.completed_runs = 0
        self.start_time = 0.0

    def _generate_run_configs(self) -> List[RunConfig]:
        """Generate all run configurations."""
        configs = []

        for ring_size in self.ring_sizes:
            for loss_index, loss in enumerate(self.loss_probabilities):
                for run_id in range(self.runs_per_config):
                    # Unique seed for each run
                    seed = (RNG_SEED_BASE +
                            ring_size * 1000 +
                            loss_index * 100 +
                            run_id * 10000)

                    configs.append(RunConfig(
                        ring_size=ring_size,
                        loss_probability=loss,
                        run_id=run_id,
                        seed=seed,
                        message_count=self.message_count,
                        burst_errors=self.burst_errors,
                        echo_discovery=self.echo_discovery
                    ))

        return configs

    def _record(self, result: Dict):
        self.results.append(result)
        self.completed_runs += 1
        if self.on_progress:
            self.on_progress(self.completed_runs, self.total_runs, result)

    def run_sequential(self, show_progress: bool = True) -> List[Dict]:
        """
        Run all simulations sequentially.

        Returns:
            List of result dictionaries
        """
        configs = self._generate_run_configs()
        self.results = []
        self.completed_runs = 0
        self.start_time = time.time()

        for config in tqdm(configs, desc="Simulations", disable=not show_progress):
            self._record(run_single_simulation(config))

        total_time = time.time() - self.start_time
        if show_progress:
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

        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if not self.results:
            print("No results to save!")
            return

        # Failed runs carry fewer columns than successful ones
        fieldnames = []
        for result in self.results:
            for key in result:
                if key not in fieldnames:
                    fieldnames.append(key)

        with open(filepath, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(self.results)

        print(f"Results saved to: {filepath}")

    def get_aggregated_results(self) -> Dict[Tuple[int, float], Dict]:
        """
        Get aggregated results by (ring size, loss) pair.

        Returns:
            Dictionary with aggregated statistics
        """
        aggregated = {}

        for result in self.results:
            if result.get('error'):
                continue

            key = (result['ring_size'], result['loss_probability'])
            if key not in aggregated:
                aggregated[key] = {
                    'ring_size': result['ring_size'],
                    'loss_probability': result['loss_probability'],
                    'goodputs': [],
                    'retransmissions': [],
                    'latencies': [],
                    'valid_runs': 0
                }

            data = aggregated[key]
            data['goodputs'].append(result['goodput'])
            data['retransmissions'].append(result['retransmissions'])
            if result.get('latency_mean', 0) > 0:
                data['latencies'].append(result['latency_mean'])
            if result.get('data_valid'):
                data['valid_runs'] += 1

        # Calculate statistics
        for data in aggregated.values():
            goodputs = data['goodputs']
            data['goodput_mean'] = statistics.mean(goodputs)
            data['goodput_std'] = statistics.stdev(goodputs) if len(goodputs) > 1 else 0
            data['retx_mean'] = statistics.mean(data['retransmissions'])
            if data['latencies']:
                data['latency_mean'] = statistics.mean(data['latencies'])

        return aggregated


if __name__ == "__main__":
    # Test batch runner with small parameter space
    print("=" * 60)
    print("BATCH RUNNER TEST")
    print("=" * 60)

    runner = BatchRunner(
        ring_sizes=[4, 6],
        loss_probabilities=[0.0, 0.1],
        runs_per_config=2,
        message_count=5,
        output_file=os.path.join(OUTPUT_DIR, "test_results.csv")
    )

    print(f"\nTotal runs: {runner.total_runs}")
    runner.run_sequential()
    runner.save_results()

    print("\nAggregated results:")
    for key, data in runner.get_aggregated_results().items():
        print(f"  ring={key[0]}, loss={key[1]}: "
              f"Goodput={data['goodput_mean']:.2f} B/s, "
              f"retx={data['retx_mean']:.1f}, "
              f"valid={data['valid_runs']}")
