"""
Sweep Result Heatmap Visualization

This module generates 2D heatmaps of a sweep metric as a function of
ring size and frame loss probability.
"""

import os
import sys
from typing import Dict, List, Optional, Tuple
import csv

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns

from config import RING_SIZES, LOSS_PROBABILITIES, PLOTS_DIR


METRIC_LABELS = {
    'goodput': "Goodput (B/s)",
    'latency_mean': "Mean delivery latency (s)",
    'retransmissions': "Retransmissions per run",
    'delivery_ratio': "Delivery ratio",
    'paths_discovered': "Fraction of paths discovered",
}


class SweepHeatmap:
    """
    Generates 2D heatmaps of a metric over (ring size, loss probability).
    """

    def __init__(
        self,
        results: Optional[List[Dict]] = None,
        csv_file: Optional[str] = None
    ):
        """
        Initialize heatmap generator.

        Args:
            results: List of result dictionaries
            csv_file: Path to CSV file with results
        """
        if results:
            self.results = results
        elif csv_file:
            self.results = self._load_csv(csv_file)
        else:
            self.results = []

        self.ring_sizes = (sorted(set(r['ring_size'] for r in self.results))
                           if self.results else RING_SIZES)
        self.loss_probabilities = (sorted(set(r['loss_probability'] for r in self.results))
                                   if self.results else LOSS_PROBABILITIES)

    def _load_csv(self, filepath: str) -> List[Dict]:
        """Load results from CSV file."""
        results = []
        with open(filepath, 'r') as f:
            reader = csv.DictReader(f)
            for row in reader:
                # Convert numeric fields
                for key in row:
                    try:
                        if '.' in str(row[key]) or 'e' in str(row[key]):
                            row[key] = float(row[key])
                        else:
                            row[key] = int(row[key])
                    except (ValueError, TypeError):
                        pass
                results.append(row)
        return results

    def create_matrix(self, metric: str = 'goodput') -> np.ndarray:
        """
        Create matrix of mean metric values.

        Rows follow ring sizes and columns loss probabilities. Runs that
        failed or lack the metric are skipped; empty cells are NaN.

        Returns:
            Matrix of shape (len(ring_sizes), len(loss_probabilities))
        """
        grouped: Dict[Tuple[int, float], List[float]] = {}
        for r in self.results:
            if r.get('error'):
                continue
            value = r.get(metric)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            key = (r['ring_size'], r['loss_probability'])
            grouped.setdefault(key, []).append(value)

        matrix = np.full((len(self.ring_sizes), len(self.loss_probabilities)), np.nan)
        for i, size in enumerate(self.ring_sizes):
            for j, loss in enumerate(self.loss_probabilities):
                values = grouped.get((size, loss))
                if values:
                    matrix[i, j] = np.mean(values)
        return matrix

    def plot(
        self,
        metric: str = 'goodput',
        output_file: Optional[str] = None,
        title: Optional[str] = None,
        figsize: Tuple[int, int] = (10, 7),
        cmap: str = "viridis",
        show_values: bool = True
    ) -> str:
        """
        Generate and save heatmap.

        Args:
            metric: Result column to plot
            output_file: Output file path (auto-generated if None)
            title: Plot title
            figsize: Figure size (width, height)
            cmap: Colormap name
            show_values: Show values in cells

        Returns:
            Path to saved figure
        """
        if not self.results:
            raise ValueError("No results to plot")

        # Larger rings at the top
        matrix = np.flipud(self.create_matrix(metric))
        ring_sizes_display = list(reversed(self.ring_sizes))
        label = METRIC_LABELS.get(metric, metric)

        fig, ax = plt.subplots(figsize=figsize)
        sns.heatmap(
            matrix,
            annot=show_values,
            fmt='.3g',
            cmap=cmap,
            xticklabels=self.loss_probabilities,
            yticklabels=ring_sizes_display,
            ax=ax,
            cbar_kws={'label': label}
        )

        ax.set_xlabel('Frame loss probability', fontsize=12)
        ax.set_ylabel('Ring size (nodes)', fontsize=12)
        ax.set_title(title or f"{label} vs ring size and loss", fontsize=14,
                     fontweight='bold')

        plt.tight_layout()

        if output_file is None:
            os.makedirs(PLOTS_DIR, exist_ok=True)
            output_file = os.path.join(PLOTS_DIR, f'{metric}_heatmap.png')

        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Heatmap saved to: {output_file}")
        return output_file

    def plot_all(self, metrics: Optional[List[str]] = None,
                 output_dir: str = PLOTS_DIR) -> List[str]:
        """Plot one heatmap per metric into a directory."""
        os.makedirs(output_dir, exist_ok=True)
        outputs = []
        for metric in metrics or list(METRIC_LABELS):
            outputs.append(self.plot(
                metric=metric,
                output_file=os.path.join(output_dir, f'{metric}_heatmap.png')
            ))
        return outputs
