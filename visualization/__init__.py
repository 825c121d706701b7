"""
Visualization package - Plotting tools.

Contains:
- Heatmaps of sweep results
"""

from .heatmap import SweepHeatmap

__all__ = [
    'SweepHeatmap'
]
