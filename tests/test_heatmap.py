"""
Tests for the sweep heatmap generator.
"""

import csv
import math

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from visualization.heatmap import SweepHeatmap


RESULTS = [
    {'ring_size': 4, 'loss_probability': 0.0, 'goodput': 100.0, 'error': None},
    {'ring_size': 4, 'loss_probability': 0.0, 'goodput': 200.0, 'error': None},
    {'ring_size': 4, 'loss_probability': 0.1, 'goodput': 50.0, 'error': None},
    {'ring_size': 6, 'loss_probability': 0.0, 'goodput': 80.0, 'error': None},
    {'ring_size': 6, 'loss_probability': 0.1, 'goodput': 0, 'error': 'boom'},
]


class TestSweepHeatmap:

    def test_matrix_means(self):
        matrix = SweepHeatmap(results=RESULTS).create_matrix('goodput')

        assert matrix.shape == (2, 2)
        assert matrix[0, 0] == pytest.approx(150.0)
        assert matrix[0, 1] == pytest.approx(50.0)
        assert matrix[1, 0] == pytest.approx(80.0)
        assert math.isnan(matrix[1, 1])

    def test_plot_writes_file(self, tmp_path):
        output = tmp_path / "goodput.png"
        path = SweepHeatmap(results=RESULTS).plot('goodput', output_file=str(output))

        assert path == str(output)
        assert output.exists()

    def test_load_csv(self, tmp_path):
        csv_file = tmp_path / "results.csv"
        with open(csv_file, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=list(RESULTS[0]))
            writer.writeheader()
            writer.writerows(RESULTS)

        heatmap = SweepHeatmap(csv_file=str(csv_file))

        assert heatmap.ring_sizes == [4, 6]
        assert heatmap.loss_probabilities == [0.0, 0.1]
        assert heatmap.create_matrix('goodput')[0, 0] == pytest.approx(150.0)

    def test_plot_without_results(self):
        with pytest.raises(ValueError):
            SweepHeatmap().plot()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
