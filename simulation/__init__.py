"""
Simulation package - Network simulation engine and runners.

Contains:
- Topology builders
- Network simulator
- Batch runner for parameter sweeps
"""

from .topology import Topology
from .simulator import NetworkSimulator, SimulatorConfig
from .runner import BatchRunner

__all__ = [
    'Topology',
    'NetworkSimulator',
    'SimulatorConfig',
    'BatchRunner'
]
