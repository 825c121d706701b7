"""
Routing package - Relaying and path discovery.

Contains implementations for:
- Link table and forwarder
- Flood-with-hop-count and echo path discovery
"""

from .forwarder import LinkInfo, LinkTable, Forwarder
from .discovery import PathDiscoveryEngine, SenderPathTable, ReceiverPathTable

__all__ = [
    'LinkInfo',
    'LinkTable',
    'Forwarder',
    'PathDiscoveryEngine',
    'SenderPathTable',
    'ReceiverPathTable'
]
