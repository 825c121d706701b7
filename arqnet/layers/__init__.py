"""
Layers package - Node stack.

Contains implementations for:
- Physical Layer (point-to-point links over Gilbert-Elliot channels)
- Link Layer (node reactor around the ARQ state machine)
- Application Layer (message source and sink)
"""

from .physical_layer import PhysicalLink, Endpoint
from .link_layer import DataLinkNode, NodeConfig, NodeServices, NodeEvent, EventType
from .application_layer import MessageSource, MessageSink

__all__ = [
    'PhysicalLink',
    'Endpoint',
    'DataLinkNode',
    'NodeConfig',
    'NodeServices',
    'NodeEvent',
    'EventType',
    'MessageSource',
    'MessageSink'
]
