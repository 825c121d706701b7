"""
Physical Layer Implementation

This module implements a point-to-point link between two node endpoints,
with transmission time, propagation delay and a Gilbert-Elliott channel
per direction. A direction carries one frame at a time: a frame written
while the previous one is still being clocked out waits for it.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import sys
sys.path.insert(0, '..')

from config import DEFAULT_BANDWIDTH, DEFAULT_PROPAGATION_DELAY
from arqnet.channel.gilbert_elliot import GilbertElliottChannel
from arqnet.routing.forwarder import LinkInfo


@dataclass(frozen=True)
class Endpoint:
    """One end of a physical link: a node and its link number."""
    node: int
    link: int


@dataclass(order=True)
class TransmissionEvent:
    """Event for frame arriving at the far endpoint."""
    arrival_time: float
    endpoint: Endpoint = field(compare=False)
    data: bytes = field(compare=False)
    corrupted: bool = field(compare=False, default=False)
    bit_errors: int = field(compare=False, default=0)


class PhysicalLink:
    """
    Full-duplex point-to-point link.

    Attributes:
        a: First endpoint
        b: Second endpoint
        bandwidth: Bit rate in bps
        propagation_delay: One-way propagation delay in seconds
        channels: Channel model per sending endpoint
    """

    def __init__(
        self,
        a: Endpoint,
        b: Endpoint,
        bandwidth: float = DEFAULT_BANDWIDTH,
        propagation_delay: float = DEFAULT_PROPAGATION_DELAY,
        channel_a_to_b: Optional[GilbertElliottChannel] = None,
        channel_b_to_a: Optional[GilbertElliottChannel] = None
    ):
        """
        Initialize physical link.

        Args:
            a: First endpoint
            b: Second endpoint
            bandwidth: Bit rate in bps
            propagation_delay: Propagation delay in seconds
            channel_a_to_b: Channel for frames sent by ``a``
            channel_b_to_a: Channel for frames sent by ``b``
        """
        if a.node == b.node:
            raise ValueError("A link must join two different nodes")
        if bandwidth <= 0:
            raise ValueError("Bandwidth must be positive")

        self.a = a
        self.b = b
        self.bandwidth = bandwidth
        self.propagation_delay = propagation_delay
        self.channels: Dict[Endpoint, GilbertElliottChannel] = {
            a: channel_a_to_b or GilbertElliottChannel.error_free(),
            b: channel_b_to_a or GilbertElliottChannel.error_free()
        }
        self._busy_until: Dict[Endpoint, float] = {a: 0.0, b: 0.0}

        # Statistics
        self.frames_transmitted = 0
        self.frames_lost = 0
        self.frames_corrupted = 0
        self.bytes_transmitted = 0

    def endpoint(self, node: int) -> Endpoint:
        """Endpoint of this link at a node."""
        if node == self.a.node:
            return self.a
        if node == self.b.node:
            return self.b
        raise KeyError(f"Node {node} is not attached to this link")

    def peer(self, node: int) -> Endpoint:
        """Endpoint at the far side from a node."""
        return self.b if self.endpoint(node) == self.a else self.a

    def link_info(self, node: int) -> LinkInfo:
        """Link table entry describing this link as seen from a node."""
        return LinkInfo(
            link=self.endpoint(node).link,
            bandwidth=self.bandwidth,
            propagation_delay=self.propagation_delay
        )

    def calculate_transmission_time(self, frame_size_bytes: int) -> float:
        """Time to clock a frame onto the link, in seconds."""
        return (frame_size_bytes * 8) / self.bandwidth

    def transmit(self, node: int, data: bytes,
                 current_time: float) -> Optional[TransmissionEvent]:
        """
        Send frame bytes from a node across the link.

        Args:
            node: Sending node
            data: Frame bytes
            current_time: Current simulation time

        Returns:
            The arrival event, or None if the channel lost the frame
        """
        sender = self.endpoint(node)
        start = max(current_time, self._busy_until[sender])
        finish = start + self.calculate_transmission_time(len(data))
        self._busy_until[sender] = finish

        self.frames_transmitted += 1
        self.bytes_transmitted += len(data)

        received, bit_errors = self.channels[sender].transmit(data)
        if received is None:
            self.frames_lost += 1
            return None
        if bit_errors:
            self.frames_corrupted += 1

        return TransmissionEvent(
            arrival_time=finish + self.propagation_delay,
            endpoint=self.peer(node),
            data=received,
            corrupted=bit_errors > 0,
            bit_errors=bit_errors
        )

    def get_statistics(self) -> dict:
        return {
            'frames_transmitted': self.frames_transmitted,
            'frames_lost': self.frames_lost,
            'frames_corrupted': self.frames_corrupted,
            'bytes_transmitted': self.bytes_transmitted
        }

    def reset(self):
        """Reset link timing and statistics."""
        self._busy_until = {self.a: 0.0, self.b: 0.0}
        self.frames_transmitted = 0
        self.frames_lost = 0
        self.frames_corrupted = 0
        self.bytes_transmitted = 0
