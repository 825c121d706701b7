"""
Network Topology

Describes which nodes exist and how their links are wired. Link numbers
are assigned per node in the order connections are added, starting at 1.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import DEFAULT_BANDWIDTH, DEFAULT_PROPAGATION_DELAY
from arqnet.channel.gilbert_elliot import GilbertElliottChannel
from arqnet.layers.physical_layer import Endpoint, PhysicalLink
from arqnet.routing.forwarder import LinkInfo


@dataclass(frozen=True)
class Connection:
    """One wired link between two endpoints."""
    a: Endpoint
    b: Endpoint
    bandwidth: float = DEFAULT_BANDWIDTH
    propagation_delay: float = DEFAULT_PROPAGATION_DELAY


class Topology:
    """
    Nodes and the links between them.

    Attributes:
        nodes: Node addresses in insertion order
        connections: Wired links
    """

    def __init__(self):
        self.nodes: List[int] = []
        self.connections: List[Connection] = []
        self._link_count: Dict[int, int] = {}

    def add_node(self, address: int):
        if address in self._link_count:
            raise ValueError(f"Duplicate node address {address}")
        self.nodes.append(address)
        self._link_count[address] = 0

    def connect(
        self,
        a: int,
        b: int,
        bandwidth: float = DEFAULT_BANDWIDTH,
        propagation_delay: float = DEFAULT_PROPAGATION_DELAY
    ) -> Connection:
        """
        Wire a new link between two nodes.

        Returns:
            The connection, with the link number allocated at each node
        """
        for node in (a, b):
            if node not in self._link_count:
                raise KeyError(f"Unknown node {node}")
        if a == b:
            raise ValueError("Cannot connect a node to itself")

        self._link_count[a] += 1
        self._link_count[b] += 1
        connection = Connection(
            a=Endpoint(a, self._link_count[a]),
            b=Endpoint(b, self._link_count[b]),
            bandwidth=bandwidth,
            propagation_delay=propagation_delay
        )
        self.connections.append(connection)
        return connection

    def neighbor(self, node: int, link: int) -> int:
        """Address of the node at the far end of a node's link."""
        for connection in self.connections:
            if connection.a == Endpoint(node, link):
                return connection.b.node
            if connection.b == Endpoint(node, link):
                return connection.a.node
        raise KeyError(f"Node {node} has no link {link}")

    def link_infos(self, node: int) -> List[LinkInfo]:
        """Link table entries of a node, ordered by link number."""
        infos = []
        for connection in self.connections:
            for endpoint in (connection.a, connection.b):
                if endpoint.node == node:
                    infos.append(LinkInfo(
                        link=endpoint.link,
                        bandwidth=connection.bandwidth,
                        propagation_delay=connection.propagation_delay
                    ))
        return sorted(infos, key=lambda info: info.link)

    def build_links(
        self,
        channel_factory: Optional[Callable[[int], GilbertElliottChannel]] = None
    ) -> List[PhysicalLink]:
        """
        Create the physical links.

        Args:
            channel_factory: Called with a seed offset for every link
                direction; defaults to error-free channels

        Returns:
            One PhysicalLink per connection
        """
        links = []
        for index, connection in enumerate(self.connections):
            if channel_factory is not None:
                forward = channel_factory(2 * index)
                reverse = channel_factory(2 * index + 1)
            else:
                forward = reverse = None
            links.append(PhysicalLink(
                a=connection.a,
                b=connection.b,
                bandwidth=connection.bandwidth,
                propagation_delay=connection.propagation_delay,
                channel_a_to_b=forward,
                channel_b_to_a=reverse
            ))
        return links

    @classmethod
    def line(cls, n: int, first_address: int = 0, **link_kwargs) -> 'Topology':
        """
        Chain of ``n`` nodes. End nodes have one link, inner nodes two:
        link 1 towards the lower address, link 2 towards the higher one.
        """
        if n < 2:
            raise ValueError("A line needs at least 2 nodes")
        topology = cls()
        addresses = list(range(first_address, first_address + n))
        for address in addresses:
            topology.add_node(address)
        for left, right in zip(addresses, addresses[1:]):
            topology.connect(left, right, **link_kwargs)
        return topology

    @classmethod
    def ring(cls, n: int, first_address: int = 0, **link_kwargs) -> 'Topology':
        """
        Ring of ``n`` nodes. Every node has two links. The first node's
        link 1 leads to the next address and link 2 to the last one;
        every other node's link 1 leads to the previous address and
        link 2 to the next one.
        """
        if n < 3:
            raise ValueError("A ring needs at least 3 nodes")
        topology = cls()
        addresses = list(range(first_address, first_address + n))
        for address in addresses:
            topology.add_node(address)
        for i, address in enumerate(addresses):
            topology.connect(address, addresses[(i + 1) % n], **link_kwargs)
        return topology

    def __len__(self) -> int:
        return len(self.nodes)
