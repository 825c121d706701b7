"""
Network Simulator - Event-Driven Multi-Node Simulation

This module implements the discrete-event simulation engine that wires
DataLinkNodes to physical links, node-local timers and applications, and
runs message exchanges until every message has been delivered.
"""

from typing import Dict, Hashable, List, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum
import heapq
import itertools
import time
import sys
import os

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from config import (
    APPLICATION_INTERVAL, DEFAULT_MESSAGE_COUNT, MAX_SIMULATION_TIME,
    GOOD_STATE_BER, BAD_STATE_BER, P_GOOD_TO_BAD, P_BAD_TO_GOOD,
    DEFAULT_LOSS_PROBABILITY, TIMEOUT_MULTIPLIER, MAX_HOP_COUNT
)
from arqnet.arq.frame import Frame, MalformedFrameError
from arqnet.arq.state_machine import AckPolicy
from arqnet.arq.timer import TimerManager
from arqnet.channel.gilbert_elliot import GilbertElliottChannel
from arqnet.layers.application_layer import MessageSink, MessageSource
from arqnet.layers.link_layer import DataLinkNode, NodeConfig, NodeEvent, NodeServices
from arqnet.layers.physical_layer import Endpoint, PhysicalLink
from arqnet.utils.logger import LogLevel, SimulationLogger
from arqnet.utils.metrics import MetricsCollector
from simulation.topology import Topology


class EventType(Enum):
    """Types of simulation events."""
    FRAME_ARRIVAL = 0      # Frame reaches the far end of a link
    TIMER_CHECK = 1        # A node timer may have expired
    APPLICATION_READY = 2  # A node's application may offer a message


@dataclass(order=True)
class SimEvent:
    """Simulation event; ties are broken in scheduling order."""
    time: float
    order: int
    event_type: EventType = field(compare=False)
    node: int = field(compare=False)
    data: dict = field(compare=False, default_factory=dict)


@dataclass
class SimulatorConfig:
    """Configuration for the simulator."""
    # Traffic
    message_count: int = DEFAULT_MESSAGE_COUNT  # Per sending node
    senders: Optional[List[int]] = None  # None = every node sends
    min_message_size: int = 16
    max_message_size: int = 128
    application_interval: float = APPLICATION_INTERVAL

    # Channel
    loss_probability: float = DEFAULT_LOSS_PROBABILITY
    burst_errors: bool = False
    good_state_ber: float = GOOD_STATE_BER
    bad_state_ber: float = BAD_STATE_BER
    p_good_to_bad: float = P_GOOD_TO_BAD
    p_bad_to_good: float = P_BAD_TO_GOOD

    # Protocol options
    ack_policy: AckPolicy = AckPolicy.MATCH_SEQUENCE
    timeout_multiplier: float = TIMEOUT_MULTIPLIER
    max_hop_count: int = MAX_HOP_COUNT
    echo_discovery: bool = False

    # Simulation parameters
    seed: int = 42
    max_time: float = MAX_SIMULATION_TIME
    log_level: int = LogLevel.WARNING

    def make_channel(self, offset: int) -> GilbertElliottChannel:
        """Channel for one link direction, seeded from the run seed."""
        seed = self.seed + 1000 + offset
        if not self.burst_errors:
            return GilbertElliottChannel.error_free(self.loss_probability, seed=seed)
        return GilbertElliottChannel(
            pg=self.good_state_ber,
            pb=self.bad_state_ber,
            p_gb=self.p_good_to_bad,
            p_bg=self.p_bad_to_good,
            loss_probability=self.loss_probability,
            seed=seed
        )


class SimulatedServices(NodeServices):
    """NodeServices of one node, backed by the simulator."""

    def __init__(self, simulator: 'NetworkSimulator', address: int):
        self.simulator = simulator
        self.address = address

    def write_frame(self, link: int, data: bytes) -> int:
        return self.simulator.transmit(self.address, link, data)

    def start_timer(self, key: Hashable, duration: float):
        return self.simulator.start_timer(self.address, key, duration)

    def stop_timer(self, handle):
        self.simulator.timers[self.address].stop_timer(handle)

    def deliver(self, source: int, payload: bytes):
        self.simulator.deliver(source, self.address, payload)

    def read_application(self) -> Tuple[int, bytes]:
        return self.simulator.read_application(self.address)

    def enable_application(self):
        self.simulator.sources[self.address].enable()
        self.simulator.schedule_application(self.address)

    def disable_application(self):
        self.simulator.sources[self.address].disable()


class NetworkSimulator:
    """
    Event-Driven Network Simulator.

    Every node runs a DataLinkNode whose services are provided by the
    simulator: frames travel over PhysicalLinks, timers live in a
    per-node TimerManager and applications are MessageSources.
    """

    def __init__(
        self,
        topology: Topology,
        config: Optional[SimulatorConfig] = None,
        logger: Optional[SimulationLogger] = None
    ):
        """Initialize simulator."""
        self.topology = topology
        self.config = config or SimulatorConfig()

        # Create logger
        self.logger = logger or SimulationLogger(
            name="Sim",
            level=self.config.log_level
        )

        self.rng = np.random.default_rng(self.config.seed)
        self.metrics = MetricsCollector()
        self.sink = MessageSink()

        # Simulation state
        self.current_time = 0.0
        self.event_queue: List[SimEvent] = []
        self._order = itertools.count()

        # Physical links by endpoint
        self.links: List[PhysicalLink] = topology.build_links(self.config.make_channel)
        self.link_map: Dict[Endpoint, PhysicalLink] = {}
        for link in self.links:
            self.link_map[link.a] = link
            self.link_map[link.b] = link

        # Per-node components
        self.timers: Dict[int, TimerManager] = {}
        self.sources: Dict[int, MessageSource] = {}
        self.nodes: Dict[int, DataLinkNode] = {}
        self._application_scheduled: Dict[int, bool] = {}

        senders = self.config.senders
        if senders is None:
            senders = topology.nodes
        for address in topology.nodes:
            self.timers[address] = TimerManager(clock=lambda: self.current_time)
            count = self.config.message_count if address in senders else 0
            self.sources[address] = MessageSource.generate(
                address, topology.nodes, count, rng=self.rng,
                min_size=self.config.min_message_size,
                max_size=self.config.max_message_size
            )
            self._application_scheduled[address] = False
            self.nodes[address] = DataLinkNode(
                NodeConfig(
                    address=address,
                    links=topology.link_infos(address),
                    ack_policy=self.config.ack_policy,
                    timeout_multiplier=self.config.timeout_multiplier,
                    max_hop_count=self.config.max_hop_count,
                    echo_discovery=self.config.echo_discovery
                ),
                SimulatedServices(self, address),
                logger=self.logger
            )

    # ------------------------------------------------------------------
    # Services used by the nodes
    # ------------------------------------------------------------------

    def _schedule_event(self, time: float, event_type: EventType, node: int,
                        data: dict = None):
        """Schedule an event."""
        event = SimEvent(time=time, order=next(self._order),
                         event_type=event_type, node=node, data=data or {})
        heapq.heappush(self.event_queue, event)

    def transmit(self, node: int, link: int, data: bytes) -> int:
        """Write frame bytes on a node's link."""
        physical = self.link_map.get(Endpoint(node, link))
        if physical is None:
            raise KeyError(f"Node {node} has no link {link}")

        try:
            kind = Frame.deserialize(data, verify=False).kind.name
        except MalformedFrameError:
            kind = 'UNKNOWN'
        self.metrics.record_frame_transmitted(kind, len(data))

        event = physical.transmit(node, data, self.current_time)
        if event is None:
            self.metrics.record_frame_lost()
            self.logger.debug(f"Node {node}: frame lost on link {link}", "CHANNEL")
            return len(data)
        if event.corrupted:
            self.metrics.record_frame_corrupted()

        self._schedule_event(
            event.arrival_time,
            EventType.FRAME_ARRIVAL,
            event.endpoint.node,
            {'link': event.endpoint.link, 'data': event.data}
        )
        return len(data)

    def start_timer(self, node: int, key: Hashable, duration: float):
        handle = self.timers[node].start_timer(key, duration)
        self._schedule_event(self.current_time + duration, EventType.TIMER_CHECK, node)
        return handle

    def deliver(self, source: int, dest: int, payload: bytes):
        self.sink.record(self.current_time, source, dest, payload)
        self.metrics.record_message_delivered(self.current_time, source, dest, len(payload))

    def read_application(self, node: int) -> Tuple[int, bytes]:
        dest, payload = self.sources[node].next_message()
        self.metrics.record_message_submitted(self.current_time, node, dest, len(payload))
        return dest, payload

    def schedule_application(self, node: int):
        """Schedule the node's next message if it has one."""
        if self._application_scheduled[node] or not self.sources[node].ready:
            return
        self._application_scheduled[node] = True
        self._schedule_event(
            self.current_time + self.config.application_interval,
            EventType.APPLICATION_READY,
            node
        )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _handle_application_ready(self, node: int):
        self._application_scheduled[node] = False
        dll = self.nodes[node]
        if self.sources[node].ready and dll.arq.can_send():
            dll.dispatch(NodeEvent.application_ready())

    def _handle_frame_arrival(self, node: int, data: dict):
        self.nodes[node].dispatch(NodeEvent.frame_arrived(data['link'], data['data']))

    def _handle_timer_check(self, node: int):
        for key in self.timers[node].check_timeouts(self.current_time):
            self.nodes[node].dispatch(NodeEvent.timer_expired(key))

    def _is_complete(self) -> bool:
        """Check if every message has been sent, delivered and acknowledged."""
        for address, source in self.sources.items():
            if source.has_pending:
                return False
            if self.nodes[address].arq.connections.awaiting():
                return False
        return self.metrics.messages_delivered >= self.metrics.messages_submitted

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> Dict:
        """Run the simulation."""
        self.logger.set_sim_time(0.0)
        self.logger.simulation_start({
            'nodes': len(self.topology),
            'messages': sum(len(s.queue) for s in self.sources.values()),
            'loss': self.config.loss_probability,
            'seed': self.config.seed
        })

        self.metrics.reset()
        self.metrics.start(0.0)
        sim_start_real = time.time()

        for node in self.nodes.values():
            node.boot()

        max_iterations = 10_000_000
        iterations = 0

        while (self.event_queue and
               not self._is_complete() and
               iterations < max_iterations):

            event = heapq.heappop(self.event_queue)
            if event.time > self.config.max_time:
                break
            self.current_time = event.time
            self.logger.set_sim_time(self.current_time)

            if event.event_type == EventType.FRAME_ARRIVAL:
                self._handle_frame_arrival(event.node, event.data)
            elif event.event_type == EventType.TIMER_CHECK:
                self._handle_timer_check(event.node)
            elif event.event_type == EventType.APPLICATION_READY:
                self._handle_application_ready(event.node)

            iterations += 1

        # Finish
        self.metrics.finish(self.current_time)
        node_stats = {}
        for address, node in self.nodes.items():
            stats = node.get_statistics()
            node_stats[address] = stats
            self.metrics.record_node_statistics(stats)
        sim_end_real = time.time()

        valid, verify_details = self.sink.verify(list(self.sources.values()))
        metrics_summary = self.metrics.get_summary()
        self.logger.simulation_end(metrics_summary)

        return {
            'config': {
                'nodes': len(self.topology),
                'message_count': self.config.message_count,
                'loss_probability': self.config.loss_probability,
                'burst_errors': self.config.burst_errors,
                'ack_policy': self.config.ack_policy.name,
                'echo_discovery': self.config.echo_discovery,
                'seed': self.config.seed
            },
            'metrics': metrics_summary,
            'verification': {'valid': valid, **verify_details},
            'nodes': node_stats,
            'paths': self.get_path_tables(),
            'real_time': sim_end_real - sim_start_real,
            'simulation_time': self.current_time,
            'complete': self._is_complete()
        }

    def get_path_tables(self) -> Dict[int, Dict[int, int]]:
        """Discovered link per destination, for every node."""
        tables = {}
        for address, node in self.nodes.items():
            tables[address] = {
                dest: entry.chosen_link
                for dest, entry in sorted(node.discovery.sender_table.entries.items())
                if entry.discovered
            }
        return tables

    def describe_state(self) -> str:
        """State dump of every node."""
        return "\n\n".join(self.nodes[a].describe_state() for a in self.topology.nodes)


if __name__ == "__main__":
    print("=" * 60)
    print("SIMULATOR TEST")
    print("=" * 60)

    config = SimulatorConfig(message_count=10, loss_probability=0.05, seed=42,
                             log_level=LogLevel.INFO)
    sim = NetworkSimulator(Topology.ring(6), config)
    results = sim.run()

    print(f"\nTransfer:")
    print(f"  Complete: {results['complete']}")
    print(f"  Data valid: {results['verification']['valid']}")
    print(f"  Simulation time: {results['simulation_time']:.4f} s")

    metrics = results['metrics']
    print(f"\nMetrics:")
    print(f"  Delivered: {metrics['messages_delivered']}/{metrics['messages_submitted']}")
    print(f"  Goodput: {metrics['goodput']:.2f} B/s")
    print(f"  Retransmissions: {metrics['retransmissions']}")
    print(f"  Mean latency: {metrics['latency']['mean'] * 1000:.2f} ms")
    print(f"\nPaths: {results['paths']}")
