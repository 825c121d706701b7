"""
Link Layer Node Reactor

This module implements the per-node data-link entity. A DataLinkNode owns
the ARQ state machine, the path discovery engine and the forwarder of one
node, and processes tagged events one at a time:

- APPLICATION_READY: a new message may be read from the application
- FRAME_ARRIVED: bytes arrived on one of the node's links
- TIMER_EXPIRED: a timer started through the node services fired

Everything outside the node (links, timers, the application) is reached
through the NodeServices interface.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Hashable, List, Optional, Tuple
import sys
sys.path.insert(0, '..')

from config import (
    ECHO_DELAY, ECHO_MAX_ATTEMPTS, ECHO_RETRY_INTERVAL,
    MAX_HOP_COUNT, TIMEOUT_MULTIPLIER
)
from arqnet.arq.frame import (
    ChecksumError, Frame, FrameKind, MalformedFrameError, decode
)
from arqnet.arq.state_machine import AckPolicy, SenderBusyError, StopAndWaitARQ
from arqnet.arq.timer import RetransmissionTimer
from arqnet.routing.discovery import PathDiscoveryEngine
from arqnet.routing.forwarder import Forwarder, LinkInfo, LinkTable
from arqnet.utils.logger import SimulationLogger, get_logger


DISCOVERY_TIMER_KEY = 'find-path'


class EventType(Enum):
    """Types of node events."""
    APPLICATION_READY = 0
    FRAME_ARRIVED = 1
    TIMER_EXPIRED = 2


@dataclass
class NodeEvent:
    """
    Event delivered to a node.

    Attributes:
        event_type: Kind of event
        link: Arrival link (FRAME_ARRIVED)
        data: Received bytes (FRAME_ARRIVED)
        key: Key of the expired timer (TIMER_EXPIRED)
    """
    event_type: EventType
    link: Optional[int] = None
    data: bytes = b''
    key: Optional[Hashable] = None

    @classmethod
    def application_ready(cls) -> 'NodeEvent':
        return cls(EventType.APPLICATION_READY)

    @classmethod
    def frame_arrived(cls, link: int, data: bytes) -> 'NodeEvent':
        return cls(EventType.FRAME_ARRIVED, link=link, data=data)

    @classmethod
    def timer_expired(cls, key: Hashable) -> 'NodeEvent':
        return cls(EventType.TIMER_EXPIRED, key=key)


class NodeServices:
    """
    Services a node needs from its environment.

    Subclasses connect a node to a simulator or a real network. Timer
    durations are in seconds.
    """

    def write_frame(self, link: int, data: bytes) -> int:
        """Transmit bytes on a link; returns the number of bytes written."""
        raise NotImplementedError

    def start_timer(self, key: Hashable, duration: float) -> Any:
        """Start a single-shot timer; returns a handle for stop_timer."""
        raise NotImplementedError

    def stop_timer(self, handle: Any):
        """Stop a timer; stopping a fired or unknown timer does nothing."""
        raise NotImplementedError

    def deliver(self, source: int, payload: bytes):
        """Hand a received payload to the application."""
        raise NotImplementedError

    def read_application(self) -> Tuple[int, bytes]:
        """Take the next (destination, payload) message from the application."""
        raise NotImplementedError

    def enable_application(self):
        """Allow the application to offer new messages."""
        raise NotImplementedError

    def disable_application(self):
        """Stop the application from offering new messages."""
        raise NotImplementedError


@dataclass
class NodeConfig:
    """Configuration for one node."""
    address: int
    links: List[LinkInfo] = field(default_factory=list)

    # Protocol options
    ack_policy: AckPolicy = AckPolicy.MATCH_SEQUENCE
    timeout_multiplier: float = TIMEOUT_MULTIPLIER
    max_hop_count: int = MAX_HOP_COUNT
    validate_on_relay: FrozenSet[FrameKind] = Forwarder.DEFAULT_VALIDATE_KINDS

    # Echo discovery
    echo_discovery: bool = False
    echo_delay: float = ECHO_DELAY
    echo_retry_interval: float = ECHO_RETRY_INTERVAL
    echo_max_attempts: int = ECHO_MAX_ATTEMPTS

    def __post_init__(self):
        if not self.links:
            raise ValueError(f"Node {self.address} has no links")
        if self.echo_max_attempts < 1:
            raise ValueError("echo_max_attempts must be at least 1")


class DataLinkNode:
    """
    Data-link entity of one node.

    Attributes:
        config: Node configuration
        services: Environment services
        link_table: The node's links
        discovery: Path discovery engine
        forwarder: Relay for frames addressed elsewhere
        arq: Stop-and-wait state machine
    """

    def __init__(
        self,
        config: NodeConfig,
        services: NodeServices,
        logger: Optional[SimulationLogger] = None
    ):
        """
        Initialize node.

        Args:
            config: Node configuration
            services: Environment services
            logger: Logger (defaults to the global logger)
        """
        self.config = config
        self.services = services
        self.logger = logger or get_logger()
        self.address = config.address

        self.link_table = LinkTable(config.links)
        self.discovery = PathDiscoveryEngine(self.address, logger=self.logger)
        self.forwarder = Forwarder(
            address=self.address,
            link_table=self.link_table,
            write_frame=services.write_frame,
            validate_kinds=config.validate_on_relay,
            max_hop_count=config.max_hop_count,
            logger=self.logger
        )
        self.timer = RetransmissionTimer(
            link_table=self.link_table,
            start_timer=services.start_timer,
            stop_timer=services.stop_timer,
            multiplier=config.timeout_multiplier
        )
        self.arq = StopAndWaitARQ(
            address=self.address,
            link_table=self.link_table,
            discovery=self.discovery,
            timer=self.timer,
            write_frame=services.write_frame,
            deliver=services.deliver,
            ack_policy=config.ack_policy,
            on_application_enabled=services.enable_application,
            on_application_disabled=services.disable_application,
            logger=self.logger
        )

        self._discovery_timer = None

        # Statistics
        self.frames_received = 0
        self.checksum_errors = 0
        self.malformed_frames = 0
        self.events_processed = 0

    # ------------------------------------------------------------------
    # Lifecycle and dispatch
    # ------------------------------------------------------------------

    def boot(self):
        """Start the node: enable the application and schedule echo discovery."""
        self.services.enable_application()
        if self.config.echo_discovery:
            self._discovery_timer = self.services.start_timer(
                DISCOVERY_TIMER_KEY, self.config.echo_delay
            )

    def dispatch(self, event: NodeEvent):
        """Route one event to its handler."""
        self.events_processed += 1
        if event.event_type == EventType.APPLICATION_READY:
            self.on_application_ready()
        elif event.event_type == EventType.FRAME_ARRIVED:
            self.on_frame_arrived(event.link, event.data)
        elif event.event_type == EventType.TIMER_EXPIRED:
            self.on_timer_expired(event.key)
        else:
            raise ValueError(f"Unknown event type: {event.event_type}")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def on_application_ready(self) -> List[int]:
        """
        Read the next application message and transmit it.

        Returns:
            Links the DATA frame went out on

        Raises:
            SenderBusyError: A frame is still awaiting its ACK
        """
        if not self.arq.can_send():
            raise SenderBusyError(
                f"node {self.address} is waiting for an acknowledgment"
            )
        dest, payload = self.services.read_application()
        return self.arq.send(dest, payload)

    def on_frame_arrived(self, link: int, data: bytes):
        """
        Process bytes that arrived on a link.

        Frames for other nodes are handed to the forwarder. Frames for
        this node are checksum-verified, then dispatched by kind.
        Corrupted or malformed frames are dropped.
        """
        self.frames_received += 1

        try:
            header = Frame.deserialize(data, verify=False)
        except MalformedFrameError as exc:
            self.malformed_frames += 1
            self.logger.warning(
                f"Node {self.address}: malformed frame on link {link} dropped ({exc})",
                "RX"
            )
            return

        if header.dest != self.address:
            self.forwarder.forward(header, link, raw=data)
            return

        try:
            frame = decode(data)
        except ChecksumError:
            self.checksum_errors += 1
            self.logger.checksum_failure(self.address, link)
            return

        if frame.is_data:
            self.arq.handle_data(frame, link)
        elif frame.is_ack:
            self.arq.handle_ack(frame, link)
        elif frame.src == self.address:
            self._absorb_echo(frame, link)
        else:
            self.malformed_frames += 1
            self.logger.warning(
                f"Node {self.address}: FIND_PATH from {frame.src} addressed here dropped",
                "RX"
            )

    def on_timer_expired(self, key: Hashable):
        """Handle expiry of a discovery or retransmission timer."""
        if key == DISCOVERY_TIMER_KEY:
            self._discovery_timer = None
            self._send_find_path()
        else:
            self.arq.handle_timeout(key)

    # ------------------------------------------------------------------
    # Echo discovery
    # ------------------------------------------------------------------

    def _send_find_path(self):
        if self.discovery.echo_complete:
            return
        if self.discovery.echo_attempts >= self.config.echo_max_attempts:
            self.logger.warning(
                f"Node {self.address}: no echo after "
                f"{self.discovery.echo_attempts} attempts", "PATH"
            )
            return

        link = self.link_table.links[0]
        frame = self.discovery.create_find_path_frame(link)
        self.services.write_frame(link, frame.serialize())
        self.logger.debug(
            f"Node {self.address}: FIND_PATH #{self.discovery.echo_attempts} "
            f"on link {link}", "PATH"
        )

        self._discovery_timer = self.services.start_timer(
            DISCOVERY_TIMER_KEY, self.config.echo_retry_interval
        )

    def _absorb_echo(self, frame: Frame, link: int):
        resolved = self.discovery.absorb_echo(frame, link)
        if self.discovery.echo_complete and self._discovery_timer is not None:
            self.services.stop_timer(self._discovery_timer)
            self._discovery_timer = None
        self.logger.debug(
            f"Node {self.address}: echo returned on link {link}, "
            f"resolved {resolved}", "PATH"
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def describe_state(self) -> str:
        """Human-readable dump of the node's protocol state."""
        lines = [f"=== Node {self.address} ===",
                 f"Links: {self.link_table.links}",
                 self.arq.describe(),
                 self.discovery.describe(),
                 "Learned routes:"]
        for source, route in sorted(self.forwarder.learned.items()):
            lines.append(f"  SRC[{source}] link={route.arrival_link} "
                         f"hops={route.hop_count}")
        stats = self.get_statistics()
        lines.append(
            f"Frames received={stats['frames_received']} "
            f"checksum_errors={stats['checksum_errors']} "
            f"relayed={stats['frames_relayed']}"
        )
        return "\n".join(lines)

    def get_statistics(self) -> dict:
        """Get node statistics."""
        return {
            'address': self.address,
            'frames_received': self.frames_received,
            'checksum_errors': self.checksum_errors,
            'malformed_frames': self.malformed_frames,
            'events_processed': self.events_processed,
            **self.arq.get_statistics(),
            **self.forwarder.get_statistics()
        }
