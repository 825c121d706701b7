"""
Stop-and-Wait ARQ State Machine

This module implements the alternating-bit protocol core: one frame in
flight per node, retransmission on timeout, duplicate suppression at the
receiver and acknowledgment generation carrying path discovery state.
"""

from enum import Enum
from typing import Callable, Hashable, List, Optional
import sys
sys.path.insert(0, '..')

from config import MAX_PAYLOAD_SIZE
from .frame import Frame
from .connection import Connection, ConnectionState, ConnectionTable
from .timer import RetransmissionTimer


class ARQError(Exception):
    """Base class for errors raised at the application boundary."""


class SenderBusyError(ARQError):
    """A message was submitted while the application is disabled."""


class PayloadTooLargeError(ARQError, ValueError):
    """A message exceeds the maximum payload size."""


class AckPolicy(Enum):
    """
    How an ACK is matched against the outstanding frame.

    MATCH_SEQUENCE only accepts an ACK whose number equals the expected
    ack bit. ACCEPT_ANY accepts any ACK while a frame is outstanding; a
    late ACK for an earlier frame can then complete the current one.
    """
    MATCH_SEQUENCE = 0
    ACCEPT_ANY = 1


class StopAndWaitARQ:
    """
    Stop-and-Wait ARQ for one node.

    Implements:
    - Alternating-bit sequencing per connection
    - Application back-pressure while a frame is outstanding
    - Flooding or shortest-path link selection via path discovery
    - Duplicate suppression and unconditional acknowledgment

    Attributes:
        address: This node's address
        link_table: This node's links
        discovery: Path discovery engine
        timer: Retransmission timer logic
        connections: Per-peer connection records
        application_enabled: Whether new messages are accepted
    """

    def __init__(
        self,
        address: int,
        link_table,
        discovery,
        timer: RetransmissionTimer,
        write_frame: Callable[[int, bytes], int],
        deliver: Callable[[int, bytes], None],
        ack_policy: AckPolicy = AckPolicy.MATCH_SEQUENCE,
        on_application_enabled: Optional[Callable[[], None]] = None,
        on_application_disabled: Optional[Callable[[], None]] = None,
        logger=None
    ):
        """
        Initialize the state machine.

        Args:
            address: This node's address
            link_table: LinkTable of the node
            discovery: PathDiscoveryEngine of the node
            timer: RetransmissionTimer of the node
            write_frame: Link write service write(link, data)
            deliver: Upward delivery deliver(source, payload)
            ack_policy: ACK matching policy
            on_application_enabled: Callback when sends are re-enabled
            on_application_disabled: Callback when sends are paused
            logger: SimulationLogger
        """
        self.address = address
        self.link_table = link_table
        self.discovery = discovery
        self.timer = timer
        self.write_frame = write_frame
        self.deliver = deliver
        self.ack_policy = ack_policy
        self.on_application_enabled = on_application_enabled
        self.on_application_disabled = on_application_disabled
        self.logger = logger

        self.connections = ConnectionTable()
        self.application_enabled = True

        # Statistics
        self.messages_sent = 0
        self.frames_transmitted = 0
        self.acks_sent = 0
        self.acks_received = 0
        self.stray_acks = 0
        self.timeouts = 0

    # ------------------------------------------------------------------
    # Send path
    # ------------------------------------------------------------------

    def can_send(self) -> bool:
        """Check if the application may submit a new message."""
        return self.application_enabled

    def send(self, dest: int, payload: bytes) -> List[int]:
        """
        Transmit a new application message.

        Args:
            dest: Destination address
            payload: Message bytes

        Returns:
            Links the DATA frame was transmitted on

        Raises:
            PayloadTooLargeError: Payload exceeds MAX_PAYLOAD_SIZE
            SenderBusyError: A frame is still awaiting its ACK
        """
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError("payload must be bytes")
        if len(payload) > MAX_PAYLOAD_SIZE:
            raise PayloadTooLargeError(
                f"payload of {len(payload)} bytes exceeds {MAX_PAYLOAD_SIZE}"
            )
        if dest == self.address:
            raise ValueError("cannot send a message to this node itself")
        if not self.application_enabled:
            raise SenderBusyError(
                f"node {self.address} is waiting for an acknowledgment"
            )

        connection = self.connections.get(dest)
        links = self.discovery.select_links(dest, self.link_table.links)
        seq = connection.next_seq

        transmissions = {}
        frame = None
        for link in links:
            frame = Frame.create_data_frame(
                src=self.address,
                dest=dest,
                seq=seq,
                payload=bytes(payload),
                origin_link=link
            )
            data = frame.serialize()
            self.write_frame(link, data)
            transmissions[link] = data

        connection.last_frame = frame
        connection.last_transmissions = transmissions
        connection.next_seq = seq.flipped()
        connection.state = ConnectionState.AWAITING_ACK
        connection.frames_sent += 1
        self.messages_sent += 1
        self.frames_transmitted += len(transmissions)

        size = max(len(data) for data in transmissions.values())
        self.timer.on_transmit(connection, size, links)
        self._disable_application()

        if self.logger:
            self.logger.frame_sent(self.address, frame, links)
        return links

    # ------------------------------------------------------------------
    # Receive path
    # ------------------------------------------------------------------

    def handle_ack(self, frame: Frame, link: int) -> bool:
        """
        Process an ACK addressed to this node.

        Args:
            frame: Decoded ACK frame
            link: Arrival link

        Returns:
            True if the ACK completed the outstanding frame
        """
        self.acks_received += 1
        self.discovery.record_ack(frame)

        connection = self.connections.find(frame.src)
        accepted = connection is not None and self._accepts(connection, frame)

        if self.logger:
            self.logger.ack_received(self.address, frame, accepted)

        if not accepted:
            if connection is not None:
                connection.stray_acks += 1
            self.stray_acks += 1
            return False

        self.timer.on_ack_matched(connection)
        connection.ack_expected = connection.ack_expected.flipped()
        connection.state = ConnectionState.IDLE
        connection.frames_acked += 1
        connection.last_transmissions = {}

        if not self.connections.awaiting():
            self._enable_application()
        return True

    def _accepts(self, connection: Connection, frame: Frame) -> bool:
        if connection.state != ConnectionState.AWAITING_ACK:
            return False
        if self.ack_policy == AckPolicy.ACCEPT_ANY:
            return True
        return frame.ack == connection.ack_expected

    def handle_data(self, frame: Frame, link: int) -> Frame:
        """
        Process a DATA frame addressed to this node.

        New frames are delivered upward; duplicates are not. Either way
        an ACK goes back on the arrival link.

        Args:
            frame: Decoded DATA frame
            link: Arrival link

        Returns:
            The ACK frame that was sent
        """
        connection = self.connections.get(frame.src)
        duplicate = frame.seq != connection.frame_expected

        if self.logger:
            self.logger.frame_received(self.address, frame, link, duplicate)

        if duplicate:
            connection.duplicate_frames += 1
        else:
            self.deliver(frame.src, frame.payload)
            connection.frame_expected = connection.frame_expected.flipped()
            connection.last_delivered = frame.payload
            connection.frames_delivered += 1

        chosen_link = self.discovery.record_data(frame)
        ack = Frame.create_ack_frame(
            src=self.address,
            dest=frame.src,
            ack=frame.seq,
            hop_count=min(frame.hop_count + 1, Frame.MAX_HOP_FIELD),
            origin_link=frame.origin_link,
            chosen_link=chosen_link
        )
        self.write_frame(link, ack.serialize())
        self.acks_sent += 1

        if self.logger:
            self.logger.ack_sent(self.address, ack, link)
        return ack

    def handle_timeout(self, peer: Hashable) -> int:
        """
        Retransmit the outstanding frame for a peer after its timer fired.

        Returns:
            Number of copies re-sent (0 for a stale expiry)
        """
        connection = self.connections.find(peer)
        if connection is None or connection.state != ConnectionState.AWAITING_ACK:
            return 0

        self.timeouts += 1
        if self.logger:
            self.logger.timeout(self.address, peer, connection.retransmissions + 1)

        copies = self.timer.on_expiry(connection, self.write_frame)
        self.frames_transmitted += copies

        if self.logger:
            self.logger.retransmit(self.address, peer, copies)
        return copies

    # ------------------------------------------------------------------
    # Application back-pressure
    # ------------------------------------------------------------------

    def _enable_application(self):
        if self.application_enabled:
            return
        self.application_enabled = True
        if self.logger:
            self.logger.application_state(self.address, True)
        if self.on_application_enabled:
            self.on_application_enabled()

    def _disable_application(self):
        if not self.application_enabled:
            return
        self.application_enabled = False
        if self.logger:
            self.logger.application_state(self.address, False)
        if self.on_application_disabled:
            self.on_application_disabled()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def describe(self) -> str:
        lines = [f"Application: {'enabled' if self.application_enabled else 'disabled'}"]
        for connection in self.connections:
            lines.append(f"  {connection.describe()}")
        return "\n".join(lines)

    def get_statistics(self) -> dict:
        """Get state machine statistics."""
        return {
            'messages_sent': self.messages_sent,
            'frames_transmitted': self.frames_transmitted,
            'retransmissions': sum(c.retransmissions for c in self.connections),
            'acks_sent': self.acks_sent,
            'acks_received': self.acks_received,
            'stray_acks': self.stray_acks,
            'timeouts': self.timeouts,
            'frames_delivered': sum(c.frames_delivered for c in self.connections),
            'duplicate_frames': sum(c.duplicate_frames for c in self.connections)
        }
