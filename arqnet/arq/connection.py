"""
Connection State for Stop-and-Wait ARQ

Each node keeps one Connection per peer address. The connection owns the
alternating sequence bits, the copy of the last unacknowledged frame and
the handle of its retransmission timer.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Optional

from .frame import Frame


class SequenceBit(IntEnum):
    """One-bit alternating sequence number."""
    ZERO = 0
    ONE = 1

    def flipped(self) -> 'SequenceBit':
        return SequenceBit(1 - self)


class ConnectionState(Enum):
    """Sender-side state of a connection."""
    IDLE = 0
    AWAITING_ACK = 1


@dataclass
class Connection:
    """
    Per-peer connection record.

    Attributes:
        peer: Peer node address
        state: IDLE or AWAITING_ACK
        next_seq: Sequence bit for the next outbound DATA frame
        ack_expected: Sequence bit the outstanding frame will be acked with
        frame_expected: Sequence bit of the next new inbound DATA frame
        last_frame: The last DATA frame sent to the peer
        last_transmissions: Encoded bytes of that frame per link
        timer_handle: Handle of the running retransmission timer
        last_delivered: Payload most recently delivered from the peer
    """
    peer: int
    state: ConnectionState = ConnectionState.IDLE
    next_seq: SequenceBit = SequenceBit.ZERO
    ack_expected: SequenceBit = SequenceBit.ZERO
    frame_expected: SequenceBit = SequenceBit.ZERO
    last_frame: Optional[Frame] = None
    last_transmissions: Dict[int, bytes] = field(default_factory=dict)
    timer_handle: Optional[Any] = None
    last_delivered: Optional[bytes] = None

    # Statistics
    frames_sent: int = 0
    frames_acked: int = 0
    retransmissions: int = 0
    frames_delivered: int = 0
    duplicate_frames: int = 0
    stray_acks: int = 0

    @property
    def awaiting_ack(self) -> bool:
        return self.state == ConnectionState.AWAITING_ACK

    @property
    def links_in_use(self) -> List[int]:
        """Links the outstanding frame was transmitted on."""
        return sorted(self.last_transmissions)

    def describe(self) -> str:
        text = (f"peer={self.peer} state={self.state.name} "
                f"next_seq={int(self.next_seq)} ack_expected={int(self.ack_expected)} "
                f"frame_expected={int(self.frame_expected)} "
                f"sent={self.frames_sent} retx={self.retransmissions} "
                f"delivered={self.frames_delivered} dup={self.duplicate_frames}")
        if self.awaiting_ack and self.last_frame is not None:
            text += (f" outstanding=seq {int(self.last_frame.seq)}, "
                     f"{self.last_frame.total_size}B on links {self.links_in_use}")
        if self.last_delivered is not None:
            text += f" last_delivered={self.last_delivered[:16]!r}"
        return text


class ConnectionTable:
    """Connections of one node, created lazily per peer address."""

    def __init__(self):
        self._connections: Dict[int, Connection] = {}

    def get(self, peer: int) -> Connection:
        """Get the connection to a peer, creating it on first contact."""
        connection = self._connections.get(peer)
        if connection is None:
            connection = Connection(peer=peer)
            self._connections[peer] = connection
        return connection

    def find(self, peer: int) -> Optional[Connection]:
        return self._connections.get(peer)

    def awaiting(self) -> List[Connection]:
        """Connections with an outstanding frame."""
        return [c for c in self._connections.values() if c.awaiting_ack]

    def __contains__(self, peer: int) -> bool:
        return peer in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(sorted(self._connections.values(), key=lambda c: c.peer))

    def __len__(self) -> int:
        return len(self._connections)
