"""
Frame Structure for Stop-and-Wait ARQ with Path Discovery

This module defines the wire frame used on every link, including the
alternating-bit sequence/ack markers, hop-count metadata for path
discovery, the 16-bit CRC-CCITT integrity checksum and serialization.
"""

import binascii
import struct
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple
import sys
sys.path.insert(0, '..')
from config import MAX_PAYLOAD_SIZE


NO_SEQUENCE = -1
NO_LINK = -1


class FrameError(Exception):
    """Raised when received bytes cannot be accepted as a frame."""


class ChecksumError(FrameError):
    """Stored checksum does not match the recomputed one."""

    def __init__(self, stored: int, computed: int):
        super().__init__(
            f"checksum mismatch (stored=0x{stored:04x}, computed=0x{computed:04x})"
        )
        self.stored = stored
        self.computed = computed


class MalformedFrameError(FrameError):
    """Bytes are truncated or carry inconsistent header fields."""


class FrameKind(Enum):
    """Frame kind enumeration."""
    DATA = 0x01
    ACK = 0x02
    FIND_PATH = 0x03


@dataclass
class Frame:
    """
    Link Layer Frame Structure.

    Frame Header Layout (20 bytes, network byte order):
        - Source address: 4 bytes
        - Destination address: 4 bytes
        - Payload length: 2 bytes
        - Checksum: 2 bytes (CRC-CCITT, computed with this field zeroed)
        - Kind: 1 byte
        - Sequence: 1 byte signed (0/1 for DATA, -1 otherwise)
        - Ack: 1 byte signed (0/1 for ACK, -1 otherwise)
        - Hop count: 1 byte
        - Origin link: 1 byte signed (link used by the source, -1 none)
        - Chosen link: 1 byte signed (shortest-path link, -1 none)
        - Flags: 1 byte
        - Visited count: 1 byte

    The header is followed by ``visited count`` entries of
    (address: 4 bytes, hop count: 1 byte) and then the payload.

    Attributes:
        kind: Type of frame (DATA, ACK, FIND_PATH)
        src: Source node address
        dest: Destination node address
        seq: Sequence bit, or NO_SEQUENCE
        ack: Acknowledged sequence bit, or NO_SEQUENCE
        hop_count: Number of relays the frame has passed through
        origin_link: Link number on which the source sent this copy
        chosen_link: Shortest-path link selected by the receiver
        flags: Frame flags
        visited: Hosts a FIND_PATH frame has passed, with their hop counts
        payload: Application payload
        checksum: Checksum as last serialized or received
    """

    kind: FrameKind
    src: int
    dest: int
    seq: int = NO_SEQUENCE
    ack: int = NO_SEQUENCE
    hop_count: int = 0
    origin_link: int = NO_LINK
    chosen_link: int = NO_LINK
    flags: int = 0
    visited: List[Tuple[int, int]] = field(default_factory=list)
    payload: bytes = b''
    checksum: int = 0

    # Flag bit definitions
    FLAG_PATH_FOUND = 0x01

    HEADER_FORMAT = '!IIHHBbbBbbBB'
    HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 20 bytes
    VISITED_FORMAT = '!IB'
    VISITED_SIZE = struct.calcsize(VISITED_FORMAT)  # 5 bytes
    CHECKSUM_OFFSET = 10
    MAX_HOP_FIELD = 0xFF

    def __post_init__(self):
        """Validate frame after initialization."""
        if len(self.payload) > MAX_PAYLOAD_SIZE:
            raise ValueError(
                f"Payload too large ({len(self.payload)} > {MAX_PAYLOAD_SIZE} bytes)"
            )
        if not 0 <= self.hop_count <= self.MAX_HOP_FIELD:
            raise ValueError(f"Hop count out of range: {self.hop_count}")
        if len(self.visited) > self.MAX_HOP_FIELD:
            raise ValueError("Visited host list too long")

        if self.kind == FrameKind.DATA:
            if self.seq not in (0, 1) or self.ack != NO_SEQUENCE:
                raise ValueError("DATA frames carry a valid seq and no ack")
        elif self.kind == FrameKind.ACK:
            if self.ack not in (0, 1) or self.seq != NO_SEQUENCE:
                raise ValueError("ACK frames carry a valid ack and no seq")
        elif self.seq != NO_SEQUENCE or self.ack != NO_SEQUENCE:
            raise ValueError("FIND_PATH frames carry neither seq nor ack")

    @property
    def total_size(self) -> int:
        """Get total frame size (header + visited list + payload)."""
        return (self.HEADER_SIZE + len(self.visited) * self.VISITED_SIZE
                + len(self.payload))

    @property
    def size_bits(self) -> int:
        return self.total_size * 8

    @property
    def is_data(self) -> bool:
        return self.kind == FrameKind.DATA

    @property
    def is_ack(self) -> bool:
        return self.kind == FrameKind.ACK

    @property
    def is_find_path(self) -> bool:
        return self.kind == FrameKind.FIND_PATH

    @property
    def path_found(self) -> bool:
        """Check if the frame carries a resolved shortest-path link."""
        return bool(self.flags & self.FLAG_PATH_FOUND)

    def _pack(self, checksum: int) -> bytes:
        header = struct.pack(
            self.HEADER_FORMAT,
            self.src,
            self.dest,
            len(self.payload),
            checksum,
            self.kind.value,
            self.seq,
            self.ack,
            self.hop_count,
            self.origin_link,
            self.chosen_link,
            self.flags,
            len(self.visited)
        )
        visited = b''.join(
            struct.pack(self.VISITED_FORMAT, address, hops)
            for address, hops in self.visited
        )
        return header + visited + self.payload

    def calculate_checksum(self) -> int:
        """
        Calculate the CRC-CCITT checksum over the frame with the
        checksum field zeroed.

        Returns:
            16-bit checksum
        """
        return binascii.crc_hqx(self._pack(0), 0)

    def serialize(self) -> bytes:
        """
        Serialize the frame to bytes.

        Returns:
            Serialized frame as bytes
        """
        self.checksum = self.calculate_checksum()
        return self._pack(self.checksum)

    @classmethod
    def verify(cls, data: bytes) -> bool:
        """Check only the checksum of serialized frame bytes."""
        if len(data) < cls.HEADER_SIZE:
            return False
        stored = struct.unpack_from('!H', data, cls.CHECKSUM_OFFSET)[0]
        return stored == cls._checksum_of(data)

    @classmethod
    def _checksum_of(cls, data: bytes) -> int:
        zeroed = (data[:cls.CHECKSUM_OFFSET] + b'\x00\x00'
                  + data[cls.CHECKSUM_OFFSET + 2:])
        return binascii.crc_hqx(zeroed, 0)

    @classmethod
    def deserialize(cls, data: bytes, verify: bool = True) -> 'Frame':
        """
        Deserialize bytes to a Frame object.

        Args:
            data: Serialized frame bytes
            verify: Validate the checksum before building the frame

        Returns:
            The decoded frame

        Raises:
            MalformedFrameError: Bytes cannot be parsed as a frame
            ChecksumError: Checksum mismatch (only when verify is set)
        """
        if len(data) < cls.HEADER_SIZE:
            raise MalformedFrameError(
                f"frame shorter than header ({len(data)} < {cls.HEADER_SIZE})"
            )

        (src, dest, length, stored, kind_val, seq, ack, hop_count,
         origin_link, chosen_link, flags, visited_count) = struct.unpack_from(
            cls.HEADER_FORMAT, data
        )

        payload_offset = cls.HEADER_SIZE + visited_count * cls.VISITED_SIZE
        if len(data) != payload_offset + length:
            raise MalformedFrameError(
                f"length mismatch (expected {payload_offset + length}, got {len(data)})"
            )

        if verify:
            computed = cls._checksum_of(data)
            if computed != stored:
                raise ChecksumError(stored, computed)

        try:
            kind = FrameKind(kind_val)
        except ValueError:
            raise MalformedFrameError(f"unknown frame kind 0x{kind_val:02x}")

        visited = [
            struct.unpack_from(cls.VISITED_FORMAT, data,
                               cls.HEADER_SIZE + i * cls.VISITED_SIZE)
            for i in range(visited_count)
        ]

        try:
            return cls(
                kind=kind,
                src=src,
                dest=dest,
                seq=seq,
                ack=ack,
                hop_count=hop_count,
                origin_link=origin_link,
                chosen_link=chosen_link,
                flags=flags,
                visited=[tuple(entry) for entry in visited],
                payload=bytes(data[payload_offset:]),
                checksum=stored
            )
        except ValueError as exc:
            raise MalformedFrameError(str(exc)) from exc

    def relayed(self, via_address: Optional[int] = None) -> 'Frame':
        """
        Copy of this frame as transmitted by a relay.

        The hop count grows by one; FIND_PATH frames also record the
        relaying address. Sequence and ack markers are never touched.
        """
        hop_count = self.hop_count + 1
        visited = list(self.visited)
        if self.is_find_path and via_address is not None:
            visited.append((via_address, hop_count))
        return replace(self, hop_count=hop_count, visited=visited, checksum=0)

    @classmethod
    def create_data_frame(
        cls,
        src: int,
        dest: int,
        seq: int,
        payload: bytes,
        origin_link: int = NO_LINK
    ) -> 'Frame':
        """
        Create a DATA frame.

        Args:
            src: Source address
            dest: Destination address
            seq: Sequence bit
            payload: Application payload
            origin_link: Link the source sends this copy on

        Returns:
            DATA frame
        """
        return cls(
            kind=FrameKind.DATA,
            src=src,
            dest=dest,
            seq=int(seq),
            payload=payload,
            origin_link=origin_link
        )

    @classmethod
    def create_ack_frame(
        cls,
        src: int,
        dest: int,
        ack: int,
        hop_count: int = 0,
        origin_link: int = NO_LINK,
        chosen_link: Optional[int] = None
    ) -> 'Frame':
        """
        Create an ACK frame.

        Args:
            src: Address of the acknowledging node
            dest: Address of the data sender
            ack: Acknowledged sequence bit
            hop_count: Starting hop count for the return leg
            origin_link: Origin link echoed from the data frame
            chosen_link: Shortest-path link, if the receiver has one

        Returns:
            ACK frame
        """
        frame = cls(
            kind=FrameKind.ACK,
            src=src,
            dest=dest,
            ack=int(ack),
            hop_count=hop_count,
            origin_link=origin_link
        )
        if chosen_link is not None and chosen_link != NO_LINK:
            frame.chosen_link = chosen_link
            frame.flags |= cls.FLAG_PATH_FOUND
        return frame

    @classmethod
    def create_find_path_frame(cls, origin: int, link: int = NO_LINK) -> 'Frame':
        """
        Create a FIND_PATH frame addressed back to its originator.

        Args:
            origin: Originating node address
            link: Link the frame is sent on

        Returns:
            FIND_PATH frame
        """
        return cls(
            kind=FrameKind.FIND_PATH,
            src=origin,
            dest=origin,
            origin_link=link
        )

    def __repr__(self) -> str:
        return (f"Frame(kind={self.kind.name}, src={self.src}, dest={self.dest}, "
                f"seq={self.seq}, ack={self.ack}, hops={self.hop_count}, "
                f"len={len(self.payload)})")


def encode(frame: Frame) -> Tuple[bytes, int]:
    """Serialize a frame, returning the bytes and their count."""
    data = frame.serialize()
    return data, len(data)


def decode(data: bytes) -> Frame:
    """Decode and validate frame bytes; raises FrameError on failure."""
    return Frame.deserialize(data, verify=True)
