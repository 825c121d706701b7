"""
Link Table and Forwarder

This module holds the per-node link configuration and the relay logic
used by a node for frames that are not addressed to it.
"""

from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional
import sys
sys.path.insert(0, '..')

from config import DEFAULT_BANDWIDTH, DEFAULT_PROPAGATION_DELAY, MAX_HOP_COUNT
from arqnet.arq.frame import Frame, FrameKind
from arqnet.utils.logger import SimulationLogger, get_logger


@dataclass(frozen=True)
class LinkInfo:
    """
    Static properties of one link of a node.

    Attributes:
        link: Link number (numbered from 1)
        bandwidth: Bits per second
        propagation_delay: One-way delay in seconds
    """
    link: int
    bandwidth: float = DEFAULT_BANDWIDTH
    propagation_delay: float = DEFAULT_PROPAGATION_DELAY

    def __post_init__(self):
        if self.link < 1:
            raise ValueError("Link numbers start at 1")
        if self.bandwidth <= 0:
            raise ValueError("Bandwidth must be positive")
        if self.propagation_delay < 0:
            raise ValueError("Propagation delay must be non-negative")


class LinkTable:
    """The links configured on one node."""

    def __init__(self, links: Iterable[LinkInfo]):
        self._links: Dict[int, LinkInfo] = {}
        for info in links:
            if info.link in self._links:
                raise ValueError(f"Duplicate link number {info.link}")
            self._links[info.link] = info

    @classmethod
    def uniform(cls, count: int, **kwargs) -> 'LinkTable':
        """Table of ``count`` links numbered 1..count with shared properties."""
        return cls(LinkInfo(link=n, **kwargs) for n in range(1, count + 1))

    @property
    def links(self) -> List[int]:
        return sorted(self._links)

    def get(self, link: int) -> LinkInfo:
        try:
            return self._links[link]
        except KeyError:
            raise KeyError(f"No such link: {link}") from None

    def other_links(self, arrival_link: int) -> List[int]:
        """All links except the one a frame arrived on."""
        return [link for link in self.links if link != arrival_link]

    def __contains__(self, link: int) -> bool:
        return link in self._links

    def __len__(self) -> int:
        return len(self._links)


@dataclass
class LearnedRoute:
    """Best observed arrival of frames from one source at a relay."""
    source: int
    arrival_link: int
    hop_count: int


class Forwarder:
    """
    Relay for frames addressed to other nodes.

    Relayed frames have their hop count incremented (FIND_PATH frames also
    record this node) and are re-sent on every link except the arrival
    link. Checksums are validated before relaying for the frame kinds in
    ``validate_kinds``. DATA frames that would exceed ``max_hop_count`` are
    dropped; ACK and FIND_PATH frames carry a round-trip hop count and may
    reach ``2 * max_hop_count + 1``.

    Attributes:
        address: This node's address
        link_table: This node's links
        validate_kinds: Frame kinds checked before relaying
        max_hop_count: Hop count ceiling
    """

    DEFAULT_VALIDATE_KINDS = frozenset({FrameKind.DATA, FrameKind.ACK})

    def __init__(
        self,
        address: int,
        link_table: LinkTable,
        write_frame: Callable[[int, bytes], int],
        validate_kinds: FrozenSet[FrameKind] = DEFAULT_VALIDATE_KINDS,
        max_hop_count: int = MAX_HOP_COUNT,
        logger: Optional[SimulationLogger] = None
    ):
        if not 0 < max_hop_count <= (Frame.MAX_HOP_FIELD - 1) // 2:
            raise ValueError(
                f"max_hop_count must be in 1..{(Frame.MAX_HOP_FIELD - 1) // 2}"
            )
        self.address = address
        self.link_table = link_table
        self.write_frame = write_frame
        self.validate_kinds = frozenset(validate_kinds)
        self.max_hop_count = max_hop_count
        self.logger = logger or get_logger()

        self.learned: Dict[int, LearnedRoute] = {}

        # Statistics
        self.frames_relayed = 0
        self.copies_sent = 0
        self.checksum_drops = 0
        self.hop_limit_drops = 0

    def forward(self, frame: Frame, arrival_link: int,
                raw: Optional[bytes] = None) -> List[int]:
        """
        Relay a frame that is not addressed to this node.

        Args:
            frame: Frame parsed from the received bytes
            arrival_link: Link the frame arrived on
            raw: The received bytes, used for checksum validation

        Returns:
            Links the frame was re-sent on (empty if dropped)
        """
        if frame.kind in self.validate_kinds:
            data = raw if raw is not None else frame.serialize()
            if not Frame.verify(data):
                self.checksum_drops += 1
                self.logger.checksum_failure(self.address, arrival_link, relay=True)
                return []

        self._learn(frame, arrival_link)

        limit = self.hop_limit(frame)
        if frame.hop_count + 1 > limit:
            self.hop_limit_drops += 1
            self.logger.warning(
                f"Node {self.address}: dropped {frame.kind.name} {frame.src}->{frame.dest} "
                f"at hop ceiling {limit}", "RELAY"
            )
            return []

        relayed = frame.relayed(self.address)
        data = relayed.serialize()
        links = self.link_table.other_links(arrival_link)
        for link in links:
            self.write_frame(link, data)

        self.frames_relayed += 1
        self.copies_sent += len(links)
        self.logger.relay(self.address, relayed, arrival_link, links)
        return links

    def hop_limit(self, frame: Frame) -> int:
        """
        Highest hop count a relayed copy of ``frame`` may carry.

        An ACK starts from the hop count of the DATA frame it answers and
        a FIND_PATH frame travels the whole ring, so both get the budget
        of an outbound leg and a return leg.
        """
        if frame.kind == FrameKind.DATA:
            return self.max_hop_count
        return 2 * self.max_hop_count + 1

    def _learn(self, frame: Frame, arrival_link: int):
        route = self.learned.get(frame.src)
        if route is None or frame.hop_count < route.hop_count:
            self.learned[frame.src] = LearnedRoute(
                source=frame.src,
                arrival_link=arrival_link,
                hop_count=frame.hop_count
            )

    def get_statistics(self) -> dict:
        return {
            'frames_relayed': self.frames_relayed,
            'copies_sent': self.copies_sent,
            'checksum_drops': self.checksum_drops,
            'hop_limit_drops': self.hop_limit_drops
        }
