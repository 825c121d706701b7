"""
Path Discovery Engine

Learns, per destination, which outgoing link leads there with the fewest
hops. Two strategies feed the same sender-side table:

- Flood-with-hop-count: DATA frames to an unknown destination are sent on
  every link. The destination compares the hop counts of copies that left
  the source on different links and stamps the better link into its ACKs.
- Echo-to-source: a FIND_PATH frame travels round the ring collecting
  (address, hop count) pairs until it returns to its originator, which
  derives the shorter direction to every host it visited.

The first strategy to resolve a destination wins; later results for an
already resolved destination are ignored.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from arqnet.arq.frame import Frame, NO_LINK
from arqnet.utils.logger import SimulationLogger, get_logger


@dataclass
class SenderPathEntry:
    """Best known link towards one destination."""
    destination: int
    discovered: bool = False
    chosen_link: int = NO_LINK
    source: str = ''  # 'flood' or 'echo'


@dataclass
class PathCandidate:
    """One way a source's frames reached this node."""
    link: int    # link used by the source
    length: int  # hop count on arrival


@dataclass
class ReceiverPathEntry:
    """
    Candidate paths from one source, as seen by the receiver.

    Attributes:
        source: Source address
        receive_count: DATA frames received from the source
        first: Candidate learned first
        second: Candidate learned from a different origin link
    """
    source: int
    receive_count: int = 0
    first: Optional[PathCandidate] = None
    second: Optional[PathCandidate] = None

    @property
    def complete(self) -> bool:
        return self.first is not None and self.second is not None

    @property
    def selected_link(self) -> Optional[int]:
        """Lower-length candidate link; ties go to the first candidate."""
        if not self.complete:
            return None
        if self.first.length <= self.second.length:
            return self.first.link
        return self.second.link


class SenderPathTable:
    """Sender-side table: destination -> chosen outgoing link."""

    def __init__(self):
        self.entries: Dict[int, SenderPathEntry] = {}

    def ensure(self, destination: int) -> SenderPathEntry:
        entry = self.entries.get(destination)
        if entry is None:
            entry = SenderPathEntry(destination=destination)
            self.entries[destination] = entry
        return entry

    def lookup(self, destination: int) -> Optional[SenderPathEntry]:
        return self.entries.get(destination)

    def resolve(self, destination: int, link: int, source: str) -> bool:
        """
        Lock in the link for a destination.

        Returns:
            True if the entry was resolved now, False if it already was
        """
        entry = self.ensure(destination)
        if entry.discovered:
            return False
        entry.discovered = True
        entry.chosen_link = link
        entry.source = source
        return True

    def __len__(self) -> int:
        return len(self.entries)


class ReceiverPathTable:
    """Receiver-side table: source -> candidate paths."""

    def __init__(self):
        self.entries: Dict[int, ReceiverPathEntry] = {}

    def record(self, source: int, origin_link: int, hop_count: int) -> ReceiverPathEntry:
        """
        Record a DATA frame arrival from a source.

        The first arrival fills the first candidate. The second candidate
        is filled by the first later arrival whose origin link differs.
        A complete entry is never changed again.
        """
        entry = self.entries.get(source)
        if entry is None:
            entry = ReceiverPathEntry(source=source)
            self.entries[source] = entry
        entry.receive_count += 1

        if origin_link == NO_LINK or entry.complete:
            return entry

        if entry.first is None:
            entry.first = PathCandidate(link=origin_link, length=hop_count)
        elif origin_link != entry.first.link:
            entry.second = PathCandidate(link=origin_link, length=hop_count)
        return entry

    def lookup(self, source: int) -> Optional[ReceiverPathEntry]:
        return self.entries.get(source)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class EchoResult:
    """What an originator learned from a returned FIND_PATH frame."""
    ring_length: int
    discovery_link: int
    return_link: int
    distances: Dict[int, int] = field(default_factory=dict)


class PathDiscoveryEngine:
    """
    Per-node path discovery state and decisions.

    Attributes:
        address: This node's address
        sender_table: Destination -> chosen link
        receiver_table: Source -> candidate paths
        echo: Result of the echo discovery, once an echo has returned
    """

    def __init__(self, address: int, logger: Optional[SimulationLogger] = None):
        self.address = address
        self.logger = logger or get_logger()

        self.sender_table = SenderPathTable()
        self.receiver_table = ReceiverPathTable()
        self.echo: Optional[EchoResult] = None
        self.echo_attempts = 0

    # ------------------------------------------------------------------
    # Sender side
    # ------------------------------------------------------------------

    def select_links(self, destination: int, links: Iterable[int]) -> List[int]:
        """
        Links to send a DATA frame for ``destination`` on.

        The chosen link when the destination is resolved, otherwise every
        link (flooding).
        """
        links = list(links)
        entry = self.sender_table.ensure(destination)
        if entry.discovered and entry.chosen_link in links:
            return [entry.chosen_link]
        return links

    def is_discovered(self, destination: int) -> bool:
        entry = self.sender_table.lookup(destination)
        return entry is not None and entry.discovered

    def record_ack(self, frame: Frame) -> bool:
        """
        Learn from the discovery fields of an ACK.

        Returns:
            True if this ACK resolved the sender's destination
        """
        if not frame.path_found or frame.chosen_link == NO_LINK:
            return False
        resolved = self.sender_table.resolve(frame.src, frame.chosen_link, 'flood')
        if resolved:
            self.logger.path_discovered(self.address, frame.src, frame.chosen_link, 'flood')
        return resolved

    # ------------------------------------------------------------------
    # Receiver side
    # ------------------------------------------------------------------

    def record_data(self, frame: Frame) -> Optional[int]:
        """
        Learn from a DATA frame addressed to this node.

        Returns:
            The selected link to stamp into the ACK, or None if the
            candidate paths are not both known yet
        """
        entry = self.receiver_table.record(frame.src, frame.origin_link, frame.hop_count)
        return entry.selected_link

    # ------------------------------------------------------------------
    # Echo-to-source
    # ------------------------------------------------------------------

    @property
    def echo_complete(self) -> bool:
        return self.echo is not None

    def create_find_path_frame(self, link: int) -> Frame:
        self.echo_attempts += 1
        return Frame.create_find_path_frame(self.address, link)

    def absorb_echo(self, frame: Frame, arrival_link: int) -> List[int]:
        """
        Adopt the host table of a FIND_PATH frame back at its originator.

        The ring has ``hop_count + 1`` links. A host recorded with hop
        count h is h links away through the discovery link and
        ``ring_length - h`` links away through the arrival link.

        Returns:
            Destinations resolved by this echo
        """
        if frame.src != self.address:
            raise ValueError("FIND_PATH frame does not belong to this node")
        if self.echo is not None:
            return []

        discovery_link = frame.origin_link
        ring_length = frame.hop_count + 1
        result = EchoResult(
            ring_length=ring_length,
            discovery_link=discovery_link,
            return_link=arrival_link
        )

        resolved = []
        for host, hops in frame.visited:
            if host == self.address:
                continue
            result.distances[host] = min(hops, ring_length - hops)
            if hops <= ring_length - hops:
                link = discovery_link
            else:
                link = arrival_link
            if self.sender_table.resolve(host, link, 'echo'):
                resolved.append(host)
                self.logger.path_discovered(self.address, host, link, 'echo')

        self.echo = result
        return resolved

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def describe(self) -> str:
        lines = ["Sender path table:"]
        for dest, entry in sorted(self.sender_table.entries.items()):
            if entry.discovered:
                lines.append(f"  HOST[{dest}] LINK[{entry.chosen_link}] via {entry.source}")
            else:
                lines.append(f"  HOST[{dest}] undiscovered")
        lines.append("Receiver path table:")
        for src, entry in sorted(self.receiver_table.entries.items()):
            first = f"{entry.first.link}/{entry.first.length}" if entry.first else "-"
            second = f"{entry.second.link}/{entry.second.length}" if entry.second else "-"
            lines.append(
                f"  SRC[{src}] received={entry.receive_count} "
                f"A={first} B={second} selected={entry.selected_link}"
            )
        if self.echo is not None:
            lines.append(f"Echo: ring_length={self.echo.ring_length} "
                         f"distances={dict(sorted(self.echo.distances.items()))}")
        return "\n".join(lines)
