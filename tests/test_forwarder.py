"""
Unit tests for link tables and the relay forwarder.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqnet.arq.frame import Frame, FrameKind, decode
from arqnet.routing.forwarder import Forwarder, LinkInfo, LinkTable
from arqnet.utils.logger import SimulationLogger, LogLevel


class Relay:
    """Forwarder with a recording link write service."""

    def __init__(self, address=5, link_count=2, **kwargs):
        self.written = []
        logger = SimulationLogger(name="test", level=LogLevel.CRITICAL, use_colors=False)
        self.forwarder = Forwarder(
            address=address,
            link_table=LinkTable.uniform(link_count),
            write_frame=lambda link, data: self.written.append((link, data)),
            logger=logger,
            **kwargs
        )


def corrupt(data):
    damaged = bytearray(data)
    damaged[-1] ^= 0x01
    return bytes(damaged)


class TestLinkTable:
    """Tests for link configuration."""

    def test_uniform(self):
        table = LinkTable.uniform(3, bandwidth=9600)

        assert table.links == [1, 2, 3]
        assert table.get(2).bandwidth == 9600
        assert table.other_links(2) == [1, 3]

    def test_links_start_at_one(self):
        with pytest.raises(ValueError):
            LinkInfo(0)

    def test_invalid_bandwidth(self):
        with pytest.raises(ValueError):
            LinkInfo(1, bandwidth=0)

    def test_duplicate_link(self):
        with pytest.raises(ValueError):
            LinkTable([LinkInfo(1), LinkInfo(1)])

    def test_unknown_link(self):
        with pytest.raises(KeyError):
            LinkTable.uniform(2).get(3)


class TestForwarder:
    """Tests for relaying frames addressed to other nodes."""

    def test_relays_on_other_links(self):
        relay = Relay(link_count=3)
        frame = Frame.create_data_frame(1, 9, 1, b"x", origin_link=2)

        links = relay.forwarder.forward(frame, arrival_link=1, raw=frame.serialize())

        assert links == [2, 3]
        for _, data in relay.written:
            copy = decode(data)
            assert copy.hop_count == 1
            assert copy.seq == 1
            assert copy.origin_link == 2

    def test_ring_relay_uses_single_link(self):
        relay = Relay()
        frame = Frame.create_ack_frame(9, 1, 0)

        assert relay.forwarder.forward(frame, arrival_link=2) == [1]

    def test_corrupted_data_dropped(self):
        relay = Relay()
        frame = Frame.create_data_frame(1, 9, 0, b"hello")
        raw = corrupt(frame.serialize())

        assert relay.forwarder.forward(frame, arrival_link=1, raw=raw) == []
        assert relay.written == []
        assert relay.forwarder.checksum_drops == 1

    def test_corrupted_find_path_still_relayed(self):
        relay = Relay()
        frame = Frame.create_find_path_frame(1, 1)
        raw = corrupt(frame.serialize())

        assert relay.forwarder.forward(frame, arrival_link=1, raw=raw) == [2]
        assert relay.forwarder.checksum_drops == 0

    def test_validation_disabled(self):
        relay = Relay(validate_kinds=frozenset())
        frame = Frame.create_data_frame(1, 9, 0, b"hello")
        raw = corrupt(frame.serialize())

        assert relay.forwarder.forward(frame, arrival_link=1, raw=raw) == [2]

    def test_find_path_records_relay(self):
        relay = Relay(address=5)
        frame = Frame.create_find_path_frame(1, 1).relayed(3)

        relay.forwarder.forward(frame, arrival_link=1)

        copy = decode(relay.written[0][1])
        assert copy.kind == FrameKind.FIND_PATH
        assert copy.visited == [(3, 1), (5, 2)]

    def test_hop_ceiling(self):
        relay = Relay(max_hop_count=4)
        frame = Frame.create_data_frame(1, 9, 0, b"x")
        frame.hop_count = 3
        assert relay.forwarder.forward(frame, arrival_link=1) == [2]

        frame.hop_count = 4
        assert relay.forwarder.forward(frame, arrival_link=1) == []
        assert relay.forwarder.hop_limit_drops == 1

    def test_ack_gets_return_leg_budget(self):
        relay = Relay(max_hop_count=4)
        ack = Frame.create_ack_frame(9, 1, 0, hop_count=8)
        assert relay.forwarder.forward(ack, arrival_link=1) == [2]

        ack.hop_count = 9
        assert relay.forwarder.forward(ack, arrival_link=1) == []
        assert relay.forwarder.hop_limit_drops == 1

    def test_find_path_beyond_one_way_ceiling(self):
        relay = Relay()
        frame = Frame.create_find_path_frame(1, 1)
        frame.hop_count = 20

        assert relay.forwarder.forward(frame, arrival_link=1) == [2]
        assert relay.forwarder.hop_limit(frame) == 33

    def test_invalid_hop_ceiling(self):
        with pytest.raises(ValueError):
            Relay(max_hop_count=0)
        with pytest.raises(ValueError):
            Relay(max_hop_count=128)

    def test_learns_shortest_arrival(self):
        relay = Relay()
        far = Frame.create_data_frame(1, 9, 0, b"x")
        far.hop_count = 4
        near = Frame.create_data_frame(1, 9, 0, b"x")
        near.hop_count = 1

        relay.forwarder.forward(far, arrival_link=2)
        relay.forwarder.forward(near, arrival_link=1)

        route = relay.forwarder.learned[1]
        assert route.arrival_link == 1
        assert route.hop_count == 1

    def test_statistics(self):
        relay = Relay(link_count=3)
        relay.forwarder.forward(Frame.create_ack_frame(9, 1, 1), arrival_link=1)

        stats = relay.forwarder.get_statistics()
        assert stats['frames_relayed'] == 1
        assert stats['copies_sent'] == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
