"""
Unit tests for the frame codec.
"""

import binascii
import struct

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import MAX_PAYLOAD_SIZE
from arqnet.arq.frame import (
    Frame, FrameKind, FrameError, ChecksumError, MalformedFrameError,
    NO_LINK, NO_SEQUENCE, encode, decode
)


class TestFrameConstruction:
    """Tests for frame field invariants."""

    def test_data_frame_fields(self):
        frame = Frame.create_data_frame(src=1, dest=3, seq=1, payload=b"hello", origin_link=2)

        assert frame.kind == FrameKind.DATA
        assert frame.seq == 1
        assert frame.ack == NO_SEQUENCE
        assert frame.hop_count == 0
        assert frame.origin_link == 2
        assert frame.chosen_link == NO_LINK
        assert not frame.path_found

    def test_ack_frame_without_path(self):
        frame = Frame.create_ack_frame(src=3, dest=1, ack=0, hop_count=2, origin_link=1)

        assert frame.kind == FrameKind.ACK
        assert frame.seq == NO_SEQUENCE
        assert frame.ack == 0
        assert frame.chosen_link == NO_LINK
        assert not frame.path_found

    def test_ack_frame_with_path(self):
        frame = Frame.create_ack_frame(src=3, dest=1, ack=1, chosen_link=2)

        assert frame.chosen_link == 2
        assert frame.path_found

    def test_find_path_frame(self):
        frame = Frame.create_find_path_frame(origin=5, link=1)

        assert frame.kind == FrameKind.FIND_PATH
        assert frame.src == frame.dest == 5
        assert frame.seq == NO_SEQUENCE
        assert frame.ack == NO_SEQUENCE
        assert frame.visited == []

    def test_data_frame_rejects_ack_marker(self):
        with pytest.raises(ValueError):
            Frame(kind=FrameKind.DATA, src=1, dest=2, seq=0, ack=0)

    def test_ack_frame_rejects_sequence(self):
        with pytest.raises(ValueError):
            Frame(kind=FrameKind.ACK, src=1, dest=2, seq=1, ack=0)

    def test_invalid_sequence_value(self):
        with pytest.raises(ValueError):
            Frame(kind=FrameKind.DATA, src=1, dest=2, seq=2)

    def test_oversized_payload(self):
        with pytest.raises(ValueError):
            Frame.create_data_frame(1, 2, 0, bytes(MAX_PAYLOAD_SIZE + 1))

    def test_max_payload_accepted(self):
        frame = Frame.create_data_frame(1, 2, 0, bytes(MAX_PAYLOAD_SIZE))
        assert frame.total_size == Frame.HEADER_SIZE + MAX_PAYLOAD_SIZE


class TestFrameSerialization:
    """Tests for encode/decode and the checksum."""

    def test_header_size(self):
        assert Frame.HEADER_SIZE == 20

    def test_round_trip_data(self):
        frame = Frame.create_data_frame(src=7, dest=9, seq=1, payload=b"payload", origin_link=2)
        data, count = encode(frame)

        assert count == len(data) == frame.total_size
        decoded = decode(data)
        assert decoded.kind == FrameKind.DATA
        assert decoded.src == 7
        assert decoded.dest == 9
        assert decoded.seq == 1
        assert decoded.origin_link == 2
        assert decoded.payload == b"payload"
        assert decoded.checksum == frame.checksum

    def test_round_trip_find_path_visited(self):
        frame = Frame.create_find_path_frame(origin=1, link=1)
        frame = frame.relayed(2).relayed(3)
        decoded = decode(frame.serialize())

        assert decoded.hop_count == 2
        assert decoded.visited == [(2, 1), (3, 2)]

    def test_empty_payload(self):
        frame = Frame.create_ack_frame(src=1, dest=2, ack=0)
        decoded = decode(frame.serialize())
        assert decoded.payload == b''

    def test_checksum_is_crc_ccitt_over_zeroed_field(self):
        frame = Frame.create_data_frame(1, 2, 0, b"abc")
        data = frame.serialize()
        zeroed = data[:10] + b'\x00\x00' + data[12:]

        assert struct.unpack_from('!H', data, 10)[0] == binascii.crc_hqx(zeroed, 0)

    def test_every_single_bit_error_detected(self):
        frame = Frame.create_data_frame(src=1, dest=2, seq=0, payload=b"hello", origin_link=1)
        data = frame.serialize()

        for bit in range(len(data) * 8):
            corrupted = bytearray(data)
            corrupted[bit // 8] ^= 1 << (bit % 8)
            with pytest.raises(FrameError):
                decode(bytes(corrupted))

    def test_payload_corruption_raises_checksum_error(self):
        data = bytearray(Frame.create_data_frame(1, 2, 0, b"hello").serialize())
        data[-1] ^= 0x01

        with pytest.raises(ChecksumError):
            decode(bytes(data))

    def test_verify(self):
        data = Frame.create_data_frame(1, 2, 0, b"hello").serialize()
        assert Frame.verify(data)

        corrupted = bytearray(data)
        corrupted[-2] ^= 0x80
        assert not Frame.verify(bytes(corrupted))

    def test_deserialize_without_verification(self):
        data = bytearray(Frame.create_data_frame(1, 2, 0, b"hello").serialize())
        data[-1] ^= 0x01

        frame = Frame.deserialize(bytes(data), verify=False)
        assert frame.dest == 2
        assert frame.payload != b"hello"

    def test_truncated_frame(self):
        with pytest.raises(MalformedFrameError):
            decode(b'\x00' * 5)

    def test_length_mismatch(self):
        data = Frame.create_data_frame(1, 2, 0, b"hello").serialize()
        with pytest.raises(MalformedFrameError):
            decode(data[:-1])

    def test_unknown_kind(self):
        data = bytearray(Frame.create_data_frame(1, 2, 0, b"x").serialize())
        data[12] = 0x09
        data[10:12] = b'\x00\x00'
        struct.pack_into('!H', data, 10, binascii.crc_hqx(bytes(data), 0))

        with pytest.raises(MalformedFrameError):
            decode(bytes(data))

    def test_checksum_error_is_frame_error(self):
        assert issubclass(ChecksumError, FrameError)
        assert issubclass(MalformedFrameError, FrameError)


class TestRelayedFrame:
    """Tests for the relay copy of a frame."""

    def test_hop_count_incremented(self):
        frame = Frame.create_data_frame(1, 2, 1, b"x", origin_link=1)
        relayed = frame.relayed(5)

        assert relayed.hop_count == 1
        assert relayed.seq == 1
        assert relayed.ack == NO_SEQUENCE
        assert relayed.visited == []
        assert frame.hop_count == 0

    def test_find_path_records_relay(self):
        frame = Frame.create_find_path_frame(origin=1, link=2)
        relayed = frame.relayed(4)

        assert relayed.visited == [(4, 1)]
        assert relayed.origin_link == 2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
