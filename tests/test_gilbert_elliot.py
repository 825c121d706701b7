"""
Unit tests for the Gilbert-Elliot channel model.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqnet.arq.frame import Frame, FrameError, decode
from arqnet.channel.gilbert_elliot import (
    GilbertElliottChannel, ChannelState,
    simulate_error_pattern, analyze_burst_lengths
)


class TestGilbertElliottChannel:
    """Tests for Gilbert-Elliot channel model."""

    def test_initialization(self):
        """Test channel initialization with default parameters."""
        channel = GilbertElliottChannel(seed=42)

        assert channel.pg == 1e-6
        assert channel.pb == 5e-3
        assert channel.p_gb == 0.02
        assert channel.p_bg == 0.3
        assert channel.loss_probability == 0.0
        assert channel.state in [ChannelState.GOOD, ChannelState.BAD]

    def test_invalid_probability(self):
        with pytest.raises(ValueError):
            GilbertElliottChannel(loss_probability=1.5)

    def test_steady_state_probabilities(self):
        """Test steady-state probability calculation."""
        channel = GilbertElliottChannel()

        pi_good, pi_bad = channel.get_steady_state_probabilities()

        assert abs(pi_good + pi_bad - 1.0) < 1e-10
        assert pi_good == pytest.approx(0.9375)
        assert pi_bad == pytest.approx(0.0625)

    def test_average_ber(self):
        channel = GilbertElliottChannel()
        assert 1e-4 < channel.get_average_ber() < 1e-3

    def test_error_free_channel_is_transparent(self):
        channel = GilbertElliottChannel.error_free(seed=1)
        data = Frame.create_data_frame(1, 2, 0, b"payload").serialize()

        for _ in range(50):
            received, bit_errors = channel.transmit(data)
            assert received == data
            assert bit_errors == 0

    def test_loss(self):
        channel = GilbertElliottChannel.error_free(loss_probability=1.0, seed=1)
        received, bit_errors = channel.transmit(b"abc")

        assert received is None
        assert bit_errors == 0
        assert channel.get_statistics()['frames_lost'] == 1

    def test_bit_errors_flip_bytes(self):
        channel = GilbertElliottChannel(pg=0.5, pb=0.5, seed=7)
        data = bytes(64)

        received, bit_errors = channel.transmit(data)

        assert len(received) == len(data)
        assert bit_errors > 0
        flipped = sum(bin(byte).count('1') for byte in received)
        assert flipped == bit_errors

    def test_corrupted_frame_fails_checksum(self):
        channel = GilbertElliottChannel(pg=0.01, pb=0.01, seed=3)
        data = Frame.create_data_frame(1, 2, 0, bytes(200)).serialize()

        received, bit_errors = data, 0
        while bit_errors == 0:
            received, bit_errors = channel.transmit(data)

        with pytest.raises(FrameError):
            decode(received)

    def test_state_transitions(self):
        """Test that state transitions occur."""
        channel = GilbertElliottChannel(seed=42)

        states_seen = set()
        for _ in range(1000):
            channel.transition_state()
            states_seen.add(channel.state)

        assert len(states_seen) == 2

    def test_error_pattern_simulation(self):
        channel = GilbertElliottChannel(seed=42)

        error_pattern = simulate_error_pattern(channel, 100, 256)

        assert len(error_pattern) == 100
        assert all(isinstance(e, bool) for e in error_pattern)

    def test_burst_analysis(self):
        """Test burst length analysis."""
        pattern = [False, False, True, True, True, False, True, False]

        stats = analyze_burst_lengths(pattern)

        assert stats['num_bursts'] == 2
        assert stats['max_burst_length'] == 3

    def test_burst_analysis_empty(self):
        assert analyze_burst_lengths([])['num_bursts'] == 0

    def test_statistics_tracking(self):
        """Test that statistics are properly tracked."""
        channel = GilbertElliottChannel(seed=42)

        for _ in range(100):
            channel.transmit(bytes(128))

        stats = channel.get_statistics()

        assert stats['total_frames'] == 100
        assert stats['total_bits'] == 100 * 128 * 8
        assert 'observed_ber' in stats
        assert 'state_transitions' in stats

    def test_reset(self):
        """Test channel reset."""
        channel = GilbertElliottChannel(seed=42)

        for _ in range(100):
            channel.transmit(bytes(128))

        channel.reset(seed=123)

        stats = channel.get_statistics()
        assert stats['total_bits'] == 0
        assert stats['bit_errors'] == 0
        assert stats['total_frames'] == 0

    def test_reproducibility(self):
        """Test that same seed produces same results."""
        channel1 = GilbertElliottChannel(pg=1e-3, pb=1e-2, loss_probability=0.1, seed=42)
        channel2 = GilbertElliottChannel(pg=1e-3, pb=1e-2, loss_probability=0.1, seed=42)

        results1 = [channel1.transmit(bytes(128)) for _ in range(20)]
        results2 = [channel2.transmit(bytes(128)) for _ in range(20)]

        assert results1 == results2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
