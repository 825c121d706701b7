"""
Gilbert-Elliott Burst Error Channel Model

This module implements the two-state Markov chain model for simulating
burst errors on a link. The channel alternates between a "Good" state
(low BER) and a "Bad" state (high BER) once per frame, flips the bits of
the frame bytes it carries, and can additionally lose whole frames with
an independent probability.
"""

import numpy as np
from enum import Enum
from typing import List, Optional, Tuple
import sys
sys.path.insert(0, '..')
from config import (
    GOOD_STATE_BER, BAD_STATE_BER,
    P_GOOD_TO_BAD, P_BAD_TO_GOOD,
    DEFAULT_LOSS_PROBABILITY
)


class ChannelState(Enum):
    """Channel state enumeration."""
    GOOD = 0
    BAD = 1


class GilbertElliottChannel:
    """
    Gilbert-Elliott two-state Markov channel model.

    The channel transitions between Good and Bad states with specified
    probabilities. Each state has its own bit error rate (BER).

    Attributes:
        pg: Bit error rate in Good state
        pb: Bit error rate in Bad state
        p_gb: Transition probability from Good to Bad
        p_bg: Transition probability from Bad to Good
        loss_probability: Probability that a frame is lost entirely
        state: Current channel state
        rng: Random number generator
    """

    def __init__(
        self,
        pg: float = GOOD_STATE_BER,
        pb: float = BAD_STATE_BER,
        p_gb: float = P_GOOD_TO_BAD,
        p_bg: float = P_BAD_TO_GOOD,
        loss_probability: float = DEFAULT_LOSS_PROBABILITY,
        seed: Optional[int] = None
    ):
        """
        Initialize the Gilbert-Elliott channel.

        Args:
            pg: Bit error rate in Good state (default from config)
            pb: Bit error rate in Bad state (default from config)
            p_gb: Probability of transitioning from Good to Bad
            p_bg: Probability of transitioning from Bad to Good
            loss_probability: Probability of losing a whole frame
            seed: Random seed for reproducibility
        """
        for name, value in (('pg', pg), ('pb', pb), ('p_gb', p_gb),
                            ('p_bg', p_bg), ('loss_probability', loss_probability)):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be a probability, got {value}")

        self.pg = pg
        self.pb = pb
        self.p_gb = p_gb
        self.p_bg = p_bg
        self.loss_probability = loss_probability

        # Initialize RNG
        self.rng = np.random.default_rng(seed)

        # Start in steady-state (probabilistically)
        self._initialize_state()

        # Statistics tracking
        self.total_frames = 0
        self.frames_lost = 0
        self.frames_corrupted = 0
        self.total_bits_transmitted = 0
        self.total_bit_errors = 0
        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0

    @classmethod
    def error_free(cls, loss_probability: float = 0.0,
                   seed: Optional[int] = None) -> 'GilbertElliottChannel':
        """Channel that never corrupts bits (frames may still be lost)."""
        return cls(pg=0.0, pb=0.0, loss_probability=loss_probability, seed=seed)

    def _initialize_state(self):
        """Initialize channel state based on steady-state probabilities."""
        pi_good, _ = self.get_steady_state_probabilities()
        if self.rng.random() < pi_good:
            self.state = ChannelState.GOOD
        else:
            self.state = ChannelState.BAD

    def get_steady_state_probabilities(self) -> Tuple[float, float]:
        """
        Calculate steady-state probabilities for Good and Bad states.

        Returns:
            Tuple of (π_Good, π_Bad)
        """
        sum_transitions = self.p_gb + self.p_bg
        if sum_transitions == 0:
            return 1.0, 0.0
        pi_good = self.p_bg / sum_transitions
        pi_bad = self.p_gb / sum_transitions
        return pi_good, pi_bad

    def get_average_ber(self) -> float:
        """
        Calculate average BER based on steady-state probabilities.

        Returns:
            Average bit error rate
        """
        pi_good, pi_bad = self.get_steady_state_probabilities()
        return pi_good * self.pg + pi_bad * self.pb

    def get_current_ber(self) -> float:
        """Get the BER for the current channel state."""
        return self.pg if self.state == ChannelState.GOOD else self.pb

    def transition_state(self):
        """Perform one state transition (called once per frame)."""
        if self.state == ChannelState.GOOD:
            self.time_in_good += 1
            if self.rng.random() < self.p_gb:
                self.state = ChannelState.BAD
                self.state_transitions += 1
        else:
            self.time_in_bad += 1
            if self.rng.random() < self.p_bg:
                self.state = ChannelState.GOOD
                self.state_transitions += 1

    def transmit(self, data: bytes) -> Tuple[Optional[bytes], int]:
        """
        Carry frame bytes across the channel.

        Bit errors are drawn with the BER of the current state, then the
        state transitions.

        Args:
            data: Frame bytes as written by the sender

        Returns:
            Tuple of (received bytes or None if the frame was lost,
            number of bit errors)
        """
        self.total_frames += 1

        if self.loss_probability > 0 and self.rng.random() < self.loss_probability:
            self.frames_lost += 1
            self.transition_state()
            return None, 0

        ber = self.get_current_ber()
        n_bits = len(data) * 8
        self.total_bits_transmitted += n_bits

        if ber == 0 or n_bits == 0:
            self.transition_state()
            return bytes(data), 0

        bits = np.unpackbits(np.frombuffer(bytes(data), dtype=np.uint8))
        errors = self.rng.random(n_bits) < ber
        bit_errors = int(errors.sum())
        if bit_errors:
            bits ^= errors.astype(np.uint8)
            self.frames_corrupted += 1
            self.total_bit_errors += bit_errors

        self.transition_state()
        return np.packbits(bits).tobytes(), bit_errors

    def get_statistics(self) -> dict:
        """
        Get channel statistics.

        Returns:
            Dictionary with transmission statistics
        """
        total_time = self.time_in_good + self.time_in_bad

        return {
            'total_frames': self.total_frames,
            'frames_lost': self.frames_lost,
            'frames_corrupted': self.frames_corrupted,
            'total_bits': self.total_bits_transmitted,
            'bit_errors': self.total_bit_errors,
            'observed_ber': (self.total_bit_errors / self.total_bits_transmitted
                             if self.total_bits_transmitted > 0 else 0),
            'state_transitions': self.state_transitions,
            'fraction_in_good': (self.time_in_good / total_time
                                 if total_time > 0 else 0),
            'theoretical_avg_ber': self.get_average_ber()
        }

    def reset_statistics(self):
        """Reset all statistics counters."""
        self.total_frames = 0
        self.frames_lost = 0
        self.frames_corrupted = 0
        self.total_bits_transmitted = 0
        self.total_bit_errors = 0
        self.state_transitions = 0
        self.time_in_good = 0
        self.time_in_bad = 0

    def reset(self, seed: Optional[int] = None):
        """
        Reset the channel to initial state.

        Args:
            seed: New random seed (optional)
        """
        if seed is not None:
            self.rng = np.random.default_rng(seed)
        self._initialize_state()
        self.reset_statistics()


def simulate_error_pattern(
    channel: GilbertElliottChannel,
    num_frames: int,
    frame_size_bytes: int
) -> List[bool]:
    """
    Send a number of identical frames and report which did not arrive intact.

    Args:
        channel: Gilbert-Elliott channel instance
        num_frames: Number of frames to simulate
        frame_size_bytes: Size of each frame in bytes

    Returns:
        List of booleans (True = frame lost or corrupted)
    """
    frame = bytes(frame_size_bytes)
    pattern = []
    for _ in range(num_frames):
        received, bit_errors = channel.transmit(frame)
        pattern.append(received is None or bit_errors > 0)
    return pattern


def analyze_burst_lengths(error_pattern: List[bool]) -> dict:
    """
    Analyze burst lengths in an error pattern.

    Args:
        error_pattern: List of frame error indicators

    Returns:
        Dictionary with burst statistics
    """
    if not error_pattern:
        return {'avg_burst_length': 0, 'max_burst_length': 0, 'num_bursts': 0}

    bursts = []
    current_burst = 0

    for error in error_pattern:
        if error:
            current_burst += 1
        elif current_burst > 0:
            bursts.append(current_burst)
            current_burst = 0

    if current_burst > 0:
        bursts.append(current_burst)

    if bursts:
        return {
            'avg_burst_length': float(np.mean(bursts)),
            'max_burst_length': max(bursts),
            'num_bursts': len(bursts),
            'burst_lengths': bursts
        }
    return {'avg_burst_length': 0, 'max_burst_length': 0, 'num_bursts': 0}
