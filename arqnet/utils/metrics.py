"""
Metrics Collection and Calculation

This module provides utilities for tracking delivery performance of a
network run: goodput, delivery latency, wire overhead and error counts.
"""

from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Tuple
import statistics


class MetricsCollector:
    """
    Collects and calculates performance metrics for a simulation run.

    Primary metric: Goodput = Delivered Application Bytes / Total Time

    Messages between a pair of nodes are delivered in submission order,
    so each delivery is matched with the oldest pending submission of
    its (source, destination) pair to obtain its latency.
    """

    def __init__(self):
        # Time tracking
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None

        # Application counters
        self.messages_submitted = 0
        self.messages_delivered = 0
        self.application_bytes_sent = 0
        self.application_bytes_delivered = 0

        # Wire counters
        self.frames_transmitted = 0
        self.data_frames_transmitted = 0
        self.ack_frames_transmitted = 0
        self.control_frames_transmitted = 0
        self.total_bytes_transmitted = 0

        # Channel errors
        self.frames_lost = 0
        self.frames_corrupted = 0

        # Protocol counters (gathered from the nodes at the end of a run)
        self.retransmissions = 0
        self.frames_relayed = 0
        self.duplicate_frames = 0
        self.stray_acks = 0
        self.checksum_errors = 0

        self.latency_samples: List[float] = []
        self._pending: Dict[Tuple[int, int], Deque[float]] = defaultdict(deque)

    def start(self, time: float):
        """Mark simulation start."""
        self.start_time = time

    def finish(self, time: float):
        """Mark simulation end."""
        self.end_time = time

    def record_message_submitted(self, time: float, source: int, dest: int, size: int):
        """
        Record a message taken from an application.

        Args:
            time: Submission time
            source: Sending node
            dest: Destination node
            size: Payload bytes
        """
        self.messages_submitted += 1
        self.application_bytes_sent += size
        self._pending[(source, dest)].append(time)

    def record_message_delivered(self, time: float, source: int, dest: int, size: int):
        """
        Record a message handed to an application.

        Args:
            time: Delivery time
            source: Sending node
            dest: Receiving node
            size: Payload bytes
        """
        self.messages_delivered += 1
        self.application_bytes_delivered += size
        pending = self._pending.get((source, dest))
        if pending:
            self.latency_samples.append(time - pending.popleft())

    def record_frame_transmitted(self, kind: str, frame_bytes: int):
        """
        Record one frame written to a link.

        Args:
            kind: Frame kind name ('DATA', 'ACK' or 'FIND_PATH')
            frame_bytes: Encoded frame size
        """
        self.frames_transmitted += 1
        self.total_bytes_transmitted += frame_bytes
        if kind == 'DATA':
            self.data_frames_transmitted += 1
        elif kind == 'ACK':
            self.ack_frames_transmitted += 1
        else:
            self.control_frames_transmitted += 1

    def record_frame_lost(self):
        """Record a frame dropped by the channel."""
        self.frames_lost += 1

    def record_frame_corrupted(self):
        """Record a frame with bit errors."""
        self.frames_corrupted += 1

    def record_node_statistics(self, stats: dict):
        """Add the protocol counters of one node."""
        self.retransmissions += stats.get('retransmissions', 0)
        self.frames_relayed += stats.get('frames_relayed', 0)
        self.duplicate_frames += stats.get('duplicate_frames', 0)
        self.stray_acks += stats.get('stray_acks', 0)
        self.checksum_errors += stats.get('checksum_errors', 0)

    def _total_time(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return self.end_time - self.start_time

    def calculate_goodput(self) -> float:
        """
        Calculate Goodput.

        Returns:
            Delivered application bytes per second
        """
        total_time = self._total_time()
        if total_time <= 0:
            return 0.0
        return self.application_bytes_delivered / total_time

    def calculate_efficiency(self) -> float:
        """
        Calculate transmission efficiency.

        Efficiency = Application Bytes Delivered / Total Bytes Transmitted
        """
        if self.total_bytes_transmitted <= 0:
            return 0.0
        return self.application_bytes_delivered / self.total_bytes_transmitted

    def calculate_delivery_ratio(self) -> float:
        if self.messages_submitted <= 0:
            return 0.0
        return self.messages_delivered / self.messages_submitted

    def calculate_frame_error_rate(self) -> float:
        """Frames lost or corrupted per frame transmitted."""
        if self.frames_transmitted <= 0:
            return 0.0
        return (self.frames_lost + self.frames_corrupted) / self.frames_transmitted

    def get_latency_statistics(self) -> Dict[str, float]:
        """
        Get delivery latency statistics.

        Returns:
            Dictionary with min, max, mean, median, stdev latency
        """
        if not self.latency_samples:
            return {
                'min': 0, 'max': 0, 'mean': 0,
                'median': 0, 'stdev': 0, 'samples': 0
            }

        return {
            'min': min(self.latency_samples),
            'max': max(self.latency_samples),
            'mean': statistics.mean(self.latency_samples),
            'median': statistics.median(self.latency_samples),
            'stdev': (statistics.stdev(self.latency_samples)
                      if len(self.latency_samples) > 1 else 0),
            'samples': len(self.latency_samples)
        }

    def get_summary(self) -> Dict:
        """
        Get comprehensive metrics summary.

        Returns:
            Dictionary with all metrics
        """
        return {
            # Time
            'total_time': self._total_time(),

            # Primary metrics
            'goodput': self.calculate_goodput(),
            'goodput_bps': self.calculate_goodput() * 8,
            'delivery_ratio': self.calculate_delivery_ratio(),
            'efficiency': self.calculate_efficiency(),

            # Application counts
            'messages_submitted': self.messages_submitted,
            'messages_delivered': self.messages_delivered,
            'application_bytes_sent': self.application_bytes_sent,
            'application_bytes_delivered': self.application_bytes_delivered,

            # Wire counts
            'frames_transmitted': self.frames_transmitted,
            'data_frames_transmitted': self.data_frames_transmitted,
            'ack_frames_transmitted': self.ack_frames_transmitted,
            'control_frames_transmitted': self.control_frames_transmitted,
            'total_bytes_transmitted': self.total_bytes_transmitted,

            # Errors
            'frames_lost': self.frames_lost,
            'frames_corrupted': self.frames_corrupted,
            'frame_error_rate': self.calculate_frame_error_rate(),
            'checksum_errors': self.checksum_errors,

            # Protocol
            'retransmissions': self.retransmissions,
            'frames_relayed': self.frames_relayed,
            'duplicate_frames': self.duplicate_frames,
            'stray_acks': self.stray_acks,

            # Latency
            'latency': self.get_latency_statistics()
        }

    def to_csv_row(self) -> Dict:
        """
        Get metrics as a flat dictionary suitable for CSV export.

        Returns:
            Dictionary with flattened metrics
        """
        summary = self.get_summary()
        latency = summary.pop('latency')

        flat = {**summary}
        for key, value in latency.items():
            flat[f'latency_{key}'] = value
        return flat

    def reset(self):
        """Reset all metrics."""
        self.start_time = None
        self.end_time = None
        self.messages_submitted = 0
        self.messages_delivered = 0
        self.application_bytes_sent = 0
        self.application_bytes_delivered = 0
        self.frames_transmitted = 0
        self.data_frames_transmitted = 0
        self.ack_frames_transmitted = 0
        self.control_frames_transmitted = 0
        self.total_bytes_transmitted = 0
        self.frames_lost = 0
        self.frames_corrupted = 0
        self.retransmissions = 0
        self.frames_relayed = 0
        self.duplicate_frames = 0
        self.stray_acks = 0
        self.checksum_errors = 0
        self.latency_samples.clear()
        self._pending.clear()
