"""
Application Layer Implementation

This module implements the message-generating application that sits on
top of each node: a MessageSource that offers (destination, payload)
messages while the node allows it, and a MessageSink that records and
verifies what was delivered.
"""

import hashlib
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Tuple

import numpy as np


@dataclass
class Message:
    """One application message."""
    source: int
    dest: int
    payload: bytes
    index: int  # Position in the source's message sequence


class MessageSource:
    """
    Application message source of one node.

    Messages are only taken while the source is enabled; the data-link
    node disables it while a frame is awaiting its acknowledgment.

    Attributes:
        address: Owning node address
        enabled: Whether the node currently accepts messages
        sent: Messages handed to the node so far
    """

    def __init__(self, address: int, messages: Optional[Sequence[Message]] = None):
        self.address = address
        self.enabled = False
        self.queue: Deque[Message] = deque(messages or [])
        self.sent: List[Message] = []

        # Statistics
        self.enable_count = 0
        self.disable_count = 0

    @classmethod
    def generate(
        cls,
        address: int,
        destinations: Sequence[int],
        count: int,
        rng: Optional[np.random.Generator] = None,
        min_size: int = 16,
        max_size: int = 128
    ) -> 'MessageSource':
        """
        Create a source with ``count`` messages to random destinations.

        Args:
            address: Owning node address
            destinations: Candidate destination addresses
            count: Number of messages
            rng: numpy random generator
            min_size: Minimum payload size in bytes
            max_size: Maximum payload size in bytes

        Returns:
            New MessageSource
        """
        destinations = [d for d in destinations if d != address]
        if count and not destinations:
            raise ValueError(f"Node {address} has no destination to send to")
        rng = rng or np.random.default_rng()

        messages = []
        for index in range(count):
            dest = int(destinations[int(rng.integers(len(destinations)))])
            size = int(rng.integers(min_size, max_size + 1))
            text = f"message {index} from {address} to {dest} ".encode()
            payload = (text * (size // len(text) + 1))[:size]
            messages.append(Message(source=address, dest=dest,
                                    payload=payload, index=index))
        return cls(address, messages)

    def add_message(self, dest: int, payload: bytes) -> Message:
        message = Message(source=self.address, dest=dest,
                          payload=payload, index=len(self.sent) + len(self.queue))
        self.queue.append(message)
        return message

    @property
    def has_pending(self) -> bool:
        return bool(self.queue)

    @property
    def ready(self) -> bool:
        """A message can be offered right now."""
        return self.enabled and self.has_pending

    def enable(self):
        if not self.enabled:
            self.enable_count += 1
        self.enabled = True

    def disable(self):
        if self.enabled:
            self.disable_count += 1
        self.enabled = False

    def next_message(self) -> Tuple[int, bytes]:
        """
        Take the next message.

        Returns:
            Tuple of (destination, payload)

        Raises:
            IndexError: No message is pending
        """
        if not self.queue:
            raise IndexError(f"Node {self.address} has no pending message")
        message = self.queue.popleft()
        self.sent.append(message)
        return message.dest, message.payload


@dataclass
class Delivery:
    """One payload delivered to an application."""
    time: float
    source: int
    dest: int
    payload: bytes


class MessageSink:
    """
    Records deliveries for every node and checks them against what was sent.
    """

    def __init__(self):
        self.deliveries: List[Delivery] = []

    def record(self, time: float, source: int, dest: int, payload: bytes):
        self.deliveries.append(Delivery(time=time, source=source,
                                        dest=dest, payload=payload))

    def delivered_to(self, dest: int) -> List[Delivery]:
        return [d for d in self.deliveries if d.dest == dest]

    def __len__(self) -> int:
        return len(self.deliveries)

    @staticmethod
    def calculate_checksum(payloads: Sequence[bytes]) -> str:
        """MD5 over a sequence of payloads."""
        digest = hashlib.md5()
        for payload in payloads:
            digest.update(payload)
        return digest.hexdigest()

    def verify(self, sources: Sequence[MessageSource]) -> Tuple[bool, dict]:
        """
        Verify deliveries against the messages taken from the sources.

        Every message must be delivered exactly once, and messages between
        one pair of nodes must arrive in the order they were sent.

        Returns:
            Tuple of (valid, details)
        """
        expected: Dict[Tuple[int, int], List[bytes]] = {}
        for source in sources:
            for message in source.sent:
                expected.setdefault((message.source, message.dest), []).append(message.payload)

        received: Dict[Tuple[int, int], List[bytes]] = {}
        for delivery in self.deliveries:
            received.setdefault((delivery.source, delivery.dest), []).append(delivery.payload)

        mismatched = sorted(
            pair for pair in set(expected) | set(received)
            if expected.get(pair, []) != received.get(pair, [])
        )

        total_expected = sum(len(v) for v in expected.values())
        details = {
            'messages_expected': total_expected,
            'messages_received': len(self.deliveries),
            'mismatched_pairs': mismatched,
            'expected_checksum': self.calculate_checksum(
                [p for pair in sorted(expected) for p in expected[pair]]),
            'received_checksum': self.calculate_checksum(
                [p for pair in sorted(received) for p in received[pair]])
        }
        return not mismatched, details
