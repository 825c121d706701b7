"""
Timer Management for Stop-and-Wait ARQ

This module provides the node-local timer service (single-shot timers
keyed by connection) and the retransmission timer logic that arms,
cancels and services those timers for the ARQ state machine.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, Iterable, List, Optional
from enum import Enum
import heapq
import sys
sys.path.insert(0, '..')

from config import TIMEOUT_MULTIPLIER
from .connection import Connection


class TimerState(Enum):
    """Timer state enumeration."""
    STOPPED = 0
    RUNNING = 1
    EXPIRED = 2


@dataclass(frozen=True)
class TimerHandle:
    """Opaque handle returned when a timer is started."""
    key: Hashable
    generation: int


@dataclass(order=True)
class TimerEvent:
    """Timer event for priority queue management."""
    expiry_time: float
    key: Hashable = field(compare=False)
    generation: int = field(compare=False)  # To invalidate cancelled timers


@dataclass
class KeyedTimer:
    """
    Single-shot timer owned by one key.

    Attributes:
        key: Owner key (peer address or a named node timer)
        timeout: Timeout duration in seconds
        start_time: Time when timer was started
        state: Current timer state
        restarts: Number of times the timer was re-armed
    """
    key: Hashable
    timeout: float
    start_time: float = 0.0
    state: TimerState = TimerState.STOPPED
    restarts: int = 0
    generation: int = 0  # Incremented on each restart

    def start(self, current_time: float, timeout: float):
        """
        Start the timer.

        Args:
            current_time: Current simulation time
            timeout: Duration in seconds
        """
        if self.generation > 0:
            self.restarts += 1
        self.timeout = timeout
        self.start_time = current_time
        self.state = TimerState.RUNNING
        self.generation += 1

    def stop(self):
        """Stop the timer."""
        self.state = TimerState.STOPPED

    def check_expired(self, current_time: float) -> bool:
        """
        Check if timer has expired.

        Args:
            current_time: Current simulation time

        Returns:
            True if timer has expired
        """
        if self.state != TimerState.RUNNING:
            return False

        if current_time >= self.start_time + self.timeout:
            self.state = TimerState.EXPIRED
            return True

        return False

    def get_expiry_time(self) -> float:
        """Get the absolute expiry time."""
        return self.start_time + self.timeout


class TimerManager:
    """
    Node-local timer service.

    Uses a priority queue (min-heap) for efficient timeout detection.
    Starting a timer for a key replaces any timer that key already had;
    heap entries from replaced timers are skipped by generation.

    Attributes:
        clock: Callable returning the current time
        timers: Dictionary of timers by key
        timer_queue: Priority queue of timer events
    """

    def __init__(
        self,
        clock: Callable[[], float],
        on_timeout: Optional[Callable[[Hashable], None]] = None
    ):
        """
        Initialize timer manager.

        Args:
            clock: Callable returning the current (simulated) time
            on_timeout: Callback when a timer expires (receives the key)
        """
        self.clock = clock
        self.on_timeout = on_timeout

        self.timers: Dict[Hashable, KeyedTimer] = {}
        self.timer_queue: List[TimerEvent] = []

        # Statistics
        self.total_timeouts = 0
        self.total_timers_started = 0

    def start_timer(self, key: Hashable, timeout: float) -> TimerHandle:
        """
        Start (or restart) the timer for a key.

        Args:
            key: Timer owner
            timeout: Duration in seconds

        Returns:
            Handle identifying this particular start
        """
        timer = self.timers.get(key)
        if timer is None:
            timer = KeyedTimer(key=key, timeout=timeout)
            self.timers[key] = timer
        timer.start(self.clock(), timeout)
        self.total_timers_started += 1

        heapq.heappush(self.timer_queue, TimerEvent(
            expiry_time=timer.get_expiry_time(),
            key=key,
            generation=timer.generation
        ))
        return TimerHandle(key=key, generation=timer.generation)

    def stop_timer(self, handle: Optional[TimerHandle]):
        """
        Stop the timer a handle refers to.

        Stopping a timer that already fired, was replaced, or never
        existed does nothing.
        """
        if handle is None:
            return
        timer = self.timers.get(handle.key)
        if timer is not None and timer.generation == handle.generation:
            timer.stop()
            # Don't remove from queue - will be filtered on pop

    def is_running(self, key: Hashable) -> bool:
        timer = self.timers.get(key)
        return timer is not None and timer.state == TimerState.RUNNING

    def get_timer(self, key: Hashable) -> Optional[KeyedTimer]:
        return self.timers.get(key)

    def check_timeouts(self, current_time: Optional[float] = None) -> List[Hashable]:
        """
        Check for expired timers.

        Args:
            current_time: Time to check against (defaults to the clock)

        Returns:
            Keys whose timers expired, in expiry order
        """
        if current_time is None:
            current_time = self.clock()
        expired = []

        while self.timer_queue:
            event = self.timer_queue[0]

            if event.expiry_time > current_time:
                break

            heapq.heappop(self.timer_queue)

            timer = self.timers.get(event.key)
            if timer is None or timer.generation != event.generation:
                continue

            if timer.check_expired(current_time):
                self.total_timeouts += 1
                expired.append(event.key)

                if self.on_timeout:
                    self.on_timeout(event.key)

        return expired

    def get_active_count(self) -> int:
        """Get number of active timers."""
        return sum(1 for t in self.timers.values()
                   if t.state == TimerState.RUNNING)

    def get_statistics(self) -> dict:
        """Get timer statistics."""
        return {
            'total_timers_started': self.total_timers_started,
            'total_timeouts': self.total_timeouts,
            'active_timers': self.get_active_count()
        }


class RetransmissionTimer:
    """
    Retransmission timer logic for stop-and-wait connections.

    One timer per connection, keyed by the peer address. The timeout is
    ``multiplier * (frame_bits / bandwidth + propagation_delay)`` of the
    slowest link the frame went out on.

    Attributes:
        link_table: The node's links (bandwidth and propagation delay)
        multiplier: Safety multiplier applied to the one-hop time
    """

    def __init__(
        self,
        link_table,
        start_timer: Callable[[Hashable, float], object],
        stop_timer: Callable[[object], None],
        multiplier: float = TIMEOUT_MULTIPLIER
    ):
        """
        Initialize retransmission timer.

        Args:
            link_table: LinkTable of the node
            start_timer: Timer service start(key, duration) -> handle
            stop_timer: Timer service stop(handle)
            multiplier: Safety multiplier
        """
        self.link_table = link_table
        self.start_timer = start_timer
        self.stop_timer = stop_timer
        self.multiplier = multiplier

    def compute_timeout(self, frame_size_bytes: int, link: int) -> float:
        """
        Timeout for one frame sent on one link.

        Args:
            frame_size_bytes: Encoded frame size
            link: Link number

        Returns:
            Timeout in seconds
        """
        info = self.link_table.get(link)
        one_hop = (frame_size_bytes * 8) / info.bandwidth + info.propagation_delay
        return self.multiplier * one_hop

    def on_transmit(self, connection: Connection, frame_size_bytes: int,
                    links: Iterable[int]) -> float:
        """
        Arm the connection's timer after a fresh transmission.

        Any previous timer for the connection is stopped first.

        Returns:
            The timeout that was armed
        """
        timeout = max(self.compute_timeout(frame_size_bytes, link) for link in links)
        self.stop_timer(connection.timer_handle)
        connection.timer_handle = self.start_timer(connection.peer, timeout)
        return timeout

    def on_ack_matched(self, connection: Connection):
        """Cancel the connection's timer; a no-op if none is running."""
        self.stop_timer(connection.timer_handle)
        connection.timer_handle = None

    def on_expiry(self, connection: Connection,
                  write_frame: Callable[[int, bytes], int]) -> int:
        """
        Re-send the stored frame verbatim on its links and re-arm.

        Args:
            connection: Connection whose timer expired
            write_frame: Link write service

        Returns:
            Number of copies re-sent
        """
        sent = 0
        for link, data in sorted(connection.last_transmissions.items()):
            write_frame(link, data)
            sent += 1
        if sent:
            connection.retransmissions += 1
            size = max(len(data) for data in connection.last_transmissions.values())
            self.on_transmit(connection, size, connection.last_transmissions)
        return sent
