"""
Unit tests for the timer service and retransmission timer logic.
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import TIMEOUT_MULTIPLIER
from arqnet.arq.connection import Connection, ConnectionState
from arqnet.arq.timer import TimerManager, TimerState, RetransmissionTimer
from arqnet.routing.forwarder import LinkInfo, LinkTable


class Clock:
    """Manually advanced clock."""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestTimerManager:
    """Tests for the node-local timer service."""

    def test_timer_expires(self):
        clock = Clock()
        timers = TimerManager(clock)
        timers.start_timer('a', 1.0)

        clock.now = 0.5
        assert timers.check_timeouts() == []
        clock.now = 1.0
        assert timers.check_timeouts() == ['a']
        assert timers.get_timer('a').state == TimerState.EXPIRED

    def test_stopped_timer_never_fires(self):
        clock = Clock()
        timers = TimerManager(clock)
        handle = timers.start_timer('a', 1.0)
        timers.stop_timer(handle)

        clock.now = 5.0
        assert timers.check_timeouts() == []
        assert timers.get_active_count() == 0

    def test_restart_invalidates_old_expiry(self):
        clock = Clock()
        timers = TimerManager(clock)
        timers.start_timer('a', 1.0)

        clock.now = 0.8
        timers.start_timer('a', 1.0)

        clock.now = 1.2
        assert timers.check_timeouts() == []
        clock.now = 1.8
        assert timers.check_timeouts() == ['a']
        assert timers.get_timer('a').restarts == 1

    def test_stale_handle_does_not_stop_new_timer(self):
        clock = Clock()
        timers = TimerManager(clock)
        old = timers.start_timer('a', 1.0)
        timers.start_timer('a', 2.0)

        timers.stop_timer(old)
        assert timers.is_running('a')

    def test_stop_missing_timer_is_noop(self):
        timers = TimerManager(Clock())
        timers.stop_timer(None)

    def test_callback_and_order(self):
        clock = Clock()
        fired = []
        timers = TimerManager(clock, on_timeout=fired.append)
        timers.start_timer('late', 2.0)
        timers.start_timer('early', 1.0)

        clock.now = 3.0
        assert timers.check_timeouts() == ['early', 'late']
        assert fired == ['early', 'late']

    def test_statistics(self):
        clock = Clock()
        timers = TimerManager(clock)
        timers.start_timer('a', 1.0)
        clock.now = 1.0
        timers.check_timeouts()

        stats = timers.get_statistics()
        assert stats['total_timers_started'] == 1
        assert stats['total_timeouts'] == 1
        assert stats['active_timers'] == 0


class TestRetransmissionTimer:
    """Tests for the retransmission timer logic."""

    def make(self):
        clock = Clock()
        timers = TimerManager(clock)
        table = LinkTable([
            LinkInfo(1, bandwidth=56_000, propagation_delay=0.0025),
            LinkInfo(2, bandwidth=9_600, propagation_delay=0.01),
        ])
        return clock, timers, RetransmissionTimer(table, timers.start_timer, timers.stop_timer)

    def test_compute_timeout(self):
        _, _, timer = self.make()
        expected = TIMEOUT_MULTIPLIER * (100 * 8 / 56_000 + 0.0025)
        assert timer.compute_timeout(100, 1) == pytest.approx(expected)

    def test_flood_uses_slowest_link(self):
        _, timers, timer = self.make()
        connection = Connection(peer=4)

        timeout = timer.on_transmit(connection, 100, [1, 2])

        assert timeout == pytest.approx(timer.compute_timeout(100, 2))
        assert timers.is_running(4)

    def test_ack_cancels(self):
        _, timers, timer = self.make()
        connection = Connection(peer=4)
        timer.on_transmit(connection, 100, [1])

        timer.on_ack_matched(connection)
        assert connection.timer_handle is None
        assert not timers.is_running(4)

        # Cancelling twice is harmless
        timer.on_ack_matched(connection)

    def test_expiry_resends_exact_bytes(self):
        clock, timers, timer = self.make()
        connection = Connection(peer=4, state=ConnectionState.AWAITING_ACK)
        connection.last_transmissions = {2: b'second', 1: b'first'}
        timer.on_transmit(connection, 6, [1, 2])

        written = []
        copies = timer.on_expiry(connection, lambda link, data: written.append((link, data)))

        assert copies == 2
        assert written == [(1, b'first'), (2, b'second')]
        assert connection.retransmissions == 1
        assert timers.is_running(4)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
