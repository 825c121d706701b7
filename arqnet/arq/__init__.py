"""
ARQ package - Stop-and-Wait ARQ protocol components.

Contains implementations for:
- Frame structure, checksum and encoding
- Per-peer connection state with alternating bits
- Timer management and retransmission timing
- The stop-and-wait state machine
"""

from .frame import (
    Frame, FrameKind, FrameError, ChecksumError, MalformedFrameError,
    encode, decode
)
from .connection import Connection, ConnectionState, ConnectionTable, SequenceBit
from .timer import TimerManager, TimerHandle, RetransmissionTimer
from .state_machine import (
    StopAndWaitARQ, AckPolicy, ARQError, SenderBusyError, PayloadTooLargeError
)

__all__ = [
    'Frame',
    'FrameKind',
    'FrameError',
    'ChecksumError',
    'MalformedFrameError',
    'encode',
    'decode',
    'Connection',
    'ConnectionState',
    'ConnectionTable',
    'SequenceBit',
    'TimerManager',
    'TimerHandle',
    'RetransmissionTimer',
    'StopAndWaitARQ',
    'AckPolicy',
    'ARQError',
    'SenderBusyError',
    'PayloadTooLargeError'
]
