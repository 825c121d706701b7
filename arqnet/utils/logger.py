"""
Simulation Logger

This module provides logging utilities for the protocol and the
simulator, with configurable verbosity levels and structured output.
"""

from typing import Iterable, Optional, TextIO
from datetime import datetime
from enum import IntEnum
import sys
import os
sys.path.insert(0, '..')
from config import DEFAULT_LOG_LEVEL


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


class SimulationLogger:
    """
    Logger for protocol and simulation events.

    Provides structured logging with timestamps and categories.

    Attributes:
        name: Logger name
        level: Minimum log level
        file: Optional file for logging
    """

    # Color codes for terminal output
    COLORS = {
        LogLevel.DEBUG: '\033[36m',     # Cyan
        LogLevel.INFO: '\033[32m',      # Green
        LogLevel.WARNING: '\033[33m',   # Yellow
        LogLevel.ERROR: '\033[31m',     # Red
        LogLevel.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(
        self,
        name: str = "Simulator",
        level: int = DEFAULT_LOG_LEVEL,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        include_timestamp: bool = True,
        stream: Optional[TextIO] = None
    ):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Minimum log level
            log_file: Optional file path for logging
            use_colors: Use ANSI colors in output
            include_timestamp: Include timestamps in log messages
            stream: Console stream (defaults to stdout)
        """
        self.name = name
        self.level = level
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp
        self.stream = stream

        self.file: Optional[TextIO] = None
        if log_file:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.file = open(log_file, 'w')

        # Simulation time tracking
        self.sim_time: Optional[float] = None

        # Message counts
        self.message_counts = {level: 0 for level in LogLevel}

    def set_sim_time(self, time: float):
        """Set current simulation time for log messages."""
        self.sim_time = time

    def set_level(self, level: int):
        """Set minimum log level."""
        self.level = level

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ) -> str:
        """Format a log message."""
        parts = []

        if self.include_timestamp:
            if self.sim_time is not None:
                parts.append(f"[{self.sim_time:10.6f}s]")
            else:
                parts.append(f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}]")

        level_str = level.name.ljust(8)
        if self.use_colors:
            level_str = f"{self.COLORS[level]}{level_str}{self.RESET}"
        parts.append(level_str)

        parts.append(f"[{self.name}]")

        if category:
            parts.append(f"[{category}]")

        parts.append(message)

        return " ".join(parts)

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ):
        """Log a message."""
        if level < self.level:
            return

        self.message_counts[level] += 1
        formatted = self._format_message(level, message, category)

        print(formatted, file=self.stream or sys.stdout)

        if self.file:
            # Strip color codes for file
            clean = formatted
            for color in self.COLORS.values():
                clean = clean.replace(color, '')
            clean = clean.replace(self.RESET, '')
            self.file.write(clean + '\n')
            self.file.flush()

    def debug(self, message: str, category: Optional[str] = None):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        """Log info message."""
        self._log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        """Log warning message."""
        self._log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        """Log error message."""
        self._log(LogLevel.ERROR, message, category)

    def critical(self, message: str, category: Optional[str] = None):
        """Log critical message."""
        self._log(LogLevel.CRITICAL, message, category)

    # Convenience methods for protocol events
    def frame_sent(self, node: int, frame, links: Iterable[int]):
        """Log DATA frame sent event."""
        self.debug(f"Node {node}: DATA seq={frame.seq} -> {frame.dest} "
                   f"on links {list(links)}, size={frame.total_size}B", "TX")

    def frame_received(self, node: int, frame, link: int, duplicate: bool):
        """Log DATA frame received event."""
        status = "DUPLICATE" if duplicate else "NEW"
        self.debug(f"Node {node}: DATA seq={frame.seq} from {frame.src} "
                   f"on link {link}, hops={frame.hop_count}, {status}", "RX")

    def ack_sent(self, node: int, frame, link: int):
        """Log ACK sent event."""
        self.debug(f"Node {node}: ACK {frame.ack} -> {frame.dest} on link {link}, "
                   f"chosen_link={frame.chosen_link}", "ACK")

    def ack_received(self, node: int, frame, accepted: bool):
        """Log ACK received event."""
        status = "accepted" if accepted else "stray"
        self.debug(f"Node {node}: ACK {frame.ack} from {frame.src} {status}, "
                   f"hops={frame.hop_count}", "ACK")

    def timeout(self, node: int, peer: int, retransmit_count: int):
        """Log timeout event."""
        self.warning(f"Node {node}: timeout for {peer} (retx #{retransmit_count})",
                     "TIMEOUT")

    def retransmit(self, node: int, peer: int, copies: int):
        """Log retransmission event."""
        self.info(f"Node {node}: retransmitting to {peer} ({copies} copies)", "RETX")

    def relay(self, node: int, frame, arrival_link: int, links: Iterable[int]):
        """Log relay event."""
        self.debug(f"Node {node}: relay {frame.kind.name} {frame.src}->{frame.dest} "
                   f"from link {arrival_link} to {list(links)}, "
                   f"hops={frame.hop_count}", "RELAY")

    def checksum_failure(self, node: int, link: int, relay: bool = False):
        """Log checksum failure."""
        where = "relay" if relay else "destination"
        self.warning(f"Node {node}: BAD frame on link {link} dropped at {where}",
                     "CHECKSUM")

    def path_discovered(self, node: int, destination: int, link: int, strategy: str):
        """Log path discovery event."""
        self.info(f"Node {node}: shortest path to {destination} is link {link} "
                  f"({strategy})", "PATH")

    def application_state(self, node: int, enabled: bool):
        """Log application enable/disable."""
        state = "enabled" if enabled else "disabled"
        self.debug(f"Node {node}: application {state}", "APP")

    def simulation_start(self, params: dict):
        """Log simulation start."""
        param_str = ", ".join(f"{k}={v}" for k, v in params.items())
        self.info(f"Simulation started: {param_str}", "SIM")

    def simulation_end(self, summary: dict):
        """Log simulation end."""
        self.info(f"Simulation ended: delivered={summary.get('messages_delivered', 0)}"
                  f"/{summary.get('messages_submitted', 0)}", "SIM")

    def get_summary(self) -> dict:
        """Get logging summary."""
        return {
            'message_counts': dict(self.message_counts),
            'total_messages': sum(self.message_counts.values())
        }

    def close(self):
        """Close log file if open."""
        if self.file:
            self.file.close()
            self.file = None

    def __del__(self):
        """Cleanup on deletion."""
        self.close()


# Global logger instance
_global_logger: Optional[SimulationLogger] = None


def get_logger() -> SimulationLogger:
    """Get global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = SimulationLogger()
    return _global_logger


def set_logger(logger: SimulationLogger):
    """Set global logger instance."""
    global _global_logger
    _global_logger = logger
