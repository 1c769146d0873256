"""
Stream Archiver - continuous archiving of a live HTTP audio stream

Pulls a live stream, buffers it through a bounded channel, and writes it
to disk as hourly archive files rotated at the top of each hour.

Key Features:
- Retry with backoff on connection and read errors, bounded retry budget
- Gapless hourly rotation: the next file starts before the old one closes
- Injectable stream and file capabilities for testing without I/O

Quick Start:
    from stream_archiver import ArchiverConfig, StreamArchiver

    config = ArchiverConfig(url="http://chirpradio.org/stream",
                            root_dir="./archives")
    StreamArchiver(config).run()
"""

__version__ = "1.0.0"

from .errors import (
    ArchiverError, OpenError, ReadError, RetryBudgetExhausted,
    DestinationOpenError, DestinationWriteError, ConfigError,
)
from .channel import BroadcastChannel, QuitSignal
from .session import BroadcastSession, RetryState, BROADCAST_BUFF_SIZE
from .fetcher import BroadcastFetcher, stream_broadcast, read_chunk
from .http_source import HttpStreamSource, HttpStream
from .archive_writer import ArchiveWriter, write_archive_file
from .archive_config import ArchiveConfig
from .rotation import RotationController, Ticker, is_rotation_boundary
from .config import ArchiverConfig, load_config
from .archiver import StreamArchiver

__all__ = [
    # Errors
    "ArchiverError",
    "OpenError",
    "ReadError",
    "RetryBudgetExhausted",
    "DestinationOpenError",
    "DestinationWriteError",
    "ConfigError",
    # Fetching
    "BroadcastChannel",
    "QuitSignal",
    "BroadcastSession",
    "RetryState",
    "BROADCAST_BUFF_SIZE",
    "BroadcastFetcher",
    "stream_broadcast",
    "read_chunk",
    "HttpStreamSource",
    "HttpStream",
    # Archiving
    "ArchiveWriter",
    "write_archive_file",
    "ArchiveConfig",
    "RotationController",
    "Ticker",
    "is_rotation_boundary",
    # Application
    "ArchiverConfig",
    "load_config",
    "StreamArchiver",
]
