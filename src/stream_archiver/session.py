#!/usr/bin/env python3
"""
Broadcast Session - state owned by the stream fetcher

Holds the stream URL, the shared broadcast channel, the quit signal, the
injected open_url capability, and the retry state machine:

    RetryState{count, max_retries, backoff_sec}
        increment()  sleep backoff, then count += 1
        reset()      count = 0
        exhausted    count >= max_retries

Invariant: 0 <= count <= max_retries. The fetcher checks `exhausted`
before every connection attempt, including the first.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from .channel import BroadcastChannel, QuitSignal

logger = logging.getLogger(__name__)

BROADCAST_BUFF_SIZE = 1024 * 64   # 64 KiB per chunk
DEFAULT_MAX_RETRIES = 8
DEFAULT_RETRY_SLEEP_SEC = 2.0


class StreamReader(Protocol):
    """Readable byte stream returned by an open_url capability"""

    def read(self, size: int) -> bytes:
        ...

    def close(self) -> None:
        ...


OpenUrl = Callable[[str], StreamReader]


@dataclass
class RetryState:
    """Consecutive failure counter with a fixed backoff"""
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_sec: float = DEFAULT_RETRY_SLEEP_SEC
    count: int = 0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_sec < 0:
            raise ValueError("backoff_sec must be >= 0")

    @property
    def exhausted(self) -> bool:
        return self.count >= self.max_retries

    def increment(self) -> int:
        """Block for the backoff period, then count one more failure"""
        self.sleep(self.backoff_sec)
        self.count = min(self.count + 1, self.max_retries)
        return self.count

    def reset(self):
        self.count = 0


class BroadcastSession:
    """
    Mutable state for one broadcast fetcher.

    Created once at startup with a zero retry count. Only the fetcher
    thread mutates it.
    """

    def __init__(
        self,
        stream_url: str,
        open_url: OpenUrl,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_sleep_time: float = DEFAULT_RETRY_SLEEP_SEC,
        broadcast: Optional[BroadcastChannel] = None,
        quit: Optional[QuitSignal] = None,
        chunk_size: int = BROADCAST_BUFF_SIZE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            stream_url: Upstream stream URL
            open_url: Capability returning a StreamReader or raising OpenError
            max_retries: Consecutive failures tolerated before giving up
            retry_sleep_time: Seconds to sleep before each retry
            broadcast: Shared chunk channel (a new one if omitted)
            quit: Quit signal (a new one if omitted)
            chunk_size: Bytes per chunk
            sleep: Sleep function used for backoff
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.stream_url = stream_url
        self._open_url = open_url
        self.retry = RetryState(max_retries=max_retries,
                                backoff_sec=retry_sleep_time, sleep=sleep)
        self.broadcast = broadcast if broadcast is not None else BroadcastChannel()
        self.quit = quit if quit is not None else QuitSignal()
        self.chunk_size = chunk_size

    def open_url(self, url: str) -> StreamReader:
        return self._open_url(url)

    @property
    def retry_count(self) -> int:
        return self.retry.count

    @property
    def max_retries(self) -> int:
        return self.retry.max_retries

    def increment_retry(self):
        """Sleep for the backoff period, then increment and log"""
        count = self.retry.increment()
        logger.info(f"Retrying... (retry {count}/{self.max_retries})")

    def reset_retry_count(self):
        self.retry.reset()
