#!/usr/bin/env python3
"""
Broadcast Channel - bounded chunk conduit between fetcher and writer

The fetcher offers fixed-size chunks, whichever archive writer is live
takes them. The queue capacity is the only backpressure: a full channel
blocks the fetcher until a writer drains it. Nothing is ever dropped.

Both sides race their queue operation against a quit signal by polling
with a short timeout, so a fired quit is noticed within poll_interval.

During a rotation two writers may briefly call take() on the same channel.
Each chunk is still handed to exactly one of them.
"""

import queue
import threading
from typing import Optional

DEFAULT_CAPACITY = 256        # chunks (16 MiB at 64 KiB per chunk)
DEFAULT_POLL_INTERVAL = 0.1   # seconds


class QuitSignal:
    """One-shot stop notification for a running loop"""

    def __init__(self):
        self._event = threading.Event()

    def fire(self):
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class BroadcastChannel:
    """
    Bounded FIFO of stream chunks.

    Example:
        channel = BroadcastChannel(capacity=256)
        channel.offer(chunk, quit)     # fetcher side
        chunk = channel.take(quit)     # writer side, None once quit fires
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("channel capacity must be positive")
        self.capacity = capacity
        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=capacity)

    def offer(self, chunk: bytes, quit: QuitSignal,
              poll_interval: float = DEFAULT_POLL_INTERVAL) -> bool:
        """
        Enqueue a chunk, blocking while the channel is full.

        Returns:
            True if the chunk was enqueued, False if quit fired first
        """
        while not quit.is_set():
            try:
                self._queue.put(chunk, timeout=poll_interval)
                return True
            except queue.Full:
                continue
        return False

    def take(self, quit: QuitSignal,
             poll_interval: float = DEFAULT_POLL_INTERVAL) -> Optional[bytes]:
        """
        Dequeue the next chunk, blocking while the channel is empty.

        Returns:
            The chunk, or None if quit fired first
        """
        while not quit.is_set():
            try:
                return self._queue.get(timeout=poll_interval)
            except queue.Empty:
                continue
        return None

    def qsize(self) -> int:
        return self._queue.qsize()
