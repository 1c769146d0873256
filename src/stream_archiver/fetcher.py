#!/usr/bin/env python3
"""
Broadcast Fetcher - pulls the live stream into the broadcast channel

State machine per attempt:

    check budget ──exhausted──> RetryBudgetExhausted (terminal)
         │
       open ──OpenError──> increment retry ──> check budget
         │
       read chunk ──ReadError/short read──> increment retry, close ──> check budget
         │
       reset retry count (if recovering)
         │
       offer chunk ──quit──> return
         └──────────> read chunk

Open and read errors never escape stream_broadcast(); only budget
exhaustion does.
"""

import logging
import threading
import time
from typing import Any, Dict, Optional

from .errors import OpenError, ReadError, RetryBudgetExhausted
from .session import BroadcastSession, StreamReader

logger = logging.getLogger(__name__)


class FetcherStats:
    """Counters updated by the fetcher thread"""

    def __init__(self):
        self.opens = 0
        self.chunks = 0
        self.bytes = 0
        self.recoveries = 0


def read_chunk(stream: StreamReader, size: int) -> bytes:
    """
    Read exactly `size` bytes.

    Raises:
        ReadError: if the stream fails or ends before the chunk is full
    """
    parts = []
    received = 0
    while received < size:
        try:
            data = stream.read(size - received)
        except OSError as e:
            raise ReadError(f"read failed: {e}", bytes_read=received) from e
        if not data:
            raise ReadError(
                f"unexpected end of stream after {received} of {size} bytes",
                bytes_read=received)
        parts.append(data)
        received += len(data)
    return b"".join(parts)


def _close_quietly(stream: StreamReader, url: str):
    try:
        stream.close()
    except Exception as e:
        logger.debug(f"Error closing stream {url}: {e}")


def stream_broadcast(session: BroadcastSession,
                     stats: Optional[FetcherStats] = None) -> None:
    """
    Stream the broadcast into session.broadcast until quit.

    Returns:
        None once the quit signal fires

    Raises:
        RetryBudgetExhausted: retry_count reached max_retries
    """
    url = session.stream_url
    while True:
        if session.retry.exhausted:
            logger.info("Too many error recovery retries")
            raise RetryBudgetExhausted(session.retry_count, session.max_retries)

        if session.quit.is_set():
            logger.info("Stopping stream from quit signal")
            return None

        logger.info(f"Streaming broadcast from {url}")
        try:
            stream = session.open_url(url)
        except (OpenError, OSError) as e:
            logger.info(f"Error while downloading {url}: {e}")
            session.increment_retry()
            continue

        if stats is not None:
            stats.opens += 1

        try:
            while True:
                try:
                    chunk = read_chunk(stream, session.chunk_size)
                except ReadError as e:
                    logger.info(f"Error while streaming {url}: {e}")
                    session.increment_retry()
                    break

                if session.retry_count > 0:
                    logger.info("Recovered from last error")
                    session.reset_retry_count()
                    if stats is not None:
                        stats.recoveries += 1

                if not session.broadcast.offer(chunk, session.quit):
                    logger.info("Stopping stream from quit signal")
                    return None

                if stats is not None:
                    stats.chunks += 1
                    stats.bytes += len(chunk)
        finally:
            _close_quietly(stream, url)


class BroadcastFetcher:
    """
    Runs stream_broadcast() in its own thread.

    A fetcher whose retry budget is exhausted is not restarted; the
    failure is kept in `error` for the owner to act on.
    """

    def __init__(self, session: BroadcastSession):
        self.session = session
        self.stats = FetcherStats()
        self.error: Optional[BaseException] = None
        self.finished = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self.start_time: Optional[float] = None

    def start(self):
        if self.thread is not None:
            logger.warning("Broadcast fetcher already started")
            return
        self.start_time = time.time()
        self.thread = threading.Thread(
            target=self._run, name="broadcast-fetcher", daemon=True)
        self.thread.start()

    def _run(self):
        try:
            stream_broadcast(self.session, self.stats)
        except RetryBudgetExhausted as e:
            self.error = e
            logger.error(f"Broadcast fetcher gave up: {e}")
        except Exception as e:
            self.error = e
            logger.error(f"Broadcast fetcher crashed: {e}", exc_info=True)
        finally:
            self.finished.set()

    def stop(self, timeout: Optional[float] = None):
        """Fire the quit signal and wait for the thread to exit"""
        self.session.quit.fire()
        if self.thread is not None:
            self.thread.join(timeout)

    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    @property
    def failed(self) -> bool:
        return self.finished.is_set() and self.error is not None

    def get_stats(self) -> Dict[str, Any]:
        return {
            'url': self.session.stream_url,
            'running': self.is_alive(),
            'opens': self.stats.opens,
            'chunks_delivered': self.stats.chunks,
            'bytes_delivered': self.stats.bytes,
            'recoveries': self.stats.recoveries,
            'retry_count': self.session.retry_count,
            'max_retries': self.session.max_retries,
            'error': str(self.error) if self.error else None,
            'uptime_seconds': time.time() - self.start_time if self.start_time else 0,
        }
