#!/usr/bin/env python3
"""
Rotation Controller - hourly archive file rotation

Keeps exactly one live ArchiveWriter. On every tick that lands exactly on
the top of an hour (minute == 0 and second == 0), it starts a writer for a
new file on the same broadcast channel and then stops the old one:

    Active(old) → Rotating → Active(new)

The new writer is draining the channel before the old one is told to
quit, so no chunk is dropped at the boundary. For a brief moment both
writers take from the channel; each chunk still lands in exactly one file.
Which file the chunks around the boundary end up in is best effort.

A tick missed by a slow consumer misses that hour's rotation. The next
rotation happens at the following hour. A repeated boundary tick for an
hour that was already handled is ignored.
"""

import logging
import threading
import time
from datetime import datetime, tzinfo
from typing import Callable, Iterable, Iterator, Optional

from .archive_writer import ArchiveWriter
from .channel import BroadcastChannel
from .errors import DestinationOpenError

logger = logging.getLogger(__name__)

NameArchive = Callable[[datetime], str]
WriterFactory = Callable[[str, BroadcastChannel], ArchiveWriter]

DEFAULT_STOP_TIMEOUT = 5.0


def is_rotation_boundary(ts: datetime) -> bool:
    return ts.minute == 0 and ts.second == 0


def _hour_of(ts: datetime) -> datetime:
    return ts.replace(minute=0, second=0, microsecond=0)


class Ticker:
    """
    Yields wall-clock timestamps once per interval, aligned to whole seconds.

    Ticks are not queued: if the consumer takes longer than one interval,
    the ticks in between are skipped. Ticks strictly increase; a repeat of
    the previous second (early wake, clock stepped back) is dropped.
    """

    def __init__(self, interval: float = 1.0, tz: Optional[tzinfo] = None):
        if interval <= 0:
            raise ValueError("ticker interval must be positive")
        self.interval = interval
        self.tz = tz
        self._stopped = threading.Event()

    def __iter__(self) -> Iterator[datetime]:
        last: Optional[int] = None
        while True:
            delay = self.interval - (time.time() % self.interval)
            if self._stopped.wait(delay):
                return
            # Sleep wakes a hair early sometimes; round to the nearest second
            now = round(time.time())
            if last is not None and now <= last:
                continue
            last = now
            yield datetime.fromtimestamp(now, tz=self.tz)

    def stop(self):
        self._stopped.set()


class RotationController:
    """
    Owns the live archive writer and rotates it at each hour boundary.

    Example:
        controller = RotationController(broadcast, ArchiveConfig('./archives'))
        controller.start(datetime.now())
        controller.run(Ticker())
    """

    def __init__(
        self,
        broadcast: BroadcastChannel,
        name_archive: NameArchive,
        writer_factory: WriterFactory = ArchiveWriter,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    ):
        """
        Args:
            broadcast: Channel shared with the fetcher
            name_archive: Maps a rotation timestamp to an archive file path
            writer_factory: Builds a writer for (file_name, broadcast)
            stop_timeout: Seconds to wait for an old writer to close
        """
        self.broadcast = broadcast
        self.name_archive = name_archive
        self.writer_factory = writer_factory
        self.stop_timeout = stop_timeout

        self.writer: Optional[ArchiveWriter] = None
        self.rotations = 0
        self.failed_rotations = 0
        self.recoveries = 0
        self._last_boundary: Optional[datetime] = None
        self._stopped = threading.Event()

    def _start_writer(self, ts: datetime) -> ArchiveWriter:
        file_name = self.name_archive(ts)
        writer = self.writer_factory(file_name, self.broadcast)
        writer.start()
        logger.info(f"Archiving to {file_name}")
        return writer

    def start(self, ts: datetime) -> ArchiveWriter:
        """
        Start the initial writer.

        Raises:
            DestinationOpenError: the first archive file cannot be created
        """
        self.writer = self._start_writer(ts)
        if is_rotation_boundary(ts):
            self._last_boundary = _hour_of(ts)
        return self.writer

    def _swap(self, ts: datetime) -> bool:
        """Start a writer for `ts`, then stop the old one"""
        old = self.writer
        try:
            new = self._start_writer(ts)
        except (DestinationOpenError, OSError) as e:
            logger.error(f"Cannot start archive for {ts}, keeping current archive: {e}")
            return False

        self.writer = new
        if old is not None:
            if not old.stop(self.stop_timeout):
                logger.warning(f"Archive {old.file_name} did not close "
                               f"within {self.stop_timeout}s")
            logger.info(f"Closed archive {old.file_name} "
                        f"({old.bytes_written} bytes)")
        return True

    def rotate(self, ts: datetime) -> bool:
        """
        Replace the live writer with one for a file named after `ts`.

        If the new file cannot be created the old writer stays live.

        Returns:
            True if the rotation happened
        """
        if self._swap(ts):
            self.rotations += 1
            return True
        self.failed_rotations += 1
        return False

    def recover(self, ts: datetime) -> bool:
        """Replace a writer that died on a write error, outside the hourly schedule"""
        if self._swap(ts):
            self.recoveries += 1
            return True
        return False

    def on_tick(self, ts: datetime) -> bool:
        """
        Rotate if `ts` is an hour boundary that was not handled yet.

        Returns:
            True on rotation
        """
        if not is_rotation_boundary(ts):
            return False
        hour = _hour_of(ts)
        if self._last_boundary is not None and hour <= self._last_boundary:
            logger.debug(f"Ignoring repeated boundary tick {ts}")
            return False
        self._last_boundary = hour
        return self.rotate(ts)

    def run(self, ticks: Iterable[datetime]):
        """Handle ticks until the iterable ends or stop() is called"""
        for tick in ticks:
            if self._stopped.is_set():
                break
            self.on_tick(tick)

    def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop handling ticks and close the live writer"""
        self._stopped.set()
        if self.writer is None:
            return True
        return self.writer.stop(self.stop_timeout if timeout is None else timeout)
