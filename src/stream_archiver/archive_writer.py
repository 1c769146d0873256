#!/usr/bin/env python3
"""
Archive Writer - drains the broadcast channel into one archive file

Each writer owns exactly one output file. It appends every chunk it takes
from the shared channel until its quit signal fires, then closes the file.
The file is a raw concatenation of stream bytes: no header, no index.

Architecture:
    BroadcastFetcher → BroadcastChannel → ArchiveWriter → archive file

Write failures on an open file stop the writer: the file is closed, the
error is kept on `writer.error` and logged. The failed chunk is not put
back on the channel.
"""

import logging
import threading
from typing import Any, BinaryIO, Callable, Dict, Optional

from .channel import BroadcastChannel, QuitSignal, DEFAULT_POLL_INTERVAL
from .errors import DestinationOpenError, DestinationWriteError

logger = logging.getLogger(__name__)

OpenFile = Callable[[str], BinaryIO]


def create_file(file_name: str) -> BinaryIO:
    """Default destination capability: create (or truncate) a binary file"""
    return open(file_name, 'wb')


class ArchiveWriter:
    """
    Writes one archive file from the shared broadcast channel.

    Usage:
        writer = ArchiveWriter(file_name, broadcast, QuitSignal())
        writer.start()        # opens the file, then drains in a thread
        ...
        writer.stop()         # fires quit, waits for the close
    """

    def __init__(
        self,
        file_name: str,
        broadcast: BroadcastChannel,
        quit: Optional[QuitSignal] = None,
        open_file: OpenFile = create_file,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.file_name = file_name
        self.broadcast = broadcast
        self.quit = quit if quit is not None else QuitSignal()
        self._open_file = open_file
        self.poll_interval = poll_interval

        self.output: Optional[BinaryIO] = None
        self.thread: Optional[threading.Thread] = None
        self.error: Optional[DestinationWriteError] = None
        self.closed = threading.Event()

        self.chunks_written = 0
        self.bytes_written = 0

    def open(self):
        """
        Create the destination file.

        Raises:
            DestinationOpenError: if the file cannot be created
        """
        logger.debug(f"Opening new archive file {self.file_name}")
        try:
            self.output = self._open_file(self.file_name)
        except OSError as e:
            logger.info(f"Error while creating {self.file_name}: {e}")
            raise DestinationOpenError(self.file_name, e) from e

    def run(self):
        """Append chunks until quit fires, then close the file"""
        if self.output is None:
            raise RuntimeError("ArchiveWriter.run() called before open()")
        try:
            while True:
                chunk = self.broadcast.take(self.quit, self.poll_interval)
                if chunk is None:
                    return
                try:
                    self.output.write(chunk)
                except OSError as e:
                    self.error = DestinationWriteError(self.file_name, e)
                    logger.error(f"Stopping archive writer: {self.error}")
                    return
                self.chunks_written += 1
                self.bytes_written += len(chunk)
        finally:
            self._close()

    def _close(self):
        try:
            self.output.close()
        except OSError as e:
            logger.error(f"Error closing {self.file_name}: {e}")
        finally:
            self.closed.set()
            logger.debug(f"Closed archive file {self.file_name} "
                         f"({self.bytes_written} bytes)")

    def start(self):
        """Open the file synchronously, then drain the channel in a thread"""
        self.open()
        self.thread = threading.Thread(
            target=self.run, name="archive-writer", daemon=True)
        self.thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Fire the quit signal and wait for the file to be closed.

        Returns:
            True once the file is closed, False on timeout
        """
        self.quit.fire()
        if self.thread is not None:
            self.thread.join(timeout)
        return self.closed.is_set()

    def is_alive(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def get_stats(self) -> Dict[str, Any]:
        return {
            'file': self.file_name,
            'running': self.is_alive(),
            'chunks_written': self.chunks_written,
            'bytes_written': self.bytes_written,
            'error': str(self.error) if self.error else None,
        }


def write_archive_file(writer: ArchiveWriter):
    """Open the writer's destination and drain the channel until quit"""
    writer.open()
    writer.run()
