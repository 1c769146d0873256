#!/usr/bin/env python3
"""
Stream Archiver - wires the fetcher, channel and rotation controller

    HttpStreamSource → BroadcastFetcher → BroadcastChannel → ArchiveWriter
                                                ↑
                              RotationController (hourly, main thread)

Only three things run concurrently: the fetcher thread, the live writer
thread, and the tick loop on the main thread. They share nothing but the
broadcast channel.

A fetcher that exhausts its retry budget is not restarted here. The
archiver closes the current archive and exits with status 1 so a process
supervisor (systemd, etc.) can restart the whole pipeline.

A writer that dies on a write error (disk full, etc.) is replaced with a
new archive file, at most once per writer_retry_sec and backing off
exponentially while replacements keep failing.

On shutdown the fetcher is stopped first and the live writer drains what
is left in the channel before it is closed. Chunks still queued when the
drain times out are dropped and logged.
"""

import json
import logging
import os
import signal
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .archive_config import ArchiveConfig
from .channel import BroadcastChannel
from .config import ArchiverConfig
from .fetcher import BroadcastFetcher
from .http_source import HttpStreamSource
from .rotation import RotationController, Ticker
from .session import BroadcastSession, OpenUrl

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FETCHER_FAILED = 1

MAX_WRITER_RETRY_SEC = 3600.0


class StreamArchiver:
    """
    Archives a live HTTP stream into hourly files.

    Usage:
        archiver = StreamArchiver(ArchiverConfig(url=..., root_dir=...))
        sys.exit(archiver.run())
    """

    def __init__(self, config: ArchiverConfig, open_url: Optional[OpenUrl] = None):
        """
        Args:
            config: Archiver configuration
            open_url: Stream open capability (requests-based by default)
        """
        self.config = config
        self.tz = config.tzinfo()

        if open_url is None:
            open_url = HttpStreamSource(
                connect_timeout=config.connect_timeout_sec,
                read_timeout=config.read_timeout_sec,
            )

        self.broadcast = BroadcastChannel(capacity=config.channel_capacity)
        self.session = BroadcastSession(
            stream_url=config.url,
            open_url=open_url,
            max_retries=config.max_retries,
            retry_sleep_time=config.retry_sleep_sec,
            broadcast=self.broadcast,
            chunk_size=config.chunk_size,
        )
        self.fetcher = BroadcastFetcher(self.session)
        self.archive = ArchiveConfig(
            config.root_dir, prefix=config.prefix, extension=config.extension)
        self.controller = RotationController(self.broadcast, self.archive)
        self.ticker = Ticker(interval=1.0, tz=self.tz)

        self.status_file = Path(config.status_file) if config.status_file else None
        self.start_time = time.time()
        self.exit_status = EXIT_OK

        self._writer_retries = 0
        self._next_writer_retry = 0.0

    def _install_signal_handlers(self):
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.ticker.stop()

    def run(self, install_signal_handlers: bool = True) -> int:
        """
        Run until a shutdown signal or a fatal fetcher failure.

        Returns:
            Process exit status

        Raises:
            DestinationOpenError: the first archive file cannot be created
        """
        logger.info("Starting archiver")
        logger.info(f"Stream: {self.config.url}")
        logger.info(f"Archive root: {self.config.root_dir}")

        if install_signal_handlers:
            self._install_signal_handlers()

        self.controller.start(datetime.now(tz=self.tz))
        self.fetcher.start()

        last_status = time.time()
        try:
            for tick in self.ticker:
                if self.fetcher.failed:
                    logger.error("Broadcast fetcher stopped permanently, exiting")
                    self.exit_status = EXIT_FETCHER_FAILED
                    break
                if not self.controller.on_tick(tick):
                    self._recover_writer(tick)

                now = time.time()
                if now - last_status >= self.config.status_interval_sec:
                    self._log_status()
                    self._write_status()
                    last_status = now
        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        finally:
            self._shutdown()

        return self.exit_status

    def _recover_writer(self, tick: datetime):
        """Start a fresh archive if the live writer died on a write error"""
        writer = self.controller.writer
        if writer is None:
            return
        if writer.error is None:
            if self._writer_retries and writer.bytes_written > 0:
                logger.info("Archive writer recovered")
                self._writer_retries = 0
            return

        now = time.monotonic()
        if now < self._next_writer_retry:
            return
        logger.warning(f"Archive writer failed ({writer.error}), starting a new archive")
        self.controller.recover(tick)
        self._writer_retries += 1
        backoff = min(self.config.writer_retry_sec * 2 ** (self._writer_retries - 1),
                      MAX_WRITER_RETRY_SEC)
        self._next_writer_retry = now + backoff

    def stop(self):
        """Ask run() to return after the current tick"""
        self.ticker.stop()

    def _shutdown(self):
        logger.info("Shutting down archiver")
        self.fetcher.stop(timeout=self.controller.stop_timeout)
        self._drain_channel(self.controller.stop_timeout)
        self.controller.stop()
        self._write_status()
        logger.info("Archiver stopped")

    def _drain_channel(self, timeout: float):
        """Let the live writer take what is still queued"""
        writer = self.controller.writer
        deadline = time.monotonic() + timeout
        while (self.broadcast.qsize() and writer is not None and writer.is_alive()
               and time.monotonic() < deadline):
            time.sleep(0.01)
        left = self.broadcast.qsize()
        if left:
            logger.warning(f"Dropping {left} queued chunks at shutdown")

    def get_status(self) -> Dict[str, Any]:
        writer = self.controller.writer
        return {
            'service': 'stream_archiver',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'uptime_seconds': int(time.time() - self.start_time),
            'pid': os.getpid(),
            'fetcher': self.fetcher.get_stats(),
            'writer': writer.get_stats() if writer else None,
            'channel': {
                'queued_chunks': self.broadcast.qsize(),
                'capacity': self.broadcast.capacity,
            },
            'rotations': self.controller.rotations,
            'failed_rotations': self.controller.failed_rotations,
            'writer_recoveries': self.controller.recoveries,
        }

    def _log_status(self):
        status = self.get_status()
        fetcher = status['fetcher']
        writer = status['writer'] or {}
        logger.info(
            f"Status: {fetcher['bytes_delivered']} bytes fetched, "
            f"retry {fetcher['retry_count']}/{fetcher['max_retries']}, "
            f"channel {status['channel']['queued_chunks']}/{status['channel']['capacity']}, "
            f"{writer.get('bytes_written', 0)} bytes in {writer.get('file')}"
        )

    def _write_status(self):
        """Write current status as JSON (atomic rename)"""
        if self.status_file is None:
            return
        try:
            self.status_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.status_file.with_suffix('.tmp')
            with open(temp_file, 'w') as f:
                json.dump(self.get_status(), f, indent=2)
            temp_file.replace(self.status_file)
        except OSError as e:
            logger.warning(f"Failed to write status file {self.status_file}: {e}")
