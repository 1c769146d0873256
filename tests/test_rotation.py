#!/usr/bin/env python3
"""Tests for hourly archive rotation"""

import shutil
import tempfile
import time
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from stream_archiver.archive_config import ArchiveConfig
from stream_archiver.archive_writer import ArchiveWriter
from stream_archiver.channel import BroadcastChannel, QuitSignal
from stream_archiver.errors import DestinationOpenError
from stream_archiver.rotation import RotationController, Ticker, is_rotation_boundary


class MockWriter:
    """Writer stand-in that records start/stop calls"""

    def __init__(self, file_name, broadcast, fail=False):
        self.file_name = file_name
        self.broadcast = broadcast
        self.quit = QuitSignal()
        self.fail = fail
        self.started = False
        self.bytes_written = 0

    def start(self):
        if self.fail:
            raise DestinationOpenError(self.file_name, "read-only file system")
        self.started = True

    def stop(self, timeout=None):
        self.quit.fire()
        return True


class MockWriterFactory:

    def __init__(self):
        self.writers = []
        self.fail_next = False

    def __call__(self, file_name, broadcast):
        writer = MockWriter(file_name, broadcast, fail=self.fail_next)
        self.writers.append(writer)
        return writer


def name_by_timestamp(ts):
    return f"chirpradio_{ts:%Y-%m-%d_%H%M%S}.mp3"


class TestRotationBoundary(unittest.TestCase):

    def test_top_of_hour(self):
        self.assertTrue(is_rotation_boundary(datetime(2015, 9, 18, 23, 0, 0)))
        self.assertTrue(is_rotation_boundary(datetime(2015, 9, 18, 0, 0, 0, 999)))

    def test_not_top_of_hour(self):
        self.assertFalse(is_rotation_boundary(datetime(2015, 9, 18, 23, 59, 59)))
        self.assertFalse(is_rotation_boundary(datetime(2015, 9, 18, 23, 0, 1)))
        self.assertFalse(is_rotation_boundary(datetime(2015, 9, 18, 23, 1, 0)))


class TestRotationController(unittest.TestCase):

    def setUp(self):
        self.broadcast = BroadcastChannel(capacity=8)
        self.factory = MockWriterFactory()
        self.controller = RotationController(
            self.broadcast, name_by_timestamp, writer_factory=self.factory)

    def test_start_creates_initial_writer(self):
        writer = self.controller.start(datetime(2015, 9, 18, 22, 17, 3))
        self.assertTrue(writer.started)
        self.assertIs(writer.broadcast, self.broadcast)
        self.assertEqual(writer.file_name, 'chirpradio_2015-09-18_221703.mp3')

    def test_start_failure_propagates(self):
        self.factory.fail_next = True
        with self.assertRaises(DestinationOpenError):
            self.controller.start(datetime(2015, 9, 18, 22, 17, 3))

    def test_rotates_at_midnight(self):
        self.controller.start(datetime(2015, 9, 18, 23, 30, 0))
        old = self.controller.writer

        self.assertFalse(self.controller.on_tick(datetime(2015, 9, 18, 23, 59, 59)))
        self.assertEqual(len(self.factory.writers), 1)
        self.assertFalse(old.quit.is_set())

        self.assertTrue(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertEqual(len(self.factory.writers), 2)
        new = self.controller.writer
        self.assertIsNot(new, old)
        self.assertTrue(new.started)
        self.assertIs(new.broadcast, old.broadcast)
        self.assertTrue(old.quit.is_set())
        self.assertFalse(new.quit.is_set())
        self.assertIn('2015-09-19_000000', new.file_name)
        self.assertEqual(self.controller.rotations, 1)

    def test_failed_rotation_keeps_old_writer(self):
        self.controller.start(datetime(2015, 9, 18, 23, 30, 0))
        old = self.controller.writer
        self.factory.fail_next = True

        self.assertFalse(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertIs(self.controller.writer, old)
        self.assertFalse(old.quit.is_set())
        self.assertEqual(self.controller.failed_rotations, 1)

        self.factory.fail_next = False
        self.assertTrue(self.controller.on_tick(datetime(2015, 9, 19, 1, 0, 0)))
        self.assertTrue(old.quit.is_set())

    def test_run_consumes_ticks(self):
        self.controller.start(datetime(2015, 9, 18, 22, 59, 58))
        ticks = [
            datetime(2015, 9, 18, 22, 59, 59),
            datetime(2015, 9, 18, 23, 0, 0),
            datetime(2015, 9, 18, 23, 0, 1),
            datetime(2015, 9, 19, 0, 0, 0),
        ]
        self.controller.run(ticks)

        names = [w.file_name for w in self.factory.writers]
        self.assertEqual(names, [
            'chirpradio_2015-09-18_225958.mp3',
            'chirpradio_2015-09-18_230000.mp3',
            'chirpradio_2015-09-19_000000.mp3',
        ])

    def test_missed_boundary_tick_skips_rotation(self):
        self.controller.start(datetime(2015, 9, 18, 22, 59, 58))
        self.controller.run([
            datetime(2015, 9, 18, 22, 59, 59),
            datetime(2015, 9, 18, 23, 0, 1),
        ])
        self.assertEqual(len(self.factory.writers), 1)

    def test_repeated_boundary_tick_rotates_once(self):
        self.controller.start(datetime(2015, 9, 18, 23, 30, 0))
        self.assertTrue(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertFalse(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertEqual(len(self.factory.writers), 2)
        self.assertEqual(self.controller.rotations, 1)

        self.assertTrue(self.controller.on_tick(datetime(2015, 9, 19, 1, 0, 0)))
        self.assertEqual(self.controller.rotations, 2)

    def test_boundary_tick_after_start_at_boundary(self):
        self.controller.start(datetime(2015, 9, 19, 0, 0, 0))
        self.assertFalse(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertEqual(len(self.factory.writers), 1)

    def test_boundary_tick_after_clock_stepped_back(self):
        self.controller.start(datetime(2015, 9, 18, 23, 30, 0))
        self.controller.on_tick(datetime(2015, 9, 19, 1, 0, 0))
        self.assertFalse(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertEqual(self.controller.rotations, 1)

    def test_recover_counts_separately(self):
        self.controller.start(datetime(2015, 9, 18, 23, 30, 0))
        old = self.controller.writer

        self.assertTrue(self.controller.recover(datetime(2015, 9, 18, 23, 30, 5)))
        self.assertTrue(old.quit.is_set())
        self.assertIsNot(self.controller.writer, old)
        self.assertEqual(self.controller.recoveries, 1)
        self.assertEqual(self.controller.rotations, 0)

        self.factory.fail_next = True
        self.assertFalse(self.controller.recover(datetime(2015, 9, 18, 23, 30, 6)))
        self.assertEqual(self.controller.recoveries, 1)
        self.factory.fail_next = False

        self.assertTrue(self.controller.on_tick(datetime(2015, 9, 19, 0, 0, 0)))
        self.assertEqual(self.controller.rotations, 1)

    def test_stop_closes_live_writer(self):
        self.controller.start(datetime(2015, 9, 18, 22, 0, 5))
        self.assertTrue(self.controller.stop())
        self.assertTrue(self.controller.writer.quit.is_set())
        self.controller.run([datetime(2015, 9, 18, 23, 0, 0)])
        self.assertEqual(len(self.factory.writers), 1)


class TestRotationHandoff(unittest.TestCase):
    """Rotation with real writers and files: no chunk lost or duplicated"""

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp(prefix='archiver_test_')

    def tearDown(self):
        shutil.rmtree(self.tmp_dir)

    def test_no_chunk_lost_across_rotation(self):
        broadcast = BroadcastChannel(capacity=64)
        quit = QuitSignal()
        controller = RotationController(
            broadcast, ArchiveConfig(self.tmp_dir),
            writer_factory=lambda name, b: ArchiveWriter(name, b, poll_interval=0.01))

        chunks = [f"{i:04d}".encode() for i in range(40)]
        controller.start(datetime(2015, 9, 18, 22, 30, 0))
        first = controller.writer
        for chunk in chunks[:20]:
            broadcast.offer(chunk, quit)
        controller.on_tick(datetime(2015, 9, 18, 23, 0, 0))
        for chunk in chunks[20:]:
            broadcast.offer(chunk, quit)

        deadline = time.monotonic() + 3
        while broadcast.qsize() and time.monotonic() < deadline:
            time.sleep(0.01)
        second = controller.writer
        controller.stop(timeout=3)

        self.assertTrue(first.closed.is_set())
        self.assertTrue(second.closed.is_set())
        self.assertNotEqual(first.file_name, second.file_name)
        data = Path(first.file_name).read_bytes() + Path(second.file_name).read_bytes()
        written = [data[i:i + 4] for i in range(0, len(data), 4)]
        self.assertEqual(sorted(written), chunks)


class TestTicker(unittest.TestCase):

    def test_yields_whole_second_timestamps(self):
        ticker = Ticker(interval=1.0)
        tick = next(iter(ticker))
        self.assertEqual(tick.microsecond, 0)

    def test_stop_ends_iteration(self):
        ticker = Ticker(interval=1.0)
        ticker.stop()
        self.assertEqual(list(ticker), [])

    def _ticks(self, readings):
        """Run a ticker against a scripted clock until the readings run out"""
        ticker = Ticker(interval=1.0, tz=timezone.utc)
        readings = iter(readings)

        def clock():
            try:
                return next(readings)
            except StopIteration:
                ticker.stop()
                return 0.0

        with mock.patch('stream_archiver.rotation.time') as fake_time:
            fake_time.time.side_effect = clock
            return list(ticker)

    def test_early_wake_does_not_repeat_second(self):
        midnight = datetime(2015, 9, 19, tzinfo=timezone.utc)
        t = midnight.timestamp()
        # each pass reads the clock twice: once to sleep, once for the tick
        ticks = self._ticks([t - 0.01, t - 0.0004, t - 0.0003, t + 0.0001])
        self.assertEqual(ticks, [midnight])

    def test_clock_stepped_back_does_not_repeat_second(self):
        midnight = datetime(2015, 9, 19, tzinfo=timezone.utc)
        t = midnight.timestamp()
        ticks = self._ticks([t - 0.01, t, t - 0.995, t - 0.2, t + 0.99, t + 1.0])
        self.assertEqual(ticks, [midnight, datetime(2015, 9, 19, 0, 0, 1, tzinfo=timezone.utc)])

    def test_rejects_non_positive_interval(self):
        with self.assertRaises(ValueError):
            Ticker(interval=0)


if __name__ == '__main__':
    unittest.main()
