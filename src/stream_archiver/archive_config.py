#!/usr/bin/env python3
"""
Archive naming and placement

Archive files are organized in YYYY/MM/DD directories under the archive
root and named after the timestamp of the rotation that created them:

    {root}/2015/09/18/chirpradio_2015-09-18_230000.mp3

An existing file is never overwritten; a numeric suffix is added instead.
"""

import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "chirpradio"
DEFAULT_EXTENSION = "mp3"


class ArchiveConfig:
    """Maps rotation timestamps to archive file paths"""

    def __init__(self, root_dir, prefix: str = DEFAULT_PREFIX,
                 extension: str = DEFAULT_EXTENSION):
        self.root_dir = Path(root_dir)
        self.prefix = prefix
        self.extension = extension.lstrip('.')

    def dest(self, ts: datetime) -> Path:
        """Return the day directory for `ts`, creating it if needed"""
        prefix = self.root_dir / f"{ts.year}" / f"{ts.month:02d}" / f"{ts.day:02d}"
        prefix.mkdir(parents=True, exist_ok=True)
        return prefix

    def file_name(self, dest: Path, ts: datetime) -> str:
        """
        Build the archive file name inside `dest`.

        Examples:
            >>> ArchiveConfig('/a').file_name(Path('/a'), datetime(2015, 9, 18, 23))
            '/a/chirpradio_2015-09-18_230000.mp3'
        """
        stem = f"{self.prefix}_{ts:%Y-%m-%d_%H%M%S}"
        path = Path(dest) / f"{stem}.{self.extension}"
        suffix = 0
        while path.exists():
            suffix += 1
            path = Path(dest) / f"{stem}_{suffix}.{self.extension}"
        if suffix:
            logger.warning(f"Archive file for {ts} already exists, using {path.name}")
        return str(path)

    def __call__(self, ts: datetime) -> str:
        return self.file_name(self.dest(ts), ts)
