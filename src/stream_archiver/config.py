"""
Configuration loading for the stream archiver

Settings come from an optional TOML file and are overridden by command
line flags. Example file:

    [stream]
    url = "http://chirpradio.org/stream"
    max_retries = 8
    retry_sleep_sec = 2.0
    chunk_size = 65536
    read_timeout_sec = 60

    [archive]
    root_dir = "/var/lib/stream-archiver/archives"
    prefix = "chirpradio"
    extension = "mp3"
    timezone = "America/Chicago"
    channel_capacity = 256
    status_file = "/var/lib/stream-archiver/status.json"
    status_interval_sec = 60
    writer_retry_sec = 10

    [logging]
    level = "INFO"
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import toml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_STREAM_URL = "http://chirpradio.org/stream"
DEFAULT_ARCHIVE_DIR = "./archives"


@dataclass
class ArchiverConfig:
    """Runtime configuration for StreamArchiver"""
    # Stream
    url: str = DEFAULT_STREAM_URL
    max_retries: int = 8
    retry_sleep_sec: float = 2.0
    chunk_size: int = 1024 * 64
    connect_timeout_sec: float = 10.0
    read_timeout_sec: Optional[float] = None

    # Archive
    root_dir: str = DEFAULT_ARCHIVE_DIR
    prefix: str = "chirpradio"
    extension: str = "mp3"
    timezone: Optional[str] = None
    channel_capacity: int = 256
    status_file: Optional[str] = None
    status_interval_sec: float = 60.0
    writer_retry_sec: float = 10.0

    # Logging
    log_level: str = "DEBUG"

    def __post_init__(self):
        if not self.url:
            raise ConfigError("stream url must not be empty")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be >= 0")
        if self.retry_sleep_sec < 0:
            raise ConfigError("retry_sleep_sec must be >= 0")
        if self.chunk_size <= 0:
            raise ConfigError("chunk_size must be positive")
        if self.channel_capacity <= 0:
            raise ConfigError("channel_capacity must be positive")
        if self.status_interval_sec <= 0:
            raise ConfigError("status_interval_sec must be positive")
        if self.writer_retry_sec <= 0:
            raise ConfigError("writer_retry_sec must be positive")
        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
            raise ConfigError(f"unknown log level: {self.log_level}")
        self.tzinfo()

    def tzinfo(self) -> Optional[ZoneInfo]:
        """Timezone used to name archive files (None = local time)"""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"unknown timezone {self.timezone!r}") from e

    def replace(self, **overrides: Any) -> "ArchiverConfig":
        """Return a copy with the non-None overrides applied"""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ArchiverConfig(**values)


# TOML section -> {toml key: ArchiverConfig field}
_TOML_KEYS = {
    'stream': {
        'url': 'url',
        'max_retries': 'max_retries',
        'retry_sleep_sec': 'retry_sleep_sec',
        'chunk_size': 'chunk_size',
        'connect_timeout_sec': 'connect_timeout_sec',
        'read_timeout_sec': 'read_timeout_sec',
    },
    'archive': {
        'root_dir': 'root_dir',
        'prefix': 'prefix',
        'extension': 'extension',
        'timezone': 'timezone',
        'channel_capacity': 'channel_capacity',
        'status_file': 'status_file',
        'status_interval_sec': 'status_interval_sec',
        'writer_retry_sec': 'writer_retry_sec',
    },
    'logging': {
        'level': 'log_level',
    },
}


def config_from_dict(data: Dict[str, Any]) -> ArchiverConfig:
    """Build an ArchiverConfig from parsed TOML data"""
    values = {}
    for section, keys in _TOML_KEYS.items():
        section_data = data.get(section, {})
        if not isinstance(section_data, dict):
            raise ConfigError(f"[{section}] must be a table")
        for key, value in section_data.items():
            if key not in keys:
                logger.warning(f"Ignoring unknown config key {section}.{key}")
                continue
            values[keys[key]] = value
    try:
        return ArchiverConfig(**values)
    except TypeError as e:
        raise ConfigError(str(e)) from e


def load_config(path: Optional[str]) -> ArchiverConfig:
    """
    Load configuration from a TOML file.

    Args:
        path: TOML file path, or None for defaults

    Raises:
        ConfigError: file missing, unparsable, or invalid
    """
    if path is None:
        return ArchiverConfig()
    try:
        with open(path, 'r') as f:
            data = toml.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"configuration file not found: {path}") from e
    except toml.TomlDecodeError as e:
        raise ConfigError(f"error parsing {path}: {e}") from e
    logger.debug(f"Loaded configuration from {path}")
    return config_from_dict(data)


def check_writable(root_dir: str):
    """
    Verify the archive root exists and is a writable directory.

    Raises:
        ConfigError: if it is not
    """
    path = Path(root_dir)
    if not path.is_dir():
        raise ConfigError(f"archive directory does not exist: {root_dir}")
    if not os.access(path, os.W_OK | os.X_OK):
        raise ConfigError(f"archive directory is not writable: {root_dir}")
