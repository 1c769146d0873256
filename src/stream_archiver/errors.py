"""
Archiver error taxonomy

Fetcher errors (OpenError, ReadError) are retried locally until the retry
budget runs out, at which point RetryBudgetExhausted is raised to whoever
started the fetcher. Writer errors are never retried.
"""

from typing import Optional


class ArchiverError(Exception):
    """Base class for all stream archiver errors"""


class OpenError(ArchiverError):
    """The upstream stream could not be opened"""

    def __init__(self, url: str, reason: object = None):
        self.url = url
        self.reason = reason
        super().__init__(f"cannot open {url}: {reason}")


class ReadError(ArchiverError):
    """Reading from an open stream failed, including short reads"""

    def __init__(self, message: str, bytes_read: Optional[int] = None):
        self.bytes_read = bytes_read
        super().__init__(message)


class RetryBudgetExhausted(ArchiverError):
    """Terminal fetcher failure: too many consecutive errors"""

    def __init__(self, retry_count: int, max_retries: int):
        self.retry_count = retry_count
        self.max_retries = max_retries
        super().__init__(f"too many retries ({retry_count}/{max_retries})")


class DestinationOpenError(ArchiverError):
    """An archive file could not be created"""

    def __init__(self, file_name: str, reason: object = None):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"cannot create {file_name}: {reason}")


class DestinationWriteError(ArchiverError):
    """Writing to an already open archive file failed"""

    def __init__(self, file_name: str, reason: object = None):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"write to {file_name} failed: {reason}")


class ConfigError(ArchiverError):
    """Invalid or unusable configuration"""
