#!/usr/bin/env python3
"""
HTTP stream source - the open_url capability backed by requests

Opens a streaming GET and hands back a minimal reader over the raw body.
Transport failures and non-2xx responses become OpenError; failures while
reading the body become ReadError.
"""

import logging
from typing import Optional, Tuple, Union

import requests
from urllib3.exceptions import HTTPError as Urllib3HTTPError

from .errors import OpenError, ReadError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "stream-archiver/1.0"
DEFAULT_CONNECT_TIMEOUT = 10.0

Timeout = Union[float, Tuple[float, Optional[float]], None]


class HttpStream:
    """Readable view of a streaming HTTP response body"""

    def __init__(self, response: requests.Response):
        self.response = response

    def read(self, size: int) -> bytes:
        try:
            return self.response.raw.read(size)
        except (Urllib3HTTPError, requests.RequestException, OSError) as e:
            raise ReadError(f"error while streaming {self.response.url}: {e}") from e

    def close(self):
        self.response.close()


class HttpStreamSource:
    """
    Callable open_url capability.

    Example:
        source = HttpStreamSource()
        stream = source("http://chirpradio.org/stream")
        chunk = stream.read(65536)
        stream.close()
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: Optional[float] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            connect_timeout: Seconds to wait for the connection
            read_timeout: Seconds to wait between body bytes (None = forever)
            user_agent: User-Agent header sent upstream
            session: Optional pre-configured requests session
        """
        self.timeout: Timeout = (connect_timeout, read_timeout)
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'audio/*,*/*;q=0.9',
            'Accept-Encoding': 'identity',
        })

    def __call__(self, url: str) -> HttpStream:
        return self.open(url)

    def open(self, url: str) -> HttpStream:
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise OpenError(url, e) from e

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            response.close()
            raise OpenError(url, e) from e

        logger.debug(f"Connected to {url} "
                     f"(content-type={response.headers.get('content-type', '?')})")
        return HttpStream(response)

    def close(self):
        self.session.close()
