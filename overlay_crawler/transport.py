"""
HTTPS transport for fetching a node's /crawl document.

Nodes serve the document over TLS with self-signed certificates, so
verification is off by default. Blocking requests calls run in a thread
pool so the event loop driving the crawl never blocks.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import requests
import urllib3

from .normalize import crawl_url
from .session import ErrorCode, FetchResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_WORKERS = 30

# A trickling body may not outlast this many per-read timeouts
TOTAL_TIMEOUT_FACTOR = 3

HEADERS = {
    'User-Agent': 'overlay-crawler/1.0',
    'Accept': 'application/json'
}


def classify_error(error: requests.RequestException) -> ErrorCode:
    """Map a requests exception to a crawl error code."""
    # SSLError and ConnectTimeout are both ConnectionErrors, check them first
    if isinstance(error, requests.exceptions.SSLError):
        return ErrorCode.TLS_ERROR
    if isinstance(error, requests.exceptions.Timeout):
        return ErrorCode.TIMEOUT
    if isinstance(error, requests.exceptions.ConnectionError):
        if 'refused' in str(error).lower():
            return ErrorCode.CONNECTION_REFUSED
        return ErrorCode.CONNECTION_ERROR
    if isinstance(error, requests.exceptions.HTTPError):
        return ErrorCode.HTTP_ERROR
    return ErrorCode.TRANSPORT_ERROR


class CrawlTransport:
    """Fetches and decodes /crawl documents, one request per call.

    Each worker thread gets its own requests session; sessions are not
    shared between threads.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, verify_tls: bool = False,
                 max_workers: int = DEFAULT_WORKERS,
                 session_factory: Callable[[], requests.Session] = requests.Session,
                 total_timeout: float = None):
        """
        Initialize the transport.

        Args:
            timeout: Connect and read timeout passed to requests (seconds)
            verify_tls: Verify node certificates
            max_workers: Size of the thread pool running requests
            session_factory: Builds the requests session of each worker thread
            total_timeout: Upper bound on a whole fetch, including a slow
                body; defaults to TOTAL_TIMEOUT_FACTOR * timeout
        """
        self.timeout = timeout
        self.total_timeout = total_timeout or timeout * TOTAL_TIMEOUT_FACTOR
        self.verify_tls = verify_tls
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix='crawl-fetch')

        if not verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def session(self) -> requests.Session:
        """Session of the calling thread, created on first use."""
        session = getattr(self._local, 'session', None)
        if session is None:
            session = self._session_factory()
            session.headers.update(HEADERS)
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def fetch_sync(self, address: str) -> FetchResult:
        """Fetch one node's document, blocking the calling thread."""
        url = crawl_url(address)
        try:
            response = self.session.get(url, timeout=self.timeout, verify=self.verify_tls)
            response.raise_for_status()
        except requests.RequestException as e:
            return FetchResult.failed(classify_error(e), str(e))

        try:
            data = response.json()
        except ValueError as e:
            return FetchResult.failed(ErrorCode.DECODE_ERROR, str(e))

        if not isinstance(data, dict):
            return FetchResult.failed(ErrorCode.DECODE_ERROR,
                                      f"expected a JSON object, got {type(data).__name__}")
        return FetchResult.ok(data)

    async def fetch(self, address: str) -> FetchResult:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._executor, self.fetch_sync, address),
                timeout=self.total_timeout
            )
        except asyncio.TimeoutError:
            # The worker thread finishes on its own; its result is dropped
            logger.debug(f"{address} exceeded {self.total_timeout}s total fetch time")
            return FetchResult.failed(ErrorCode.TIMEOUT,
                                      f"no complete response within {self.total_timeout}s")

    def close(self):
        """Shut down the worker pool and close the HTTP sessions."""
        self._executor.shutdown(wait=False)
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def describe(result: FetchResult) -> Optional[str]:
    if result.success:
        return None
    if result.detail:
        return f"{result.error.value}: {result.detail}"
    return result.error.value
