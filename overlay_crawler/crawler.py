"""
Overlay network crawler.

Starts at one node, fetches its /crawl document, and breadth-first crawls
every peer listed under overlay.active until no address is left. At most
max_in_flight fetches are outstanding at any time; every completed fetch
refills the free slots from the queue.

Features:
- asyncio driven, one event loop, no locks
- Each address fetched at most once per traversal
- Failed nodes are recorded and never retried
- Optional deadline / cancel() that lets issued fetches drain
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

from .crawl_queue import CrawlQueue
from .normalize import DEFAULT_PORT, normalize_address
from .peers import PeerDataMerger, active_peers
from .session import (CrawlInvariantError, CrawlSession, ErrorCode, FetchResult,
                      NodeState, timestamp)
from .transport import DEFAULT_TIMEOUT, CrawlTransport, describe

logger = logging.getLogger(__name__)


# ╔══════════════════════════════════════════════════════════════════════════╗
# ║                           CRAWL CONFIGURATION                            ║
# ╚══════════════════════════════════════════════════════════════════════════╝

@dataclass
class CrawlConfig:
    """Configuration for the crawler."""
    max_in_flight: int = 30                 # Concurrent fetches
    default_port: int = DEFAULT_PORT        # Port used when a peer reports none
    timeout: float = DEFAULT_TIMEOUT        # Per-fetch timeout (seconds)
    verify_tls: bool = False                # Nodes use self-signed certificates
    deadline: Optional[float] = None        # Stop admitting after this many seconds


# Default configuration
DEFAULT_CONFIG = CrawlConfig()

RequestObserver = Callable[[str, FetchResult], Any]


# ╔══════════════════════════════════════════════════════════════════════════╗
# ║                            MAIN CRAWLER CLASS                            ║
# ╚══════════════════════════════════════════════════════════════════════════╝

class CrawlController:
    """
    Breadth-first crawler over the overlay peer lists.

    One instance runs one traversal.
    """

    def __init__(self, config: CrawlConfig = None, transport=None,
                 on_request: RequestObserver = None):
        """
        Initialize the crawler.

        Args:
            config: Crawl configuration
            transport: Object with an async fetch(address) -> FetchResult;
                a CrawlTransport is created (and closed) when omitted
            on_request: Called with (address, result) after every fetch
        """
        self.config = config or DEFAULT_CONFIG
        if self.config.max_in_flight < 1:
            raise ValueError("max_in_flight must be at least 1")

        self._owns_transport = transport is None
        self.transport = transport or CrawlTransport(
            timeout=self.config.timeout,
            verify_tls=self.config.verify_tls,
            max_workers=self.config.max_in_flight
        )
        self.on_request = on_request

        self.in_flight = 0
        self.peak_in_flight = 0
        self.results: Dict[str, Dict[str, Any]] = {}   # {address: raw document}
        self.errors: Dict[str, ErrorCode] = {}         # {address: error code}
        self.hops: Dict[str, int] = {}                 # {address: hops from entry}
        self.queue = CrawlQueue(self.results, self.errors)
        self.peers = PeerDataMerger()                  # {public key: merged view}

        self.entry: Optional[str] = None
        self.start_time: Optional[str] = None
        self.session: Optional[CrawlSession] = None
        self.cancelled = False

        self._done: Optional[asyncio.Future] = None
        self._tasks: Set[asyncio.Task] = set()

    async def get_crawl(self, raw_entry: str) -> CrawlSession:
        """
        Crawl the network reachable from raw_entry.

        Returns:
            The finished session

        Raises:
            CrawlInvariantError: the crawl bookkeeping was violated
        """
        loop = asyncio.get_running_loop()
        deadline_handle = None

        try:
            self.enter(raw_entry)
            if self.config.deadline is not None:
                deadline_handle = loop.call_later(self.config.deadline, self.cancel)
            return await self._done
        finally:
            if deadline_handle is not None:
                deadline_handle.cancel()
            for task in list(self._tasks):
                task.cancel()
            if self._owns_transport:
                self.transport.close()

    def enter(self, raw_entry: str):
        """Enter at raw_entry to start the crawl."""
        if self._done is not None:
            raise CrawlInvariantError("crawler already entered; use a new instance per traversal")

        entry = normalize_address(raw_entry, default_port=self.config.default_port)
        if entry is None:
            raise CrawlInvariantError("an entry address is required")

        self._done = asyncio.get_running_loop().create_future()
        self.start_time = timestamp()
        self.entry = entry
        logger.info(f"Starting crawl at {entry} (max {self.config.max_in_flight} in flight)")

        self.queue.enqueue(entry)
        self.crawl(entry, 0)

    def crawl(self, address: str, hop: int):
        """Admit a queued address and dispatch its fetch."""
        self.queue.mark_in_flight(address)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        self.hops[address] = hop
        logger.debug(f"Crawling {address} (hop {hop}, {self.in_flight} in flight)")

        task = asyncio.get_running_loop().create_task(self._crawl_one(address, hop))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _crawl_one(self, address: str, hop: int):
        try:
            result = await self.transport.fetch(address)
        except Exception as e:
            logger.exception(f"Transport raised while fetching {address}")
            result = FetchResult.failed(ErrorCode.TRANSPORT_ERROR, str(e))

        self.in_flight -= 1
        try:
            self._complete(address, hop, result)
        except Exception as e:
            self._abort(e)

    def _complete(self, address: str, hop: int, result: FetchResult):
        self.queue.dequeue(address)

        if result.success:
            self.results[address] = result.data
            self._discover(address, result.data)
        else:
            logger.warning(f"{address} has err {describe(result)}")
            self.errors[address] = result.error

        if self.on_request is not None:
            self.on_request(address, result)

        if not self.request_more(hop):
            self._finish()
        elif self.cancelled and self.in_flight == 0:
            self._finish()

    def _discover(self, address: str, document: Dict[str, Any]):
        if 'overlay' not in document:
            logger.warning(f"{address} returned a document without an overlay section")

        discovered = 0
        for peer in active_peers(document):
            peer_address = normalize_address(peer.get('ip'), peer.get('port'),
                                             default_port=self.config.default_port)
            if self.queue.enqueue_if_needed(peer_address):
                discovered += 1
        self.peers.merge_responses({address: document})

        logger.debug(f"{address} revealed {discovered} new peers ({len(self.queue)} tracked)")

    def request_more(self, hop: int) -> bool:
        """
        Fill free fetch slots from the queue.

        Returns:
            Whether any address was queued or in flight at scan time
        """
        snapshot = self.queue.queued_addresses()
        if self.cancelled:
            return len(snapshot) != 0

        for address in snapshot:
            if self.in_flight >= self.config.max_in_flight:
                break
            if self.queue.state(address) is NodeState.QUEUED:
                self.crawl(address, hop + 1)

        return len(snapshot) != 0

    def cancel(self):
        """Stop admitting new fetches; issued ones drain and the crawl ends."""
        if self.cancelled or self.session is not None:
            return
        self.cancelled = True
        logger.info(f"Crawl cancelled with {len(self.queue.pending())} addresses still queued")
        if self._done is not None and self.in_flight == 0:
            self._finish()

    def _finish(self):
        if self._done.done():
            return
        self.session = CrawlSession.build(self.start_time, self.entry, self.results,
                                          self.errors, self.hops, self.cancelled)
        logger.info(f"Crawl complete: {len(self.results)} nodes crawled, "
                    f"{len(self.errors)} failed")
        self._done.set_result(self.session)

    def _abort(self, error: Exception):
        self.cancelled = True
        if self._done.done():
            logger.error(f"Error after crawl finished: {error}")
            return
        self._done.set_exception(error)


async def run_crawl(raw_entry: str, config: CrawlConfig = None, transport=None,
                    on_request: RequestObserver = None) -> CrawlSession:
    """Run one traversal with a fresh controller."""
    crawler = CrawlController(config=config, transport=transport, on_request=on_request)
    return await crawler.get_crawl(raw_entry)
