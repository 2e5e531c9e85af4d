"""
Crawl queue bookkeeping.

Every address seen during a traversal is in exactly one place: the queue
(queued or in flight), the results map or the errors map. An address is
enqueued at most once per traversal.
"""

import logging
from typing import Dict, List, Mapping

from .session import CrawlInvariantError, NodeState

logger = logging.getLogger(__name__)


class CrawlQueue:
    """Tracks queued and in-flight addresses against the finished maps."""

    def __init__(self, results: Mapping[str, object], errors: Mapping[str, object]):
        self._results = results
        self._errors = errors
        # Insertion order is discovery order
        self._queued: Dict[str, NodeState] = {}

    def __len__(self) -> int:
        return len(self._queued)

    def __contains__(self, address: str) -> bool:
        return address in self._queued

    def state(self, address: str) -> NodeState:
        if address in self._queued:
            return self._queued[address]
        if address in self._results:
            return NodeState.SUCCEEDED
        if address in self._errors:
            return NodeState.FAILED
        return NodeState.UNSEEN

    def enqueue_if_needed(self, address: str) -> bool:
        """Enqueue an address unless it is empty or already known.

        Returns:
            True when the address was newly enqueued
        """
        if not address:
            return False
        if self.state(address) is not NodeState.UNSEEN:
            return False
        self.enqueue(address)
        return True

    def enqueue(self, address: str):
        if self.state(address) is not NodeState.UNSEEN:
            raise CrawlInvariantError(f"{address} queued already")
        self._queued[address] = NodeState.QUEUED
        logger.debug(f"Queued {address} ({len(self._queued)} tracked)")

    def mark_in_flight(self, address: str):
        if self._queued.get(address) is not NodeState.QUEUED:
            raise CrawlInvariantError(f"{address} is not queued")
        self._queued[address] = NodeState.IN_FLIGHT

    def dequeue(self, address: str):
        if address not in self._queued:
            raise CrawlInvariantError(f"{address} not queued already")
        del self._queued[address]

    def queued_addresses(self) -> List[str]:
        """Snapshot of queued and in-flight addresses in discovery order."""
        return list(self._queued)

    def pending(self) -> List[str]:
        """Addresses still waiting for admission."""
        return [address for address, state in self._queued.items()
                if state is NodeState.QUEUED]
