"""
Merged peer records.

Nodes reveal varying degrees of information about their connected peers.
Every view of a peer is folded into one record keyed by the peer's
normalized public key.
"""

import binascii
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from .normalize import normalize_public_key

logger = logging.getLogger(__name__)

# Fields whose meaning depends on who reports them
REPORTER_RELATIVE_FIELDS = ('type',)


def peer_public_key(peer: Mapping[str, Any]) -> Optional[str]:
    key = peer.get('public_key') or peer.get('publicKey')
    # Reported by remote nodes; anything but a string is not a key
    return key if isinstance(key, str) else None


def active_peers(document: Optional[Mapping[str, Any]]) -> Iterable[Mapping[str, Any]]:
    """The overlay.active list of a /crawl document, empty when missing."""
    if not isinstance(document, Mapping):
        return []
    overlay = document.get('overlay')
    if not isinstance(overlay, Mapping):
        return []
    active = overlay.get('active')
    if not isinstance(active, list):
        return []
    return [peer for peer in active if isinstance(peer, Mapping)]


class PeerDataMerger:
    """Folds views of the same peer into one record per public key.

    The first concrete value seen for a field is kept. Conflicting reports
    are not detected.
    """

    def __init__(self):
        self.peers: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self.peers)

    def __contains__(self, peer_id: str) -> bool:
        return peer_id in self.peers

    def get(self, peer_id: str) -> Optional[Dict[str, Any]]:
        return self.peers.get(peer_id)

    def record_view(self, peer_id: str, view: Mapping[str, Any], defaults: bool = False):
        """Save one view of a peer into its merged record.

        Args:
            peer_id: Normalized public key of the peer
            view: One node's report about that peer
            defaults: Seed keys that are not present yet, None values included
        """
        record = self.peers.setdefault(peer_id, {})

        for key, value in view.items():
            # Type is specific to each point of view, never keep it
            if key in REPORTER_RELATIVE_FIELDS:
                continue
            if defaults:
                if key not in record:
                    record[key] = value
            elif value is not None and record.get(key) is None:
                record[key] = value

    def merge_responses(self, data: Mapping[str, Mapping[str, Any]]) -> int:
        """Fold the active peers of every crawled document into the records.

        Args:
            data: Address -> decoded /crawl document

        Returns:
            Number of views recorded
        """
        recorded = 0
        for address, document in data.items():
            for peer in active_peers(document):
                raw_key = peer_public_key(peer)
                if not raw_key:
                    continue
                try:
                    peer_id = normalize_public_key(raw_key)
                except (binascii.Error, ValueError) as e:
                    logger.warning(f"Skipping peer of {address} with bad public key {raw_key!r}: {e}")
                    continue
                self.record_view(peer_id, peer)
                recorded += 1

        logger.debug(f"Recorded {recorded} peer views into {len(self.peers)} records")
        return recorded

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {peer_id: dict(record) for peer_id, record in self.peers.items()}
