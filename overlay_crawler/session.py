"""
Session and result types shared by the crawler components.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class CrawlInvariantError(RuntimeError):
    """Raised when the crawl bookkeeping is asked to do something impossible.

    This signals a bug in the caller or in discovery logic, never a network
    condition, and is kept apart from the per-node error map.
    """


class NodeState(Enum):
    """Lifecycle of a single address during one traversal."""
    UNSEEN = 'unseen'
    QUEUED = 'queued'
    IN_FLIGHT = 'in_flight'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class ErrorCode(str, Enum):
    """Failure codes recorded for nodes that could not be crawled."""
    TIMEOUT = 'timeout'
    CONNECTION_REFUSED = 'connection_refused'
    TLS_ERROR = 'tls_error'
    CONNECTION_ERROR = 'connection_error'
    HTTP_ERROR = 'http_error'
    DECODE_ERROR = 'decode_error'
    TRANSPORT_ERROR = 'transport_error'


@dataclass
class FetchResult:
    """Result of one fetch of a node's /crawl document."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ErrorCode] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, data: Dict[str, Any]) -> 'FetchResult':
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, error: ErrorCode, detail: str = None) -> 'FetchResult':
        return cls(success=False, error=error, detail=detail)


def timestamp() -> str:
    """Current local time as ISO-8601 with UTC offset."""
    return datetime.now().astimezone().isoformat(timespec='seconds')


@dataclass(frozen=True)
class CrawlSession:
    """Final topology snapshot of one traversal.

    The mappings are read-only views; the session is created once the
    traversal has finished.
    """
    start: str
    end: str
    entry: str
    data: Mapping[str, Dict[str, Any]]
    errors: Mapping[str, ErrorCode]
    hops: Mapping[str, int] = field(default_factory=dict)
    cancelled: bool = False

    @classmethod
    def build(cls, start: str, entry: str, data: Dict, errors: Dict,
              hops: Dict = None, cancelled: bool = False) -> 'CrawlSession':
        return cls(
            start=start,
            end=timestamp(),
            entry=entry,
            data=MappingProxyType(dict(data)),
            errors=MappingProxyType(dict(errors)),
            hops=MappingProxyType(dict(hops or {})),
            cancelled=cancelled,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Session report in its external JSON shape."""
        return {
            'start': self.start,
            'end': self.end,
            'entry': self.entry,
            'data': dict(self.data),
            'errors': {address: code.value for address, code in self.errors.items()},
        }

    def summary(self) -> Dict[str, Any]:
        return {
            'entry': self.entry,
            'crawled': len(self.data),
            'failed': len(self.errors),
            'max_hops': max(self.hops.values()) if self.hops else 0,
            'cancelled': self.cancelled,
        }
