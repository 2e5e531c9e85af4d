"""Breadth-first topology crawler for peer-to-peer overlay networks."""

from .crawl_queue import CrawlQueue
from .crawler import DEFAULT_CONFIG, CrawlConfig, CrawlController, run_crawl
from .normalize import DEFAULT_PORT, crawl_url, normalize_address, normalize_public_key
from .peers import PeerDataMerger
from .session import (CrawlInvariantError, CrawlSession, ErrorCode, FetchResult,
                      NodeState)
from .transport import CrawlTransport

__version__ = '1.0.0'

__all__ = [
    'CrawlConfig',
    'CrawlController',
    'CrawlInvariantError',
    'CrawlQueue',
    'CrawlSession',
    'CrawlTransport',
    'DEFAULT_CONFIG',
    'DEFAULT_PORT',
    'ErrorCode',
    'FetchResult',
    'NodeState',
    'PeerDataMerger',
    'crawl_url',
    'normalize_address',
    'normalize_public_key',
    'run_crawl',
]
