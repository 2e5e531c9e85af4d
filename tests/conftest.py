"""Shared fixtures: an in-memory transport that serves a scripted topology."""

import asyncio

import pytest

from overlay_crawler.normalize import DEFAULT_PORT
from overlay_crawler.session import FetchResult


def addr(host: str, port: int = DEFAULT_PORT) -> str:
    return f"{host}:{port}"


class ScriptedTransport:
    """Serves /crawl documents from a dict instead of the network.

    Args:
        topology: address -> list of peer descriptors for overlay.active
        failures: address -> ErrorCode returned instead of a document
        delays: address -> seconds to wait before answering
        raises: address -> exception raised from fetch
    """

    def __init__(self, topology, failures=None, delays=None, raises=None, default_delay=0.0):
        self.topology = topology
        self.failures = failures or {}
        self.delays = delays or {}
        self.raises = raises or {}
        self.default_delay = default_delay
        self.calls = []
        self.current = 0
        self.peak = 0
        self.closed = False

    async def fetch(self, address):
        self.calls.append(address)
        self.current += 1
        self.peak = max(self.peak, self.current)
        try:
            await asyncio.sleep(self.delays.get(address, self.default_delay))
        finally:
            self.current -= 1

        if address in self.raises:
            raise self.raises[address]
        if address in self.failures:
            return FetchResult.failed(self.failures[address], 'scripted failure')
        return FetchResult.ok({
            'overlay': {'active': self.topology.get(address, [])},
            'server': {'build_version': '1.0.0'},
        })

    def close(self):
        self.closed = True


@pytest.fixture
def transport_factory():
    return ScriptedTransport


@pytest.fixture
def diamond():
    """entry -> X, Y; X -> Y, Z."""
    return {
        addr('10.0.0.1'): [{'ip': '10.0.0.2'}, {'ip': '10.0.0.3', 'port': DEFAULT_PORT}],
        addr('10.0.0.2'): [{'ip': '10.0.0.3'}, {'ip': '10.0.0.4:51235'}],
        addr('10.0.0.3'): [{'ip': '10.0.0.1'}],
        addr('10.0.0.4'): [],
    }
