"""
Test configuration: fakes for both discovery channels.

FakeGlobalChannel hands out streams the test drives by hand.
FakeLocalChannel records what is sent and can loop it back like a real
multicast socket does.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import pytest

from swarmdiscovery.backoff import Backoff
from swarmdiscovery.config import DiscoveryConfig
from swarmdiscovery.dht import AnnounceDescriptor, GlobalChannel, LookupReply
from swarmdiscovery.local import LocalChannel, MulticastQuery, MulticastResponse
from swarmdiscovery.peers import PeerCandidate
from swarmdiscovery.session import DiscoverySession

LOOPBACK = ('127.0.0.1', 5353)


async def settle(ticks: int = 10):
    """Let pending callbacks and tasks run."""
    for _ in range(ticks):
        await asyncio.sleep(0)


class FakeStream:
    """A DHT stream driven by the test: push(), fail(), end()."""

    def __init__(self, kind: str, key: bytes):
        self.kind = kind
        self.key = key
        self.cancelled = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, reply: LookupReply):
        self._queue.put_nowait(('data', reply))

    def fail(self, error: Exception):
        self._queue.put_nowait(('error', error))

    def end(self):
        self._queue.put_nowait(('end', None))

    def __aiter__(self):
        return self

    async def __anext__(self) -> LookupReply:
        try:
            kind, value = await self._queue.get()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if kind == 'data':
            return value
        if kind == 'error':
            raise value
        raise StopAsyncIteration


class FakeGlobalChannel(GlobalChannel):

    def __init__(self, bootstrap: Optional[List[Tuple[str, int]]] = None):
        self._bootstrap = list(bootstrap or [])
        self.streams: List[FakeStream] = []
        self.unannounced: List[Tuple[bytes, AnnounceDescriptor]] = []
        self.unannounce_gate: Optional[asyncio.Event] = None
        self.unannounce_error: Optional[Exception] = None
        self.pongs: Dict[Tuple[str, int], Any] = {}
        self.pinged: List[Tuple[str, int]] = []
        self.holepunches: List[Tuple[PeerCandidate, Any]] = []
        self.closed = False

    @property
    def bootstrap(self) -> List[Tuple[str, int]]:
        return list(self._bootstrap)

    @property
    def stream(self) -> FakeStream:
        return self.streams[-1]

    def announce(self, key, descriptor):
        stream = FakeStream('announce', key)
        self.streams.append(stream)
        return stream

    def lookup(self, key):
        stream = FakeStream('lookup', key)
        self.streams.append(stream)
        return stream

    async def unannounce(self, key, descriptor):
        if self.unannounce_gate is not None:
            await self.unannounce_gate.wait()
        if self.unannounce_error is not None:
            raise self.unannounce_error
        self.unannounced.append((key, descriptor))

    async def ping(self, node):
        self.pinged.append(node)
        await asyncio.sleep(0)
        pong = self.pongs.get(node)
        if isinstance(pong, Exception):
            raise pong
        return pong

    async def holepunch(self, peer, referrer):
        self.holepunches.append((peer, referrer))
        return 'punched'

    async def close(self):
        self.closed = True


class FakeLocalChannel(LocalChannel):

    def __init__(self, loopback: bool = False):
        super().__init__()
        self.loopback = loopback
        self.queries: List[MulticastQuery] = []
        self.responses: List[MulticastResponse] = []
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    def query(self, query):
        self.queries.append(query)
        if self.loopback and not self.closed:
            asyncio.get_event_loop().call_soon(self.deliver_query, query)

    def respond(self, response):
        self.responses.append(response)
        if self.loopback and not self.closed:
            asyncio.get_event_loop().call_soon(self.deliver_response, response)

    def close(self):
        self.closed = True

    def deliver_query(self, query: MulticastQuery, sender=LOOPBACK):
        self._query_listeners.emit(query, sender)

    def deliver_response(self, response: MulticastResponse, sender=LOOPBACK):
        self._response_listeners.emit(response, sender)


@pytest.fixture
def global_channel():
    return FakeGlobalChannel(bootstrap=[('node1.example', 49737), ('node2.example', 49737)])


@pytest.fixture
def local_channel():
    return FakeLocalChannel()


@pytest.fixture
def backoff():
    """Production-like timing: nothing retries during a test."""
    return Backoff()


@pytest.fixture
def fast_backoff():
    return Backoff(eager=(0.01, 0.02), lazy=(0.02, 0.03))


@pytest.fixture
def config():
    return DiscoveryConfig(domain='test.local')


@pytest.fixture
def make_session(config, global_channel, local_channel, backoff):
    def make(**overrides) -> DiscoverySession:
        kwargs = dict(
            config=config,
            global_channel=global_channel,
            local_channel=local_channel,
            backoff=backoff,
        )
        kwargs.update(overrides)
        return DiscoverySession(**kwargs)
    return make


@pytest.fixture
def session(make_session):
    return make_session()
