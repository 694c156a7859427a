"""
Global Channel Interface

The DHT itself (routing, announce/lookup wire behaviour, hole-punch
negotiation) is not part of this package. This module pins down what the
discovery layer needs from it.

Design Decision: Streams as Async Iterators
===========================================

Options Considered:
1. Callback streams (on_data / on_error / on_end)
   - Three entry points, easy to double-fire end/error
2. asyncio.Queue handed to the caller
   - Needs a sentinel for end, error passing is awkward
3. Async iterators
   - data = each item, end = StopAsyncIteration, error = exception
   - Cancelling the consuming task terminates the stream

Decision: announce() and lookup() return an async iterator of LookupReply.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, List, Optional, Tuple

from ..peers import PeerCandidate


@dataclass(frozen=True)
class AnnounceDescriptor:
    """What an announcing Topic publishes on the DHT."""
    port: int = 0
    local_address: Optional[str] = None


@dataclass(frozen=True)
class PeerAddress:
    host: str
    port: int


@dataclass
class LookupReply:
    """
    One batch of results from a DHT node.

    node is the DHT node that answered; it is the referrer for every remote
    peer in the batch. local_peers were found by the DHT's own LAN
    heuristics and carry no referrer.
    """
    node: Any
    peers: List[PeerAddress] = field(default_factory=list)
    local_peers: List[PeerAddress] = field(default_factory=list)


PeerStream = AsyncIterator[LookupReply]


class GlobalChannel(ABC):
    """A DHT client as seen by the discovery layer."""

    @property
    @abstractmethod
    def bootstrap(self) -> List[Tuple[str, int]]:
        """The bootstrap nodes this client was started with."""

    @abstractmethod
    def announce(self, key: bytes, descriptor: AnnounceDescriptor) -> PeerStream:
        """Announce on key and stream back the peers found on the way."""

    @abstractmethod
    def lookup(self, key: bytes) -> PeerStream:
        """Stream peers announced on key."""

    @abstractmethod
    async def unannounce(self, key: bytes, descriptor: AnnounceDescriptor):
        """Withdraw an announcement made with announce()."""

    @abstractmethod
    async def ping(self, node: Tuple[str, int]) -> Any:
        """Ping a node. Returns the pong, or a falsy value / raises on failure."""

    @abstractmethod
    async def holepunch(self, peer: PeerCandidate, referrer: Any):
        """Open a NAT hole towards peer through referrer."""

    @abstractmethod
    async def close(self):
        """Shut the client down."""
