"""
Discovery Session - Main Controller

Owns both discovery channels and the domain index, and hands out Topics:

- announce(key): publish ourselves on a key and find others
- lookup(key): find peers on a key
- lookup_one(key): the first peer for a key
- ping(): health-check the DHT bootstrap nodes
- holepunch(peer): ask the DHT to open a NAT hole to a remote peer
- destroy(): tear everything down, waiting for every Topic to close

Everything runs on one event loop; "parallel" work is outstanding network
operations joined back onto it, so nothing here needs a lock.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Set

from .backoff import Backoff
from .config import DiscoveryConfig
from .dht import AnnounceDescriptor, GlobalChannel, OfflineGlobalChannel
from .domains import DomainIndex, derive_domain
from .errors import (
    BootstrapUnreachableError, LookupFailedError, NoBootstrapNodesError,
    ReferrerRequiredError, SessionDestroyedError,
)
from .events import Listeners, WaitGroup
from .local import LocalChannel, LocalChannelMatcher, MulticastChannel
from .peers import PeerCandidate, PingResult
from .topic import Topic

logger = logging.getLogger(__name__)


class DiscoverySession:
    """
    Peer discovery over a DHT and local multicast.

    Create with create_session(), or construct and await start().
    """

    def __init__(self, config: DiscoveryConfig = None,
                 global_channel: Optional[GlobalChannel] = None,
                 local_channel: Optional[LocalChannel] = None,
                 backoff: Optional[Backoff] = None):
        """
        Initialize a session.

        Args:
            config: Session configuration (uses defaults if not provided)
            global_channel: DHT client (offline stand-in if not provided)
            local_channel: Multicast client (mDNS socket if not provided)
            backoff: Retry timing (from config if not provided)
        """
        self.config = config or DiscoveryConfig()
        self.destroyed = False

        self.global_channel = global_channel or OfflineGlobalChannel(
            self.config.bootstrap, self.config.ephemeral
        )
        self.local_channel = local_channel or MulticastChannel(
            self.config.multicast_group, self.config.multicast_port
        )
        self.backoff = backoff or Backoff(self.config.eager_interval, self.config.lazy_interval)

        self.domains = DomainIndex()
        self.matcher = LocalChannelMatcher(self.domains, self.local_channel)
        self.matcher.attach()

        self._suffix = self.config.domain
        self._bootstrap = list(self.global_channel.bootstrap)
        # Destroyed topics still finishing their teardown (unannounce)
        self._closing: Set[Topic] = set()
        self._close_listeners: Listeners[Callable[[], None]] = Listeners('close')
        self._closed = asyncio.Event()
        self._destroy_task: Optional[asyncio.Task] = None

    @property
    def bootstrap(self) -> List:
        return list(self._bootstrap)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def on_close(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to session close. Returns an unsubscribe function."""
        return self._close_listeners.add(callback)

    async def wait_closed(self):
        await self._closed.wait()

    async def start(self):
        """Open the local channel."""
        await self.local_channel.start()
        logger.info(f"Discovery session started (domain: {self._suffix})")

    def domain(self, key: bytes) -> str:
        """Local-channel domain for a key."""
        return derive_domain(key, self._suffix)

    # === Topics ===

    def announce(self, key: bytes, port: int = 0, local_port: int = 0,
                 local_address: Optional[str] = None, lookup: bool = False) -> Topic:
        """
        Announce on a key and discover others announcing on it.

        Args:
            key: Topic key
            port: Port to publish on the DHT
            local_port: Port to answer local queries with (defaults to port)
            local_address: Local address to publish on the DHT
            lookup: Also run local queries for this key

        Raises:
            SessionDestroyedError: The session was destroyed
        """
        if self.destroyed:
            raise SessionDestroyedError()

        descriptor = AnnounceDescriptor(port=port, local_address=local_address)
        topic = self._topic(key, announce=descriptor,
                            local_port=local_port or port, lookup=lookup)
        logger.info(f"Announcing {topic.domain[:16]}... (port {port})")
        return topic

    def lookup(self, key: bytes) -> Topic:
        """
        Discover peers announcing on a key.

        Raises:
            SessionDestroyedError: The session was destroyed
        """
        if self.destroyed:
            raise SessionDestroyedError()

        topic = self._topic(key)
        logger.info(f"Looking up {topic.domain[:16]}...")
        return topic

    async def lookup_one(self, key: bytes) -> PeerCandidate:
        """
        Look up a key and return the first peer found.

        The lookup topic is destroyed once a peer arrives, or once the DHT
        stream ends with no peer seen.

        Raises:
            SessionDestroyedError: The session was destroyed
            LookupFailedError: No peer was found
        """
        topic = self.lookup(key)
        result = asyncio.get_event_loop().create_future()

        def on_peer(peer: PeerCandidate):
            if not result.done():
                result.set_result(peer)
            topic.destroy()

        def on_update(error: Optional[Exception]):
            if not result.done():
                result.set_exception(LookupFailedError(error))
            topic.destroy()

        def on_close():
            if not result.done():
                result.set_exception(LookupFailedError())

        unsubscribers = [
            topic.on_peer(on_peer),
            topic.on_update(on_update),
            topic.on_close(on_close),
        ]
        try:
            return await result
        finally:
            for unsubscribe in unsubscribers:
                unsubscribe()
            topic.destroy()

    def _topic(self, key: bytes, announce: Optional[AnnounceDescriptor] = None,
               local_port: int = 0, lookup: bool = False) -> Topic:
        topic = Topic(self, key, announce=announce, local_port=local_port, lookup=lookup)
        self.domains.insert(topic.domain, topic)
        topic.start()
        return topic

    def _remove_topic(self, topic: Topic):
        self.domains.remove(topic.domain, topic)
        if not topic.closed:
            self._closing.add(topic)
            topic.on_close(lambda: self._closing.discard(topic))

    # === Global channel helpers ===

    async def ping(self) -> List[PingResult]:
        """
        Ping every bootstrap node at once.

        Returns the nodes that answered, in the order they answered.

        Raises:
            NoBootstrapNodesError: No bootstrap nodes are configured
            BootstrapUnreachableError: No bootstrap node answered
        """
        if not self._bootstrap:
            raise NoBootstrapNodesError()

        results: List[PingResult] = []
        start = time.monotonic()

        async def ping_node(node):
            try:
                pong = await self.global_channel.ping(node)
            except Exception as e:
                logger.debug(f"Ping to {node[0]}:{node[1]} failed: {e}")
                return
            if pong:
                rtt = (time.monotonic() - start) * 1000
                results.append(PingResult(bootstrap=node, rtt=rtt, pong=pong))

        await asyncio.gather(*(ping_node(node) for node in self._bootstrap))

        if not results:
            raise BootstrapUnreachableError()
        return results

    async def holepunch(self, peer: PeerCandidate):
        """
        Open a NAT hole towards a remote peer through its referrer.

        Raises:
            ReferrerRequiredError: The peer has no referrer (local peers never do)
        """
        if not peer.referrer:
            raise ReferrerRequiredError()
        return await self.global_channel.holepunch(peer, peer.referrer)

    # === Teardown ===

    def destroy(self) -> asyncio.Task:
        """
        Destroy the session.

        New topics are refused as soon as this returns. Every live topic is
        destroyed in parallel; once all of them have closed the DHT client
        is shut down and close is emitted. Returns a task that completes on
        close. Calling it again returns the same task.
        """
        if self._destroy_task is not None:
            return self._destroy_task
        self.destroyed = True

        logger.info("Destroying discovery session...")
        self.local_channel.close()

        topics = list(self.domains.topics())
        closing = list(self._closing)
        # One extra participant defers close by a tick even with no topics
        group = WaitGroup(len(topics) + len(closing) + 1)
        for topic in closing:
            topic.on_close(group.done)
        for topic in topics:
            topic.on_close(group.done)
            topic.destroy()
        asyncio.get_event_loop().call_soon(group.done)

        self._destroy_task = asyncio.ensure_future(self._finish_destroy(group))
        return self._destroy_task

    async def _finish_destroy(self, group: WaitGroup):
        await group.wait()

        try:
            await self.global_channel.close()
        except Exception as e:
            logger.error(f"Error closing DHT client: {e}")

        self._closed.set()
        logger.info("Discovery session closed")
        self._close_listeners.emit()

    def get_stats(self) -> dict:
        """Get session statistics."""
        return {
            'destroyed': self.destroyed,
            'domain_suffix': self._suffix,
            'domains': len(self.domains),
            'topics': self.domains.topic_count(),
            'bootstrap_nodes': len(self._bootstrap),
            'topic_details': [topic.get_stats() for topic in self.domains.topics()],
        }


async def create_session(config: DiscoveryConfig = None,
                         global_channel: Optional[GlobalChannel] = None,
                         local_channel: Optional[LocalChannel] = None,
                         backoff: Optional[Backoff] = None) -> DiscoverySession:
    """Create and start a discovery session."""
    session = DiscoverySession(config, global_channel, local_channel, backoff)
    await session.start()
    return session
