"""
Topic - Per-Key Discovery

A Topic keeps looking for peers on one key until it is destroyed. It runs
two loops that fail and retry independently:

Global loop (DHT)
    Announce on the key (if the Topic has an announce descriptor) or look
    it up, and surface every peer in the returned stream. When the stream
    errors or ends, emit an update carrying the error (None on a clean
    end) and retry after a lazy delay.

Local loop (multicast)
    Send an SRV query for the Topic's domain, tagged with a TXT record
    holding the session token so other Topics can tell the query is ours.
    Repeat after an eager delay. Nothing is withdrawn on destroy: records
    expire by not being re-sent.

Peers from both loops go to the same subscribers, interleaved, with no
deduplication between channels.
"""

import asyncio
import logging
import os
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from .backoff import RetryTimer
from .dht import AnnounceDescriptor, LookupReply, PeerStream
from .events import Listeners
from .local.records import MulticastQuery, Question, SrvRecord, TxtRecord
from .peers import PeerCandidate

if TYPE_CHECKING:
    from .session import DiscoverySession

logger = logging.getLogger(__name__)

TOKEN_PREFIX = b'id='
TOKEN_BYTES = 32

PeerCallback = Callable[[PeerCandidate], None]
UpdateCallback = Callable[[Optional[Exception]], None]
CloseCallback = Callable[[], None]


def generate_session_token() -> bytes:
    """Random token a Topic uses to recognise its own multicast queries."""
    return TOKEN_PREFIX + os.urandom(TOKEN_BYTES)


class TopicState(Enum):
    STARTING = "starting"
    ACTIVE = "active"
    RESTARTING = "restarting"
    DESTROYED = "destroyed"


class Topic:
    """
    Discovery state for one key.

    Created by DiscoverySession.announce() / lookup(); not meant to be
    constructed directly.
    """

    def __init__(self, session: 'DiscoverySession', key: bytes,
                 announce: Optional[AnnounceDescriptor] = None,
                 local_port: int = 0, lookup: bool = False):
        """
        Initialize a topic. Loops start on start().

        Args:
            session: Owning session (channels, backoff, domain index)
            key: Topic key
            announce: Descriptor to publish on the DHT, None for lookup only
            local_port: Port to answer local queries with (0 = don't answer)
            lookup: Run the local query loop even when announcing
        """
        self.key = bytes(key)
        self.announce = announce
        self.domain = session.domain(self.key)
        self.token = generate_session_token()
        self.destroyed = False
        self.state = TopicState.STARTING

        self.answer: Optional[SrvRecord] = (
            SrvRecord(name=self.domain, port=local_port) if local_port else None
        )
        self.local_enabled = announce is None or lookup

        self._session = session
        self._query = MulticastQuery(
            questions=[Question(self.domain)],
            answers=[TxtRecord(self.domain, [self.token])],
        )

        self._global_task: Optional[asyncio.Task] = None
        self._global_retry = RetryTimer(session.backoff, self._start_global, eager=False)
        self._local_retry = RetryTimer(session.backoff, self._query_local, eager=True)
        self._close_task: Optional[asyncio.Task] = None
        self._closed = asyncio.Event()

        self._peer_listeners: Listeners[PeerCallback] = Listeners('peer')
        self._update_listeners: Listeners[UpdateCallback] = Listeners('update')
        self._close_listeners: Listeners[CloseCallback] = Listeners('close')

    def __repr__(self) -> str:
        mode = 'announce' if self.announcing else 'lookup'
        return f"<Topic {self.domain} {mode} {self.state.value}>"

    @property
    def announcing(self) -> bool:
        return self.announce is not None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    # === Subscriptions ===

    def on_peer(self, callback: PeerCallback) -> Callable[[], None]:
        """Subscribe to discovered peers. Returns an unsubscribe function."""
        return self._peer_listeners.add(callback)

    def on_update(self, callback: UpdateCallback) -> Callable[[], None]:
        """Subscribe to global loop restarts (error, or None on clean end)."""
        return self._update_listeners.add(callback)

    def on_close(self, callback: CloseCallback) -> Callable[[], None]:
        """Subscribe to the end of teardown."""
        return self._close_listeners.add(callback)

    async def wait_closed(self):
        await self._closed.wait()

    # === Lifecycle ===

    def start(self):
        """Start both loops. Called once, by the session."""
        if self.state is not TopicState.STARTING:
            return
        self._start_global()
        if self.local_enabled:
            self._start_local()

    def update(self):
        """
        Kick the loops.

        A global loop waiting on its retry restarts now; a live stream is
        left alone. The local query goes out immediately.
        """
        if self.destroyed:
            return
        if self._global_retry.cancel():
            self._start_global()
        if self.local_enabled:
            self._start_local()

    def destroy(self):
        """
        Stop both loops and leave the domain index.

        Announcing topics unannounce from the DHT before closing; lookup
        topics close on the next loop iteration.
        """
        if self.destroyed:
            return
        self.destroyed = True
        self.state = TopicState.DESTROYED

        self._stop_global()
        self._local_retry.cancel()
        self._session._remove_topic(self)

        if self.announce is None:
            asyncio.get_event_loop().call_soon(self._emit_close)
        else:
            self._close_task = asyncio.create_task(self._unannounce())

    # === Peer delivery ===

    def emit_peer(self, peer: PeerCandidate):
        """Hand a peer to subscribers. Dropped once destroyed."""
        if self.destroyed:
            return
        self._peer_listeners.emit(peer)

    def _on_reply(self, reply: LookupReply):
        referrer = reply.node
        for peer in reply.local_peers:
            self.emit_peer(PeerCandidate(peer.host, peer.port, local=True, referrer=None))
        for peer in reply.peers:
            self.emit_peer(PeerCandidate(peer.host, peer.port, local=False, referrer=referrer))

    # === Global loop ===

    def _open_stream(self) -> PeerStream:
        channel = self._session.global_channel
        if self.announce is not None:
            return channel.announce(self.key, self.announce)
        return channel.lookup(self.key)

    def _start_global(self):
        self._global_retry.cancel()
        self.state = TopicState.ACTIVE
        self._global_task = asyncio.create_task(self._run_global())

    def _stop_global(self):
        self._global_retry.cancel()
        if self._global_task is not None:
            self._global_task.cancel()
            self._global_task = None

    async def _run_global(self):
        error: Optional[Exception] = None
        try:
            async for reply in self._open_stream():
                if self.destroyed:
                    break
                self._on_reply(reply)
        except Exception as e:
            error = e

        if self.destroyed:
            return

        # Detach before notifying, so a subscriber that destroys the
        # topic does not cancel this (already finishing) task
        self._global_task = None
        self.state = TopicState.RESTARTING
        if error is not None:
            logger.warning(f"Global discovery failed for {self.domain[:16]}...: {error}")
        else:
            logger.debug(f"Global discovery stream ended for {self.domain[:16]}...")

        self._update_listeners.emit(error)
        if not self.destroyed:
            self._global_retry.reschedule()

    # === Local loop ===

    def _start_local(self):
        self._local_retry.cancel()
        self._query_local()

    def _query_local(self):
        if self.destroyed:
            return
        self._session.local_channel.query(self._query)
        self._local_retry.reschedule()

    # === Teardown ===

    async def _unannounce(self):
        try:
            await self._session.global_channel.unannounce(self.key, self.announce)
        except Exception as e:
            logger.warning(f"Unannounce failed for {self.domain[:16]}...: {e}")
        self._emit_close()

    def _emit_close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        logger.debug(f"Topic closed: {self.domain[:16]}...")
        self._close_listeners.emit()

    def get_stats(self) -> dict:
        """Get topic state for display."""
        return {
            'domain': self.domain,
            'key': self.key.hex(),
            'state': self.state.value,
            'announcing': self.announcing,
            'local_port': self.answer.port if self.answer else 0,
            'local_loop': self.local_enabled,
            'global_stream_live': self._global_task is not None,
            'global_retry_pending': self._global_retry.pending,
        }
