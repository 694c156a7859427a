"""
Offline Global Channel

Used when a session is created without a DHT client. Discovery then runs
on the local channel only: announce/lookup streams stay open without ever
producing a peer (until the Topic cancels them), no bootstrap node ever
answers, and hole-punching is refused.
"""

import asyncio
import logging
from typing import Any, List, Optional, Tuple

from ..errors import HolepunchError
from ..peers import PeerCandidate
from .channel import AnnounceDescriptor, GlobalChannel, PeerStream

logger = logging.getLogger(__name__)


class OfflineGlobalChannel(GlobalChannel):
    """Stand-in DHT client with no network behind it."""

    def __init__(self, bootstrap: Optional[List[Tuple[str, int]]] = None,
                 ephemeral: bool = True):
        self._bootstrap = list(bootstrap or [])
        self.ephemeral = ephemeral
        self.closed = False
        logger.warning("No DHT client configured, global discovery disabled")

    @property
    def bootstrap(self) -> List[Tuple[str, int]]:
        return list(self._bootstrap)

    def announce(self, key: bytes, descriptor: AnnounceDescriptor) -> PeerStream:
        return self._idle()

    def lookup(self, key: bytes) -> PeerStream:
        return self._idle()

    async def unannounce(self, key: bytes, descriptor: AnnounceDescriptor):
        pass

    async def ping(self, node: Tuple[str, int]) -> Any:
        return None

    async def holepunch(self, peer: PeerCandidate, referrer: Any):
        raise HolepunchError("Global discovery is offline")

    async def close(self):
        self.closed = True

    async def _idle(self) -> PeerStream:
        await asyncio.Event().wait()
        return
        yield  # pragma: no cover
