"""
swarmdiscovery - Topic-Based Peer Discovery

Finds peers interested in the same key over two channels at once: a DHT
for the wider network and mDNS for the local one.
"""

from .backoff import Backoff, RetryTimer
from .config import DiscoveryConfig, load_config
from .dht import AnnounceDescriptor, GlobalChannel, LookupReply, OfflineGlobalChannel, PeerAddress
from .domains import DomainIndex, derive_domain
from .errors import (
    BootstrapUnreachableError, DiscoveryError, HolepunchError, LookupFailedError,
    NoBootstrapNodesError, ReferrerRequiredError, SessionDestroyedError,
)
from .local import LocalChannel, MulticastChannel
from .peers import PeerCandidate, PingResult
from .session import DiscoverySession, create_session
from .topic import Topic, TopicState

__version__ = '0.1.0'

__all__ = [
    'Backoff',
    'RetryTimer',
    'DiscoveryConfig',
    'load_config',
    'AnnounceDescriptor',
    'GlobalChannel',
    'LookupReply',
    'OfflineGlobalChannel',
    'PeerAddress',
    'DomainIndex',
    'derive_domain',
    'BootstrapUnreachableError',
    'DiscoveryError',
    'HolepunchError',
    'LookupFailedError',
    'NoBootstrapNodesError',
    'ReferrerRequiredError',
    'SessionDestroyedError',
    'LocalChannel',
    'MulticastChannel',
    'PeerCandidate',
    'PingResult',
    'DiscoverySession',
    'create_session',
    'Topic',
    'TopicState',
]
