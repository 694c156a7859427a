"""
DHT Module - Global Discovery Channel

The interface the discovery layer expects from a DHT client, and an
offline stand-in for running on the local network only.
"""

from .channel import AnnounceDescriptor, GlobalChannel, LookupReply, PeerAddress, PeerStream
from .offline import OfflineGlobalChannel

__all__ = [
    'AnnounceDescriptor',
    'GlobalChannel',
    'LookupReply',
    'PeerAddress',
    'PeerStream',
    'OfflineGlobalChannel',
]
