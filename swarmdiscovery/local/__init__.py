"""
Local Module - Multicast Discovery

Record types, the mDNS channel and the matcher that answers queries on
behalf of announcing Topics.
"""

from .records import (
    ANY_ADDRESS, MulticastQuery, MulticastResponse, Question, RecordType, SrvRecord, TxtRecord,
)
from .multicast import LocalChannel, MulticastChannel, decode_packet, encode_query, encode_response
from .matcher import LocalChannelMatcher

__all__ = [
    'ANY_ADDRESS',
    'MulticastQuery',
    'MulticastResponse',
    'Question',
    'RecordType',
    'SrvRecord',
    'TxtRecord',
    'LocalChannel',
    'MulticastChannel',
    'decode_packet',
    'encode_query',
    'encode_response',
    'LocalChannelMatcher',
]
