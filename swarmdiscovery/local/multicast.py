"""
Multicast Channel

Design Decision: Packet Format
==============================

Options Considered:
1. JSON over UDP broadcast
   - Easy to debug, but invisible to standard LAN tooling
2. Full DNS-SD service registration (zeroconf ServiceInfo / browser)
   - Registers services, but names are per-service, not per-topic
   - No way to attach a session token to a query
3. Raw mDNS packets built with zeroconf's DNS codec
   - Standard wire format on 224.0.0.251:5353
   - Full control over questions and known answers

Decision: raw mDNS using zeroconf's DNSOutgoing / DNSIncoming
- Queries carry an SRV question and a TXT known answer (the token)
- Responses carry SRV answers
- Names are the topic domains; no service registration involved
"""

import asyncio
import logging
import socket
import struct
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Tuple, Union

from zeroconf import DNSIncoming, DNSOutgoing, DNSQuestion, DNSService, DNSText

from ..events import Listeners
from .records import (
    MulticastQuery, MulticastResponse, Question, Record, RecordType, SrvRecord, TxtRecord,
)

logger = logging.getLogger(__name__)

MULTICAST_GROUP = '224.0.0.251'
MULTICAST_PORT = 5353
RECORD_TTL = 120  # seconds

# DNS header flags and record class (RFC 1035)
CLASS_IN = 1
FLAGS_QR_QUERY = 0x0000
FLAGS_QR_RESPONSE = 0x8000
FLAGS_AA = 0x0400

QueryCallback = Callable[[MulticastQuery, Tuple[str, int]], None]
ResponseCallback = Callable[[MulticastResponse, Tuple[str, int]], None]


class LocalChannel(ABC):
    """
    A multicast name-resolution client as seen by the discovery layer.

    Subclasses implement sending; inbound messages are dispatched through
    the query and response listeners.
    """

    def __init__(self):
        self._query_listeners: Listeners[QueryCallback] = Listeners('query')
        self._response_listeners: Listeners[ResponseCallback] = Listeners('response')

    def on_query(self, callback: QueryCallback) -> Callable[[], None]:
        return self._query_listeners.add(callback)

    def on_response(self, callback: ResponseCallback) -> Callable[[], None]:
        return self._response_listeners.add(callback)

    @abstractmethod
    async def start(self):
        """Open the channel."""

    @abstractmethod
    def query(self, query: MulticastQuery):
        """Send a query."""

    @abstractmethod
    def respond(self, response: MulticastResponse):
        """Send a response."""

    @abstractmethod
    def close(self):
        """Close the channel. Nothing is dispatched afterwards."""


# === Wire codec ===

def _fqdn(name: str) -> str:
    return name if name.endswith('.') else name + '.'


def _bare(name: str) -> str:
    return name[:-1] if name.endswith('.') else name


def encode_txt(data: List[bytes]) -> bytes:
    """Length-prefix each TXT string."""
    out = b''
    for item in data:
        if len(item) > 255:
            raise ValueError("TXT strings are limited to 255 bytes")
        out += bytes([len(item)]) + item
    return out


def decode_txt(text: bytes) -> List[bytes]:
    items = []
    i = 0
    while i < len(text):
        length = text[i]
        items.append(text[i + 1:i + 1 + length])
        i += 1 + length
    return items


def _to_dns(record: Record):
    if isinstance(record, SrvRecord):
        return DNSService(
            _fqdn(record.name), RecordType.SRV.value, CLASS_IN, RECORD_TTL,
            0, 0, record.port, record.target,
        )
    return DNSText(
        _fqdn(record.name), RecordType.TXT.value, CLASS_IN, RECORD_TTL,
        encode_txt(record.data),
    )


def _from_dns(record) -> Optional[Record]:
    if isinstance(record, DNSService):
        return SrvRecord(name=_bare(record.name), port=record.port, target=_bare(record.server))
    if isinstance(record, DNSText):
        return TxtRecord(name=_bare(record.name), data=decode_txt(record.text))
    return None


def encode_query(query: MulticastQuery) -> List[bytes]:
    out = DNSOutgoing(FLAGS_QR_QUERY, multicast=True)
    for question in query.questions:
        out.add_question(DNSQuestion(_fqdn(question.name), question.type.value, CLASS_IN))
    for answer in query.answers:
        out.add_answer_at_time(_to_dns(answer), 0)
    return out.packets()


def encode_response(response: MulticastResponse) -> List[bytes]:
    out = DNSOutgoing(FLAGS_QR_RESPONSE | FLAGS_AA, multicast=True)
    for answer in response.answers:
        out.add_answer_at_time(_to_dns(answer), 0)
    return out.packets()


def decode_packet(data: bytes) -> Optional[Union[MulticastQuery, MulticastResponse]]:
    """Parse an mDNS packet. Returns None for anything malformed."""
    incoming = DNSIncoming(data)
    if not incoming.valid:
        return None

    answers = [r for r in map(_from_dns, incoming.answers()) if r is not None]

    if incoming.is_response():
        return MulticastResponse(answers=answers)

    questions = []
    for question in incoming.questions:
        try:
            record_type = RecordType(question.type)
        except ValueError:
            continue
        questions.append(Question(_bare(question.name), record_type))
    return MulticastQuery(questions=questions, answers=answers)


# === Transport ===

class _MulticastProtocol(asyncio.DatagramProtocol):

    def __init__(self, channel: 'MulticastChannel'):
        self.channel = channel

    def datagram_received(self, data: bytes, addr: Tuple[str, int]):
        self.channel._on_packet(data, addr)

    def error_received(self, exc):
        logger.warning(f"Multicast socket error: {exc}")


class MulticastChannel(LocalChannel):
    """
    mDNS client on a UDP multicast socket.

    Our own packets are looped back, which is how two Topics in the same
    process find each other; the session token stops a Topic answering
    itself.
    """

    def __init__(self, group: str = MULTICAST_GROUP, port: int = MULTICAST_PORT,
                 interface: str = '0.0.0.0'):
        """
        Initialize the channel.

        Args:
            group: Multicast group address
            port: Multicast port
            interface: Local interface address to join the group on
        """
        super().__init__()
        self.group = group
        self.port = port
        self.interface = interface
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._transport is not None

    async def start(self):
        if self._transport is not None or self._closed:
            return

        sock = self._create_socket()
        loop = asyncio.get_event_loop()
        self._transport, _ = await loop.create_datagram_endpoint(
            lambda: _MulticastProtocol(self), sock=sock,
        )
        logger.info(f"Multicast channel open on {self.group}:{self.port}")

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Share the port with other mDNS responders (macOS/Linux)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except (AttributeError, OSError):
            pass

        sock.bind(('', self.port))
        membership = struct.pack(
            '4s4s', socket.inet_aton(self.group), socket.inet_aton(self.interface)
        )
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 255)
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        sock.setblocking(False)
        return sock

    def query(self, query: MulticastQuery):
        self._send(encode_query(query))

    def respond(self, response: MulticastResponse):
        self._send(encode_response(response))

    def close(self):
        self._closed = True
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            logger.info("Multicast channel closed")
        self._query_listeners.clear()
        self._response_listeners.clear()

    def _send(self, packets: List[bytes]):
        if self._transport is None:
            logger.debug("Multicast channel not open, dropping packet")
            return
        for packet in packets:
            self._transport.sendto(packet, (self.group, self.port))

    def _on_packet(self, data: bytes, addr: Tuple[str, int]):
        if self._closed:
            return
        message = decode_packet(data)
        if isinstance(message, MulticastQuery):
            self._query_listeners.emit(message, addr)
        elif isinstance(message, MulticastResponse):
            self._response_listeners.emit(message, addr)
