"""
Local Channel Records

The small slice of DNS the local channel speaks. A Topic asks for the SRV
record of its domain and tags the query with a TXT record holding its
session token. Announcing Topics answer with an SRV record carrying their
port. The wire encoding lives in multicast.py; everything here is plain
data.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

# SRV target meaning "whoever sent this packet"
ANY_ADDRESS = '0.0.0.0'


class RecordType(Enum):
    """DNS record types used by the local channel."""
    SRV = 33
    TXT = 16


@dataclass(frozen=True)
class Question:
    name: str
    type: RecordType = RecordType.SRV


@dataclass(frozen=True)
class SrvRecord:
    """
    Where to reach a peer for a domain.

    target is ANY_ADDRESS when the announcer leaves it to the receiver to
    use the packet's source address.
    """
    name: str
    port: int
    target: str = ANY_ADDRESS

    type = RecordType.SRV

    @property
    def is_wildcard(self) -> bool:
        return self.target == ANY_ADDRESS

    def resolve_target(self, sender: str) -> str:
        """The host to use, given the address the packet came from."""
        return sender if self.is_wildcard else self.target


@dataclass(frozen=True)
class TxtRecord:
    """TXT record; data is a list of raw strings."""
    name: str
    data: List[bytes] = field(default_factory=list)

    type = RecordType.TXT

    def __hash__(self):
        return hash((self.name, tuple(self.data)))


Record = Union[SrvRecord, TxtRecord]


@dataclass
class MulticastQuery:
    """A query: questions, plus answers the querier attaches about itself."""
    questions: List[Question] = field(default_factory=list)
    answers: List[Record] = field(default_factory=list)

    def token_for(self, name: str) -> Optional[bytes]:
        """First TXT string attached for name: the querier's session token."""
        for answer in self.answers:
            if isinstance(answer, TxtRecord) and answer.name == name and answer.data:
                return answer.data[0]
        return None


@dataclass
class MulticastResponse:
    answers: List[Record] = field(default_factory=list)
