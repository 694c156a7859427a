"""
Peer Candidates

What discovery hands back to callers: an address to try, where it came
from, and (for global results) the referrer the DHT needs to hole-punch.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class PeerCandidate:
    """A peer found by either discovery channel."""
    host: str
    port: int
    local: bool
    referrer: Optional[Any] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Return (host, port) tuple for networking."""
        return (self.host, self.port)

    def to_dict(self) -> dict:
        return {
            'host': self.host,
            'port': self.port,
            'local': self.local,
            'referrer': self.referrer,
        }


@dataclass(frozen=True)
class PingResult:
    """A bootstrap node that answered a ping."""
    bootstrap: Tuple[str, int]
    rtt: float  # milliseconds since the shared start of the ping round
    pong: Any
