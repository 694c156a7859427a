"""
Domain Index

A topic key maps to a local-channel name ("domain"): the hex of the first
20 bytes of the key followed by the session's suffix. Keys that agree on
those 20 bytes share a domain, and so share one multicast bucket. Lookups
rely on that working in both directions, so the collision is kept.
"""

from typing import TYPE_CHECKING, Dict, Iterator, Set

if TYPE_CHECKING:
    from .topic import Topic

# Only this many leading key bytes name the domain
DOMAIN_KEY_BYTES = 20
DEFAULT_DOMAIN = 'hyperswarm.local'


def derive_domain(key: bytes, suffix: str = DEFAULT_DOMAIN) -> str:
    """
    Derive the local-channel domain for a topic key.

    Args:
        key: Topic key (any length; only the first 20 bytes matter)
        suffix: Domain suffix, without the leading dot
    """
    return bytes(key[:DOMAIN_KEY_BYTES]).hex() + '.' + suffix.strip('.')


class DomainIndex:
    """
    domain -> set of live Topics sharing that domain.

    An entry disappears as soon as its set is empty, so a domain is never
    present with no topics.
    """

    def __init__(self):
        self._domains: Dict[str, Set['Topic']] = {}

    def __len__(self) -> int:
        return len(self._domains)

    def __contains__(self, domain: str) -> bool:
        return domain in self._domains

    def insert(self, domain: str, topic: 'Topic'):
        self._domains.setdefault(domain, set()).add(topic)

    def remove(self, domain: str, topic: 'Topic') -> bool:
        """Remove a topic. Returns True if it was present."""
        topics = self._domains.get(domain)
        if topics is None or topic not in topics:
            return False
        topics.discard(topic)
        if not topics:
            del self._domains[domain]
        return True

    def lookup(self, domain: str) -> Set['Topic']:
        """Topics for a domain (empty set if none). The result is a copy."""
        return set(self._domains.get(domain, ()))

    def topics(self) -> Iterator['Topic']:
        """Every live topic, across all domains."""
        for topics in list(self._domains.values()):
            yield from list(topics)

    def topic_count(self) -> int:
        return sum(len(topics) for topics in self._domains.values())
