"""
Local Channel Matcher

Turns inbound multicast traffic into Topic events and answers.

- Responses: every SRV answer naming a known domain becomes a local peer
  for every Topic in that domain.
- Queries: every SRV question naming a known domain is answered with the
  SRV records of the announcing Topics in that domain, except the Topic
  whose session token tagged the query. A Topic never answers itself.
  Each query gets exactly one response, empty when nothing matched.
"""

import logging
from typing import Tuple

from ..domains import DomainIndex
from ..peers import PeerCandidate
from .multicast import LocalChannel
from .records import MulticastQuery, MulticastResponse, RecordType, SrvRecord

logger = logging.getLogger(__name__)


class LocalChannelMatcher:
    """Dispatches multicast queries and responses against a DomainIndex."""

    def __init__(self, domains: DomainIndex, channel: LocalChannel):
        self.domains = domains
        self.channel = channel

    def attach(self):
        """Subscribe to the channel's inbound traffic."""
        self.channel.on_query(self.on_query)
        self.channel.on_response(self.on_response)

    def on_response(self, response: MulticastResponse, sender: Tuple[str, int]):
        """Fan SRV answers for known domains out to their Topics."""
        for answer in response.answers:
            if not isinstance(answer, SrvRecord):
                continue
            topics = self.domains.lookup(answer.name)
            if not topics:
                continue

            peer = PeerCandidate(
                host=answer.resolve_target(sender[0]),
                port=answer.port,
                local=True,
                referrer=None,
            )
            logger.debug(f"Local peer {peer.host}:{peer.port} for {len(topics)} topic(s)")
            for topic in topics:
                topic.emit_peer(peer)

    def on_query(self, query: MulticastQuery, sender: Tuple[str, int]) -> MulticastResponse:
        """
        Answer a query on behalf of every announcing Topic it asks about.

        One aggregated response is sent per query. Returns it.
        """
        response = MulticastResponse()

        for question in query.questions:
            if question.type is not RecordType.SRV:
                continue
            topics = self.domains.lookup(question.name)
            if not topics:
                continue

            token = query.token_for(question.name)
            for topic in topics:
                if token is not None and topic.token == token:
                    continue
                if topic.answer is not None:
                    response.answers.append(topic.answer)

        logger.debug(f"Answering {sender[0]}:{sender[1]} with {len(response.answers)} record(s)")
        self.channel.respond(response)
        return response
