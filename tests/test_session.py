import asyncio

import pytest

from swarmdiscovery.config import DiscoveryConfig
from swarmdiscovery.dht import LookupReply, OfflineGlobalChannel, PeerAddress
from swarmdiscovery.errors import (
    BootstrapUnreachableError, LookupFailedError, NoBootstrapNodesError,
    ReferrerRequiredError, SessionDestroyedError,
)
from swarmdiscovery.local import MulticastResponse, SrvRecord
from swarmdiscovery.peers import PeerCandidate
from swarmdiscovery.session import create_session

from conftest import FakeGlobalChannel, FakeLocalChannel, settle

KEY = bytes(range(32))
NODE1 = ('node1.example', 49737)
NODE2 = ('node2.example', 49737)


async def test_create_session_starts_local_channel(config, global_channel, local_channel):
    session = await create_session(config, global_channel, local_channel)
    assert local_channel.started
    assert session.bootstrap == [NODE1, NODE2]


async def test_domain_uses_configured_suffix(session):
    topic = session.announce(KEY, port=4000)
    assert topic.domain == KEY[:20].hex() + '.test.local'
    assert session.domain(KEY) == topic.domain


async def test_offline_global_channel_by_default(config, local_channel):
    from swarmdiscovery.session import DiscoverySession

    session = DiscoverySession(config, local_channel=local_channel)

    assert isinstance(session.global_channel, OfflineGlobalChannel)
    assert session.bootstrap == config.bootstrap


async def test_offline_lookup_still_finds_local_peers(config, local_channel):
    from swarmdiscovery.session import DiscoverySession

    session = DiscoverySession(config, local_channel=local_channel)
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()

    local_channel.deliver_response(
        MulticastResponse(answers=[SrvRecord(session.domain(KEY), 4000)]), ('10.0.0.9', 5353)
    )

    peer = await asyncio.wait_for(task, 1)
    assert peer == PeerCandidate('10.0.0.9', 4000, local=True, referrer=None)
    await asyncio.wait_for(session.destroy(), 1)


async def test_announce_and_lookup_refused_after_destroy(session):
    await session.destroy()

    with pytest.raises(SessionDestroyedError):
        session.announce(KEY, port=4000)
    with pytest.raises(SessionDestroyedError):
        session.lookup(KEY)
    with pytest.raises(SessionDestroyedError):
        await session.lookup_one(KEY)


async def test_destroy_refuses_topics_immediately(session, local_channel):
    task = session.destroy()

    assert session.destroyed
    assert local_channel.closed
    with pytest.raises(SessionDestroyedError):
        session.lookup(KEY)
    with pytest.raises(SessionDestroyedError):
        session.announce(KEY, port=4000)
    assert not session.closed

    await task
    assert session.closed


async def test_destroy_returns_the_same_task(session):
    task = session.destroy()

    assert session.destroy() is task
    await task
    assert session.destroy() is task


async def test_destroy_closes_after_every_topic(session, global_channel, local_channel):
    gate = asyncio.Event()
    global_channel.unannounce_gate = gate
    order = []

    announced = session.announce(KEY, port=4000)
    looked_up = session.lookup(b'\x02' * 32)
    announced.on_close(lambda: order.append('announce'))
    looked_up.on_close(lambda: order.append('lookup'))
    session.on_close(lambda: order.append('session'))

    task = session.destroy()
    await settle()

    assert local_channel.closed
    assert order == ['lookup']
    assert not session.closed
    assert not global_channel.closed

    gate.set()
    await asyncio.wait_for(task, 1)

    assert order == ['lookup', 'announce', 'session']
    assert global_channel.closed
    assert len(session.domains) == 0


async def test_destroy_waits_for_topics_already_tearing_down(session, global_channel):
    gate = asyncio.Event()
    global_channel.unannounce_gate = gate
    topic = session.announce(KEY, port=4000)
    topic.destroy()

    task = session.destroy()
    await settle()
    assert not session.closed

    gate.set()
    await asyncio.wait_for(task, 1)
    assert topic.closed
    assert session.closed


async def test_destroy_with_no_topics(session, global_channel):
    closed = []
    session.on_close(lambda: closed.append(True))

    await asyncio.wait_for(session.destroy(), 1)

    assert closed == [True]
    assert global_channel.closed


async def test_close_emitted_exactly_once(session):
    closed = []
    session.on_close(lambda: closed.append(True))
    session.lookup(KEY)

    await asyncio.gather(session.destroy(), session.destroy())
    await session.destroy()

    assert closed == [True]


async def test_ping_without_bootstrap_fails_immediately(make_session):
    channel = FakeGlobalChannel(bootstrap=[])
    session = make_session(global_channel=channel)

    with pytest.raises(NoBootstrapNodesError):
        await session.ping()
    assert channel.pinged == []


async def test_ping_returns_partial_results(session, global_channel):
    global_channel.pongs = {NODE1: {'ok': True}, NODE2: TimeoutError("no answer")}

    results = await session.ping()

    assert len(results) == 1
    assert results[0].bootstrap == NODE1
    assert results[0].pong == {'ok': True}
    assert results[0].rtt >= 0
    assert sorted(global_channel.pinged) == [NODE1, NODE2]


async def test_ping_fails_when_no_node_answers(session, global_channel):
    global_channel.pongs = {NODE1: None, NODE2: ConnectionError("refused")}

    with pytest.raises(BootstrapUnreachableError):
        await session.ping()


async def test_holepunch_requires_referrer(session, global_channel):
    with pytest.raises(ReferrerRequiredError):
        await session.holepunch(PeerCandidate('10.0.0.2', 4000, local=True))
    assert global_channel.holepunches == []


async def test_holepunch_delegates_with_referrer(session, global_channel):
    peer = PeerCandidate('1.2.3.4', 4000, local=False, referrer='node-a')

    result = await session.holepunch(peer)

    assert result == 'punched'
    assert global_channel.holepunches == [(peer, 'node-a')]


async def test_lookup_one_returns_first_peer(session, global_channel):
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()
    stream = global_channel.stream

    stream.push(LookupReply(
        node='node-a',
        peers=[PeerAddress('1.2.3.4', 5000), PeerAddress('5.6.7.8', 6000)],
    ))
    peer = await asyncio.wait_for(task, 1)

    assert peer == PeerCandidate('1.2.3.4', 5000, local=False, referrer='node-a')
    assert len(session.domains) == 0
    await settle()
    assert stream.cancelled


async def test_lookup_one_fails_when_stream_ends_first(session, global_channel):
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()

    global_channel.stream.end()

    with pytest.raises(LookupFailedError):
        await asyncio.wait_for(task, 1)
    assert len(session.domains) == 0


async def test_lookup_one_keeps_stream_error(session, global_channel):
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()
    error = ConnectionError("dht down")

    global_channel.stream.fail(error)

    with pytest.raises(LookupFailedError) as info:
        await asyncio.wait_for(task, 1)
    assert info.value.cause is error


async def test_lookup_one_fails_when_session_destroyed(session):
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()

    await session.destroy()

    with pytest.raises(LookupFailedError):
        await asyncio.wait_for(task, 1)


async def test_cancelled_lookup_one_destroys_topic(session):
    task = asyncio.create_task(session.lookup_one(KEY))
    await settle()
    assert len(session.domains) == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(session.domains) == 0


async def test_stats(session):
    session.announce(KEY, port=4000)
    session.lookup(KEY)

    stats = session.get_stats()

    assert stats['domains'] == 1
    assert stats['topics'] == 2
    assert stats['bootstrap_nodes'] == 2
    assert stats['domain_suffix'] == 'test.local'
    assert len(stats['topic_details']) == 2


async def test_two_sessions_on_one_network(config):
    # A shared loopback network: everything one session sends, both receive
    first_channel, second_channel = FakeLocalChannel(), FakeLocalChannel()

    def wire(sender, receivers, address):
        def query(q):
            sender.queries.append(q)
            for receiver in receivers:
                asyncio.get_event_loop().call_soon(receiver.deliver_query, q, address)

        def respond(r):
            sender.responses.append(r)
            for receiver in receivers:
                asyncio.get_event_loop().call_soon(receiver.deliver_response, r, address)

        sender.query, sender.respond = query, respond

    channels = [first_channel, second_channel]
    wire(first_channel, channels, ('192.168.1.10', 5353))
    wire(second_channel, channels, ('192.168.1.11', 5353))

    announcer = await create_session(config, FakeGlobalChannel(), first_channel)
    searcher = await create_session(config, FakeGlobalChannel(), second_channel)

    announcer.announce(KEY, port=4000)
    peer = await asyncio.wait_for(searcher.lookup_one(KEY), 1)

    assert peer == PeerCandidate('192.168.1.10', 4000, local=True, referrer=None)
    await announcer.destroy()
    await searcher.destroy()
