from swarmdiscovery.local import (
    ANY_ADDRESS, MulticastChannel, MulticastQuery, MulticastResponse, Question, RecordType,
    SrvRecord, TxtRecord, decode_packet, encode_query, encode_response,
)
from swarmdiscovery.local.multicast import (
    FLAGS_AA, FLAGS_QR_QUERY, FLAGS_QR_RESPONSE, decode_txt, encode_txt,
)

DOMAIN = bytes(range(20)).hex() + '.test.local'
TOKEN = b'id=' + bytes(range(32))


def test_txt_strings_are_length_prefixed():
    assert encode_txt([b'ab', b'c']) == b'\x02ab\x01c'
    assert decode_txt(b'\x02ab\x01c') == [b'ab', b'c']


def test_query_packet_carries_question_and_token():
    query = MulticastQuery(
        questions=[Question(DOMAIN)],
        answers=[TxtRecord(DOMAIN, [TOKEN])],
    )

    packets = encode_query(query)
    decoded = decode_packet(packets[0])

    assert len(packets) == 1
    assert isinstance(decoded, MulticastQuery)
    assert decoded.questions == [Question(DOMAIN, RecordType.SRV)]
    assert decoded.token_for(DOMAIN) == TOKEN


def test_response_packet_keeps_wildcard_target():
    response = MulticastResponse(answers=[SrvRecord(DOMAIN, 4000)])

    decoded = decode_packet(encode_response(response)[0])

    assert isinstance(decoded, MulticastResponse)
    assert decoded.answers == [SrvRecord(DOMAIN, 4000, ANY_ADDRESS)]


def test_header_flags_mark_queries_and_authoritative_responses():
    query = encode_query(MulticastQuery(questions=[Question(DOMAIN)]))[0]
    response = encode_response(MulticastResponse(answers=[SrvRecord(DOMAIN, 4000)]))[0]

    assert int.from_bytes(query[2:4], 'big') == FLAGS_QR_QUERY
    assert int.from_bytes(response[2:4], 'big') == FLAGS_QR_RESPONSE | FLAGS_AA


def test_garbage_is_ignored():
    assert decode_packet(b'not a dns packet') is None


def test_send_before_start_is_dropped():
    channel = MulticastChannel()
    channel.query(MulticastQuery(questions=[Question(DOMAIN)]))
    channel.respond(MulticastResponse(answers=[SrvRecord(DOMAIN, 4000)]))
    assert not channel.is_open


def test_inbound_packets_are_dispatched():
    channel = MulticastChannel()
    queries, responses = [], []
    channel.on_query(lambda q, sender: queries.append((q, sender)))
    channel.on_response(lambda r, sender: responses.append((r, sender)))
    sender = ('192.168.1.5', 5353)

    channel._on_packet(encode_query(MulticastQuery(questions=[Question(DOMAIN)]))[0], sender)
    channel._on_packet(encode_response(MulticastResponse(answers=[SrvRecord(DOMAIN, 1)]))[0], sender)

    assert [(q.questions, s) for q, s in queries] == [([Question(DOMAIN)], sender)]
    assert [(r.answers, s) for r, s in responses] == [([SrvRecord(DOMAIN, 1)], sender)]


def test_closed_channel_dispatches_nothing():
    channel = MulticastChannel()
    queries = []
    channel.on_query(lambda q, sender: queries.append(q))

    channel.close()
    channel._on_packet(encode_query(MulticastQuery(questions=[Question(DOMAIN)]))[0], ('1.1.1.1', 5353))

    assert queries == []
