"""
Brief: Tests for hybrid_dns.forwarder ordered failover, with both patched
exchanges and real UDP stub resolvers on 127.0.0.1.

Inputs:
  - None

Outputs:
  - None
"""

import asyncio

import pytest
from dnslib import A, QTYPE, RCODE, RR, DNSRecord

from hybrid_dns import forwarder
from hybrid_dns.forwarder import ForwardError, forward, query_resolver, udp_exchange


def _upstream_reply(request, address="104.18.33.45", rcode=RCODE.NOERROR):
    reply = request.reply(aa=0)
    reply.header.rcode = rcode
    if rcode == RCODE.NOERROR:
        reply.add_answer(RR(request.q.qname, QTYPE.A, rdata=A(address), ttl=300))
    return reply


@pytest.fixture
def scripted(monkeypatch):
    """
    Brief: Replace udp_exchange with a script keyed by resolver host.

    Outputs:
      - (script dict, calls list); a script value of None means timeout
    """
    script = {}
    calls = []

    async def fake_exchange(payload, host, port, timeout):
        calls.append((host, port))
        outcome = script.get(host)
        if outcome is None:
            raise ForwardError(f"timeout after {timeout}s from {host}:{port}")
        return outcome

    monkeypatch.setattr(forwarder, "udp_exchange", fake_exchange)
    return script, calls


def test_first_resolver_success_relayed(scripted):
    """
    Brief: openai.com. A is relayed from 8.8.8.8 without trying 8.8.4.4.

    Inputs:
      - resolvers [8.8.8.8, 8.8.4.4], first returns NOERROR

    Outputs:
      - None: Asserts resolver used, reply content and single call
    """
    script, calls = scripted
    request = DNSRecord.question("openai.com.", "A")
    upstream = _upstream_reply(request)
    script["8.8.8.8"] = upstream.pack()
    script["8.8.4.4"] = _upstream_reply(request, "1.2.3.4").pack()

    resolver, reply = asyncio.run(forward(request, ("8.8.8.8", "8.8.4.4"), 0.5))

    assert resolver == "8.8.8.8"
    assert calls == [("8.8.8.8", 53)]
    assert reply.header.id == request.header.id
    assert [str(rr) for rr in reply.rr] == [str(rr) for rr in upstream.rr]
    assert reply.pack() == upstream.pack()


def test_failover_to_second_resolver(scripted):
    script, calls = scripted
    request = DNSRecord.question("openai.com.", "A")
    script["8.8.4.4"] = _upstream_reply(request, "1.2.3.4").pack()

    resolver, reply = asyncio.run(forward(request, ("8.8.8.8", "8.8.4.4"), 0.5))

    assert resolver == "8.8.4.4"
    assert calls == [("8.8.8.8", 53), ("8.8.4.4", 53)]
    assert str(reply.rr[0].rdata) == "1.2.3.4"


def test_exhaustion_returns_servfail(scripted):
    """
    Brief: When every resolver times out, a local SERVFAIL is returned with no resolver.

    Outputs:
      - None: Asserts empty resolver id, rcode, aa flag and each resolver tried once
    """
    _, calls = scripted
    request = DNSRecord.question("openai.com.", "A")

    resolver, reply = asyncio.run(forward(request, ("8.8.8.8", "8.8.4.4"), 0.5))

    assert resolver == ""
    assert reply.header.rcode == RCODE.SERVFAIL
    assert reply.header.aa == 0
    assert reply.header.id == request.header.id
    assert str(reply.q.qname) == "openai.com."
    assert calls == [("8.8.8.8", 53), ("8.8.4.4", 53)]


def test_upstream_failure_relayed_not_masked(scripted):
    script, calls = scripted
    request = DNSRecord.question("missing.example.com.", "A")
    script["8.8.8.8"] = _upstream_reply(request, rcode=RCODE.NXDOMAIN).pack()
    script["8.8.4.4"] = _upstream_reply(request).pack()

    resolver, reply = asyncio.run(forward(request, ("8.8.8.8", "8.8.4.4"), 0.5))

    assert resolver == "8.8.8.8"
    assert reply.header.rcode == RCODE.NXDOMAIN
    assert calls == [("8.8.8.8", 53)]


def test_malformed_and_mismatched_replies_fail_over(scripted):
    """
    Brief: Unparseable replies and replies with a foreign id count as transport failures.

    Outputs:
      - None: Asserts the third resolver answers
    """
    script, calls = scripted
    request = DNSRecord.question("openai.com.", "A")
    stranger = DNSRecord.question("openai.com.", "A")
    stranger.header.id = (request.header.id + 1) % 65536
    script["10.1.1.1"] = b"\x00\x01"
    script["10.1.1.2"] = _upstream_reply(stranger).pack()
    script["10.1.1.3"] = _upstream_reply(request).pack()

    resolver, _ = asyncio.run(forward(request, ("10.1.1.1", "10.1.1.2:5353", "10.1.1.3"), 0.5))

    assert resolver == "10.1.1.3"
    assert calls == [("10.1.1.1", 53), ("10.1.1.2", 5353), ("10.1.1.3", 53)]


def test_every_query_restarts_the_scan(scripted):
    script, calls = scripted
    request = DNSRecord.question("openai.com.", "A")
    script["8.8.4.4"] = _upstream_reply(request).pack()

    for _ in range(2):
        asyncio.run(forward(request, ("8.8.8.8", "8.8.4.4"), 0.5))

    assert calls == [("8.8.8.8", 53), ("8.8.4.4", 53)] * 2


def test_udp_exchange_against_stub(udp_stub, answer_with):
    stub = udp_stub(answer_with("93.184.216.34"))
    request = DNSRecord.question("example.com.", "A")

    data = asyncio.run(udp_exchange(request.pack(), *stub.addr, timeout=1.0))

    reply = DNSRecord.parse(data)
    assert reply.header.id == request.header.id
    assert str(reply.rr[0].rdata) == "93.184.216.34"


def test_udp_exchange_timeout(udp_stub):
    stub = udp_stub(lambda data: None)
    with pytest.raises(ForwardError, match="timeout"):
        asyncio.run(udp_exchange(b"\x00" * 12, *stub.addr, timeout=0.2))
    assert stub.hits == 1


def test_query_resolver_parses_reply(udp_stub, answer_with):
    stub = udp_stub(answer_with("10.9.8.7"))
    request = DNSRecord.question("example.com.", "A")
    reply = asyncio.run(query_resolver(request, stub.resolver, 1.0))
    assert str(reply.rr[0].rdata) == "10.9.8.7"


def test_failover_with_real_sockets(udp_stub, answer_with):
    """
    Brief: A silent stub times out and the next stub's answer is relayed.

    Inputs:
      - resolvers [silent stub, answering stub, spare stub]

    Outputs:
      - None: Asserts resolver used and that the spare was never contacted
    """
    silent = udp_stub(lambda data: None)
    answering = udp_stub(answer_with("93.184.216.34"))
    spare = udp_stub(answer_with("1.1.1.1"))
    request = DNSRecord.question("example.com.", "A")

    resolver, reply = asyncio.run(
        forward(request, (silent.resolver, answering.resolver, spare.resolver), 0.2)
    )

    assert resolver == answering.resolver
    assert str(reply.rr[0].rdata) == "93.184.216.34"
    assert (silent.hits, answering.hits, spare.hits) == (1, 1, 0)


def test_all_silent_real_sockets(udp_stub):
    first = udp_stub(lambda data: None)
    second = udp_stub(lambda data: None)
    request = DNSRecord.question("example.com.", "A")

    resolver, reply = asyncio.run(forward(request, (first.resolver, second.resolver), 0.2))

    assert resolver == ""
    assert reply.header.rcode == RCODE.SERVFAIL
    assert (first.hits, second.hits) == (1, 1)
