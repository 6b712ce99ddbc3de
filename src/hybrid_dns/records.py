"""Synthesized authoritative records for the local zone."""
from __future__ import annotations

import enum
import logging
import time
from typing import Callable

from dnslib import A, MX, NS, PTR, QTYPE, RCODE, RR, SOA, DNSLabel, DNSQuestion, DNSRecord

from .config import Config

logger = logging.getLogger(__name__)

# HTTPS (RFC 9460); answered with an A record like the address types.
QTYPE_HTTPS = 65


class RecordKind(enum.Enum):
    """Closed set of answer shapes; every qtype maps to exactly one."""

    ADDRESS = "address"
    MAIL = "mail"
    NAMESERVER = "nameserver"
    AUTHORITY = "authority"
    POINTER = "pointer"
    UNSUPPORTED = "unsupported"

    @classmethod
    def for_qtype(cls, qtype: int) -> RecordKind:
        return _KIND_BY_QTYPE.get(qtype, cls.UNSUPPORTED)


_KIND_BY_QTYPE: dict[int, RecordKind] = {
    QTYPE.A: RecordKind.ADDRESS,
    QTYPE.AAAA: RecordKind.ADDRESS,
    QTYPE.ANY: RecordKind.ADDRESS,
    QTYPE_HTTPS: RecordKind.ADDRESS,
    QTYPE.MX: RecordKind.MAIL,
    QTYPE.NS: RecordKind.NAMESERVER,
    QTYPE.SOA: RecordKind.AUTHORITY,
    QTYPE.PTR: RecordKind.POINTER,
}


def _local(label: str, config: Config) -> DNSLabel:
    return DNSLabel(f"{label}.{config.local_domain}")


def build_records(
    question: DNSQuestion, config: Config, clock: Callable[[], float] = time.time
) -> list[RR] | None:
    """Build the answer records for a question in the local zone.

    Args:
        question: Question being answered.
        config: Server configuration.
        clock: Source of the SOA serial, in Unix seconds.

    Returns:
        List of `RR`, or None when the question type has no local answer.
    """
    qname = question.qname
    ttl = config.ttl
    kind = RecordKind.for_qtype(question.qtype)

    if kind is RecordKind.ADDRESS:
        return [
            RR(qname, QTYPE.A, rclass=question.qclass, ttl=ttl, rdata=A(config.listen_address))
        ]
    if kind is RecordKind.MAIL:
        return [
            RR(qname, QTYPE.MX, ttl=ttl, rdata=MX(_local("mail1", config), preference=10)),
            RR(qname, QTYPE.MX, ttl=ttl, rdata=MX(_local("mail2", config), preference=15)),
        ]
    if kind is RecordKind.NAMESERVER:
        return [
            RR(qname, QTYPE.NS, ttl=ttl, rdata=NS(_local("ns1", config))),
            RR(qname, QTYPE.NS, ttl=ttl, rdata=NS(_local("ns2", config))),
        ]
    if kind is RecordKind.AUTHORITY:
        serial = int(clock())
        soa = SOA(
            _local("ns1", config),
            _local(config.admin, config),
            (serial, ttl, ttl, ttl, ttl),
        )
        return [RR(qname, QTYPE.SOA, ttl=ttl, rdata=soa)]
    if kind is RecordKind.POINTER:
        return [RR(qname, QTYPE.PTR, ttl=ttl, rdata=PTR(_local(config.ptr_host, config)))]
    if kind is RecordKind.UNSUPPORTED:
        return None
    raise AssertionError(f"unhandled record kind {kind!r}")


def synthesize(
    request: DNSRecord,
    question: DNSQuestion,
    config: Config,
    clock: Callable[[], float] = time.time,
) -> DNSRecord:
    """Answer a question authoritatively, without any network I/O.

    Args:
        request: Request carrying the transaction id and flags.
        question: Question to answer (must belong to the local zone).
        config: Server configuration.
        clock: Source of the SOA serial.

    Returns:
        Reply with ``aa`` set. Unsupported types get SERVFAIL and no records.
    """
    reply = DNSRecord(request.reply(aa=1).header, q=question)
    records = build_records(question, config, clock)
    if records is None:
        reply.header.rcode = RCODE.SERVFAIL
        logger.warning(
            "no local answer for qtype %s qname %s",
            QTYPE.get(question.qtype, question.qtype),
            question.qname,
        )
        return reply

    for rr in records:
        reply.add_answer(rr)
    if question.qtype == QTYPE.PTR:
        logger.info("PTR [%s] [%s]", question.qname, records[0].rdata)
    return reply

