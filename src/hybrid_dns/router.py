"""Per-question dispatch between local answers and forwarding."""
from __future__ import annotations

import logging
from typing import Any

from dnslib import QTYPE, RCODE, DNSHeader, DNSQuestion, DNSRecord

from .config import Config
from .forwarder import forward, servfail
from .records import synthesize
from .zone import classify

logger = logging.getLogger(__name__)


def split_questions(
    request: DNSRecord, first_only: bool = False
) -> list[tuple[DNSRecord, DNSQuestion]]:
    """Pair each question with a single-question request sharing its header.

    Args:
        request: Parsed inbound request.
        first_only: Keep only the first question.

    Returns:
        List of (sub-request, question). A single-question request is paired
        with itself so it is forwarded unchanged.
    """
    questions = request.questions[:1] if first_only else request.questions
    if len(request.questions) == 1:
        return [(request, request.q)]
    pairs = []
    for question in questions:
        header = DNSHeader(id=request.header.id, bitmap=request.header.bitmap)
        pairs.append((DNSRecord(header, q=question), question))
    return pairs


async def answer_question(
    request: DNSRecord, question: DNSQuestion, config: Config, client: Any = None
) -> DNSRecord:
    """Classify one question and produce exactly one reply for it."""
    qtype = question.qtype
    if classify(str(question.qname), qtype, config).is_local:
        reply = synthesize(request, question, config)
        logger.info(
            "A [%s] [%s] %s %s", client, QTYPE.get(qtype, qtype), config.listen_address, reply.rr
        )
        return reply

    resolver, reply = await forward(request, config.resolvers, config.timeout)
    logger.info("F [%s] [%s] [%s] %s", client, QTYPE.get(qtype, qtype), resolver, reply.rr)
    return reply


async def route(request: DNSRecord, config: Config, client: Any = None) -> list[DNSRecord]:
    """Answer every question in a request.

    Questions are handled one after another, in request order.

    Args:
        request: Parsed inbound request.
        config: Server configuration.
        client: Peer address, used for logging only.

    Returns:
        One reply per answered question; a request without questions gets a
        single FORMERR reply. A question whose handling fails gets its own
        SERVFAIL; the other questions are still answered.
    """
    if not request.questions:
        reply = DNSRecord(DNSHeader(id=request.header.id, bitmap=request.header.bitmap, qr=1))
        reply.header.rcode = RCODE.FORMERR
        logger.debug("%s sent a request without questions", client)
        return [reply]

    replies = []
    for sub_request, question in split_questions(request, config.first_question_only):
        try:
            reply = await answer_question(sub_request, question, config, client)
        except Exception:
            logger.exception("unhandled error answering %s for %s", question.qname, client)
            reply = servfail(sub_request)
        replies.append(reply)
    return replies
