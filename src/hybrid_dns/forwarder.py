"""Forwarding to upstream resolvers with ordered failover."""
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Iterable

from dnslib import RCODE, DNSRecord
from dnslib.dns import DNSError

from .config import split_resolver

logger = logging.getLogger(__name__)


class ForwardError(Exception):
    """A single upstream exchange produced no usable reply."""


class _ExchangeProtocol(asyncio.DatagramProtocol):
    """Sends one datagram and resolves a future with the first reply."""

    def __init__(self, payload: bytes, reply: asyncio.Future[bytes]) -> None:
        self.payload = payload
        self.reply = reply

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        try:
            transport.sendto(self.payload)  # type: ignore[attr-defined]
        except OSError as exc:
            self._fail(exc)

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        if not self.reply.done():
            self.reply.set_result(data)

    def error_received(self, exc: Exception) -> None:
        self._fail(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self._fail(exc)

    def _fail(self, exc: Exception) -> None:
        if not self.reply.done():
            self.reply.set_exception(exc)


async def udp_exchange(payload: bytes, host: str, port: int, timeout: float) -> bytes:
    """Send one UDP datagram and wait for a single reply.

    No retransmission is attempted.

    Args:
        payload: Wire-format DNS query.
        host: Upstream resolver address.
        port: Upstream UDP port.
        timeout: Seconds to wait for the reply.

    Returns:
        Raw reply bytes.

    Raises:
        ForwardError: On timeout or socket error.
    """
    loop = asyncio.get_running_loop()
    reply: asyncio.Future[bytes] = loop.create_future()
    try:
        transport, _ = await asyncio.wait_for(
            loop.create_datagram_endpoint(
                lambda: _ExchangeProtocol(payload, reply),
                remote_addr=(host, port),
                family=socket.AF_INET,
            ),
            timeout,
        )
    except (OSError, asyncio.TimeoutError) as exc:
        raise ForwardError(f"cannot reach {host}:{port}: {exc!r}") from exc

    try:
        return await asyncio.wait_for(reply, timeout)
    except asyncio.TimeoutError as exc:
        raise ForwardError(f"timeout after {timeout:.1f}s from {host}:{port}") from exc
    except OSError as exc:
        raise ForwardError(f"socket error from {host}:{port}: {exc}") from exc
    finally:
        transport.close()


async def query_resolver(request: DNSRecord, resolver: str, timeout: float) -> DNSRecord:
    """Exchange a request with one resolver and parse its reply.

    Raises:
        ForwardError: On transport failure or a malformed/mismatched reply.
    """
    host, port = split_resolver(resolver)
    data = await udp_exchange(request.pack(), host, port, timeout)
    try:
        reply = DNSRecord.parse(data)
    except DNSError as exc:
        raise ForwardError(f"malformed reply from {resolver}: {exc}") from exc
    if reply.header.id != request.header.id:
        raise ForwardError(
            f"reply id {reply.header.id} from {resolver} does not match {request.header.id}"
        )
    return reply


def servfail(request: DNSRecord) -> DNSRecord:
    """Non-authoritative SERVFAIL reply echoing the request's question."""
    reply = request.reply(aa=0)
    reply.header.rcode = RCODE.SERVFAIL
    return reply


async def forward(
    request: DNSRecord, resolvers: Iterable[str], timeout: float
) -> tuple[str, DNSRecord]:
    """Forward a request to upstream resolvers in order.

    The first resolver that replies wins, whatever the reply's rcode; an
    upstream failure is relayed as-is. Only transport failures move on to
    the next resolver, and each resolver is tried at most once.

    Args:
        request: Request to forward verbatim.
        resolvers: Ordered resolver entries (``host`` or ``host:port``).
        timeout: Per-resolver timeout in seconds.

    Returns:
        Tuple of (resolver used, reply). When every resolver fails the
        resolver is ``""`` and the reply is a local SERVFAIL.
    """
    for resolver in resolvers:
        try:
            reply = await query_resolver(request, resolver, timeout)
        except ForwardError as exc:
            logger.debug("resolver %s failed for %s: %s", resolver, request.q.qname, exc)
            continue
        if reply.header.rcode != RCODE.NOERROR:
            logger.debug(
                "resolver %s answered %s with %s",
                resolver,
                request.q.qname,
                RCODE.get(reply.header.rcode),
            )
        return resolver, reply

    logger.warning("all resolvers failed for %s", request.q.qname)
    return "", servfail(request)
