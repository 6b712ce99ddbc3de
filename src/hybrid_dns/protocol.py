"""Asyncio UDP protocol for the hybrid DNS server."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from dnslib import DNSRecord
from dnslib.dns import DNSError

from .config import Config
from .forwarder import servfail
from .router import route

logger = logging.getLogger(__name__)


class DNSUDPProtocol(asyncio.DatagramProtocol):
    """Hybrid DNS handler over UDP.

    Each datagram is handled in its own task so a slow upstream never
    blocks the listener.

    Attributes:
        transport: Active UDP transport or None until connected.
        config: Immutable server configuration.
        tasks: Requests currently in flight.
    """

    def __init__(self, config: Config) -> None:
        """Initialize the protocol.

        Args:
            config: Configuration shared read-only by every request.
        """
        self.transport: asyncio.DatagramTransport | None = None
        self.config = config
        self.tasks: set[asyncio.Task[None]] = set()

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Called by asyncio when the UDP socket is ready.

        Args:
            transport: Created datagram transport.
        """
        self.transport = transport  # type: ignore[assignment]
        sock = self.transport.get_extra_info("socket")
        logger.info("UDP listening on %s", sock.getsockname() if sock else "?")

    def datagram_received(self, data: bytes, addr: Any) -> None:
        """Parse a datagram and schedule its handling.

        Args:
            data: Raw DNS message bytes.
            addr: Client address tuple as provided by asyncio.
        """
        logger.debug("received %d bytes from %s", len(data), addr)
        try:
            request = DNSRecord.parse(data)
        except DNSError:
            logger.debug("failed to parse request from %s", addr)
            return
        if request.header.qr:
            logger.debug("ignoring response datagram from %s", addr)
            return

        task = asyncio.get_running_loop().create_task(self.respond(request, addr))
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    async def respond(self, request: DNSRecord, addr: Any) -> None:
        """Route a request and write one reply per question.

        Args:
            request: Parsed request.
            addr: Client address.
        """
        try:
            replies = await route(request, self.config, addr)
        except Exception:
            logger.exception("unhandled error answering %s", addr)
            replies = [servfail(request)]

        for reply in replies:
            self.send(reply, addr)

    def send(self, reply: DNSRecord, addr: Any) -> None:
        if self.transport is None:
            logger.warning("no transport; dropping reply to %s", addr)
            return
        try:
            self.transport.sendto(reply.pack(), addr)
        except (OSError, RuntimeError) as exc:
            logger.warning("failed to send response to %s: %s", addr, exc)
