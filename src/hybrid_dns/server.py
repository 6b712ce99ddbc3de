"""Server entry point and lifecycle management."""
from __future__ import annotations

import asyncio
import logging
import signal
import socket

from .config import Config
from .protocol import DNSUDPProtocol

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def configure_logging(log_level: str = "INFO") -> None:
    """Install the root log handler.

    Args:
        log_level: Logging verbosity level name.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def serve(config: Config, stop: asyncio.Future[str] | None = None) -> str:
    """Run the asynchronous UDP DNS server.

    Binds a UDP socket on the configured address and runs until a stop
    signal arrives. In-flight requests are not drained.

    Args:
        config: Server configuration.
        stop: Future whose result ends the server; SIGINT/SIGTERM resolve it
            with the signal name. Created here when omitted.

    Returns:
        The reason the server stopped (usually a signal name).

    Raises:
        OSError: If the socket cannot be bound.
    """
    logger = logging.getLogger(__name__)
    loop = asyncio.get_running_loop()
    logger.info("[%s] DNS server starting", config.as_dict())

    transport, protocol = await loop.create_datagram_endpoint(
        lambda: DNSUDPProtocol(config),
        local_addr=(config.listen_address, config.port),
        family=socket.AF_INET,
    )

    if stop is None:
        stop = loop.create_future()

    def _on_signal(sig: signal.Signals) -> None:
        if not stop.done():
            stop.set_result(sig.name)

    for sig in STOP_SIGNALS:
        loop.add_signal_handler(sig, _on_signal, sig)

    try:
        reason = await stop
        logger.info("stopping: %s", reason)
        return reason
    finally:
        for sig in STOP_SIGNALS:
            loop.remove_signal_handler(sig)
        pending = len(protocol.tasks)
        if pending:
            logger.warning("abandoning %d in-flight request(s)", pending)
        transport.close()
