"""CLI for the hybrid DNS server."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import load_config
from .server import configure_logging, serve

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Options left unset are None so values from ``--config`` survive.

    Returns:
        argparse.Namespace: Parsed CLI options.
    """
    parser = argparse.ArgumentParser(
        description="Hybrid DNS server: authoritative for a local zone, forwarding otherwise"
    )
    parser.add_argument("--config", help="Path to YAML config")
    parser.add_argument(
        "--dns-ip", dest="dns_ip", help="IP address to listen on, or 'lookup' (default: lookup)"
    )
    parser.add_argument(
        "--nameservers", help="Comma-separated upstream resolvers (default: 8.8.4.4,8.8.8.8)"
    )
    parser.add_argument(
        "--network",
        help="Authoritative reverse network, matched as a plain string prefix of the"
        " address, so 10.0.1 also covers 10.0.100.x (default: 192.168.0)",
    )
    parser.add_argument(
        "--ttl", type=int, help="TTL in seconds for authoritative records (default: 60)"
    )
    parser.add_argument(
        "--local-domain", dest="local_domain", help="Authoritative domain (default: localdns.co.za)"
    )
    parser.add_argument("--port", type=int, help="UDP port (default: 53)")
    parser.add_argument(
        "--timeout", type=float, help="Per-resolver timeout in seconds (default: 2.0)"
    )
    parser.add_argument(
        "--first-question-only",
        dest="first_question_only",
        action="store_true",
        default=None,
        help="Answer only the first question of multi-question requests",
    )
    parser.add_argument("--redis-host", dest="redis_host", help="Key-value store host (unused)")
    parser.add_argument("--redis-port", dest="redis_port", help="Key-value store port (unused)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Run the CLI entry point.

    Exits with status 2 on invalid configuration and 1 when the socket
    cannot be bound or a stop signal is received.
    """
    args = parse_args(argv)
    configure_logging(args.log_level)

    overrides = {k: v for k, v in vars(args).items() if k not in ("config", "log_level")}
    try:
        config = load_config(args.config, overrides)
    except (ValueError, OSError) as exc:
        logger.error("invalid configuration: %s", exc)
        sys.exit(2)

    try:
        reason = asyncio.run(serve(config))
    except OSError as exc:
        logger.error("failed to set up server: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        reason = "SIGINT"
    logger.error("fatal: signal %s received", reason)
    sys.exit(1)
