"""Decide which questions this server answers itself."""
from __future__ import annotations

import enum

from dnslib import QTYPE

from .config import Config

REVERSE_SUFFIX = ".in-addr.arpa."


class Classification(enum.Enum):
    """Where a question is answered."""

    AUTHORITATIVE = "authoritative"
    AUTHORITATIVE_REVERSE = "authoritative-reverse"
    FORWARD = "forward"

    @property
    def is_local(self) -> bool:
        return self is not Classification.FORWARD


def reverse_pointer_address(qname: str) -> str:
    """Recover the dotted address embedded in a reverse-lookup name.

    ``5.0.0.10.in-addr.arpa.`` becomes ``10.0.0.5``. Names without the
    reverse suffix are returned reversed as-is; no validation is done.
    """
    name = qname[: -len(REVERSE_SUFFIX)] if qname.lower().endswith(REVERSE_SUFFIX) else qname
    return ".".join(reversed(name.split(".")))


def classify(qname: str, qtype: int, config: Config) -> Classification:
    """Classify a question against the local zone and reverse block.

    Args:
        qname: Fully qualified question name (with trailing dot).
        qtype: Numeric DNS type (`dnslib.QTYPE`).
        config: Server configuration.

    Returns:
        The `Classification` for the question. Never raises.
    """
    name = qname.lower()
    if qtype == QTYPE.PTR:
        if name.endswith(REVERSE_SUFFIX) and reverse_pointer_address(name).startswith(
            config.local_network
        ):
            return Classification.AUTHORITATIVE_REVERSE
        return Classification.FORWARD
    if name.endswith(config.local_domain.lower()):
        return Classification.AUTHORITATIVE
    return Classification.FORWARD
