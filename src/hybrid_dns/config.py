"""Configuration loading and validation."""
from __future__ import annotations

import ipaddress
import logging
import socket
from dataclasses import asdict, dataclass
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

LOOKUP = "lookup"
DEFAULT_PORT = 53

DEFAULTS: dict[str, Any] = {
    "dns_ip": LOOKUP,
    "nameservers": "8.8.4.4,8.8.8.8",
    "network": "192.168.0",
    "ttl": 60,
    "local_domain": "localdns.co.za",
    "port": DEFAULT_PORT,
    "timeout": 2.0,
    "admin": "hostmaster",
    "ptr_host": "swan",
    "first_question_only": False,
    "redis_host": "127.0.0.1",
    "redis_port": "6379",
}


@dataclass(frozen=True, slots=True)
class Config:
    """Immutable server configuration, built once at startup.

    Attributes:
        listen_address: IPv4 address the server binds to and hands out in A records.
        local_domain: Authoritative zone suffix, fully qualified (trailing dot).
        local_network: Dotted prefix of the authoritative reverse block.
        ttl: TTL in seconds for synthesized records.
        resolvers: Ordered upstream resolvers, ``host`` or ``host:port``.
        port: UDP listen port.
        timeout: Per-resolver exchange timeout, in seconds.
        admin: Local part of the SOA responsible mailbox.
        ptr_host: Local part of the canonical PTR target.
        first_question_only: Answer only the first question of a request.
        redis_host: Key-value store host, accepted for flag compatibility.
        redis_port: Key-value store port, accepted for flag compatibility.
    """

    listen_address: str
    local_domain: str
    local_network: str
    resolvers: tuple[str, ...]
    ttl: int = 60
    port: int = DEFAULT_PORT
    timeout: float = 2.0
    admin: str = "hostmaster"
    ptr_host: str = "swan"
    first_question_only: bool = False
    redis_host: str = "127.0.0.1"
    redis_port: str = "6379"

    def __post_init__(self) -> None:
        try:
            ipaddress.IPv4Address(self.listen_address)
        except ipaddress.AddressValueError as exc:
            raise ValueError(f"invalid listen address {self.listen_address!r}") from exc
        if not self.local_domain.strip("."):
            raise ValueError("local_domain must not be empty")
        if not self.local_domain.endswith("."):
            # stored fully qualified
            object.__setattr__(self, "local_domain", self.local_domain + ".")
        for name in ("admin", "ptr_host"):
            label = getattr(self, name)
            if not label or "." in label:
                raise ValueError(f"{name} must be a single non-empty label (got {label!r})")
        if not self.resolvers:
            raise ValueError("at least one upstream resolver is required")
        for entry in self.resolvers:
            split_resolver(entry)
        if self.ttl <= 0:
            raise ValueError(f"ttl must be positive (got {self.ttl})")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive (got {self.timeout})")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def split_resolver(entry: str) -> tuple[str, int]:
    """Split a resolver entry into host and port.

    Args:
        entry: ``host`` or ``host:port``.

    Returns:
        Tuple of (host, port); the port defaults to 53.

    Raises:
        ValueError: If the host is empty or the port is not a valid number.
    """
    host, sep, port = entry.strip().rpartition(":")
    if not sep:
        host, port = port, str(DEFAULT_PORT)
    if not host:
        raise ValueError(f"invalid resolver {entry!r}")
    try:
        number = int(port)
    except ValueError as exc:
        raise ValueError(f"invalid resolver port in {entry!r}") from exc
    if not 0 < number < 65536:
        raise ValueError(f"resolver port out of range in {entry!r}")
    return host, number


def parse_resolvers(value: str | list[str] | tuple[str, ...]) -> tuple[str, ...]:
    """Normalize a comma-separated string or a list into an ordered tuple.

    Empty items are dropped; order is kept as given.
    """
    items = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    return tuple(item.strip() for item in items if item.strip())


def resolve_host_ip() -> str:
    """Find the first non-loopback IPv4 address of this host.

    A connected UDP socket reveals the address of the outbound interface
    without sending any packet; the hostname lookup is the fallback.

    Returns:
        Dotted IPv4 address, or an empty string when none is found.
    """
    candidates: list[str] = []
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("192.0.2.1", 53))
            candidates.append(s.getsockname()[0])
    except OSError as exc:
        logger.debug("interface probe failed: %s", exc)
    try:
        candidates.append(socket.gethostbyname(socket.gethostname()))
    except OSError as exc:
        logger.debug("hostname lookup failed: %s", exc)

    for candidate in candidates:
        try:
            addr = ipaddress.IPv4Address(candidate)
        except ipaddress.AddressValueError:
            continue
        if not addr.is_loopback and not addr.is_unspecified:
            return str(addr)
    return ""


def _read_yaml(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"YAML parsing error: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path}: mapping required, got {type(data).__name__}")
    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ValueError(f"unknown configuration keys: {', '.join(map(str, unknown))}")
    return data


def build_config(data: Mapping[str, Any]) -> Config:
    """Build a `Config` from raw option values.

    Args:
        data: Mapping using the YAML/flag key names (see `DEFAULTS`).

    Returns:
        Validated configuration.

    Raises:
        ValueError: On malformed or out-of-range values.
    """
    merged = {**DEFAULTS, **data}
    listen = str(merged["dns_ip"]).strip()
    if listen == LOOKUP:
        listen = resolve_host_ip()
        logger.debug("listen address resolved to %r", listen)
    try:
        ttl = int(merged["ttl"])
        port = int(merged["port"])
        timeout = float(merged["timeout"])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid numeric option: {exc}") from exc

    return Config(
        listen_address=listen,
        local_domain=str(merged["local_domain"]).strip(),
        local_network=str(merged["network"]).strip(),
        resolvers=parse_resolvers(merged["nameservers"]),
        ttl=ttl,
        port=port,
        timeout=timeout,
        admin=str(merged["admin"]).strip(),
        ptr_host=str(merged["ptr_host"]).strip(),
        first_question_only=bool(merged["first_question_only"]),
        redis_host=str(merged["redis_host"]),
        redis_port=str(merged["redis_port"]),
    )


def load_config(path: str | None = None, overrides: Mapping[str, Any] | None = None) -> Config:
    """Load configuration from an optional YAML file plus overrides.

    Precedence is overrides, then the file, then `DEFAULTS`. Override values
    of ``None`` are ignored so unset command-line flags do not mask the file.

    Args:
        path: Path to a YAML file, or None.
        overrides: Option values taking precedence over the file.

    Returns:
        Validated configuration.

    Raises:
        ValueError: On invalid YAML structure or option values.
        FileNotFoundError: If `path` does not exist.
    """
    data: dict[str, Any] = {}
    if path:
        data.update(_read_yaml(path))
    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return build_config(data)
