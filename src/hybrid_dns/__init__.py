"""Hybrid DNS server: authoritative for a local zone, forwarding everything else."""

__version__ = "0.1.0"
