"""
Client Configuration

Validated connection settings consumed by the session engine.
"""

import socket
from dataclasses import dataclass
from enum import Enum

DEFAULT_PORT = 4567
DEFAULT_CONFIRMATION_TIMEOUT_MS = 250
DEFAULT_MAX_RETRIES = 3


class TransportKind(Enum):
    STREAM = "tcp"
    DATAGRAM = "udp"


@dataclass(frozen=True)
class ClientConfig:
    """
    Attributes:
        remote_address: Server IPv4 address
        port: Server port
        transport: Stream (TCP) or datagram (UDP)
        confirmation_timeout_ms: Wait for a CONFIRM per attempt (datagram only)
        max_retries: Retransmissions after the first attempt (datagram only)
    """
    remote_address: str
    port: int = DEFAULT_PORT
    transport: TransportKind = TransportKind.STREAM
    confirmation_timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self):
        try:
            socket.inet_pton(socket.AF_INET, self.remote_address)
        except OSError:
            raise ValueError(f"Not an IPv4 address: {self.remote_address}")
        if not 0 < self.port <= 0xFFFF:
            raise ValueError(f"Invalid port: {self.port}")
        if self.confirmation_timeout_ms <= 0:
            raise ValueError(f"Invalid confirmation timeout: {self.confirmation_timeout_ms}")
        if self.max_retries < 0:
            raise ValueError(f"Invalid retry count: {self.max_retries}")


def resolve_ipv4(host: str) -> str:
    """
    Resolve a hostname or IPv4 literal to an IPv4 address.

    Raises:
        ValueError: If the host has no IPv4 address
    """
    try:
        infos = socket.getaddrinfo(host, None, socket.AF_INET)
    except socket.gaierror as e:
        raise ValueError(f"Failed to resolve hostname '{host}' to an IPv4 address: {e}")
    if not infos:
        raise ValueError(f"Failed to resolve hostname '{host}' to an IPv4 address.")
    return infos[0][4][0]
