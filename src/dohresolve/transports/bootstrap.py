"""Bootstrap resolvers used only to find the DoH endpoint's own addresses."""

from __future__ import annotations

import ipaddress
import socket
from typing import Iterable, List, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class BootstrapError(Exception):
    """
    Brief: Bootstrap resolver cannot answer for the requested hostname.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


class SystemBootstrap:
    """Resolve through the operating system (socket.getaddrinfo)."""

    def __init__(self, port: int = 443) -> None:
        self.port = int(port)

    def __call__(self, hostname: str) -> List[IPAddress]:
        try:
            infos = socket.getaddrinfo(
                hostname, self.port, proto=socket.IPPROTO_TCP
            )
        except socket.gaierror as e:
            raise BootstrapError(f"{hostname}: {e}") from e
        seen: List[IPAddress] = []
        for _family, _type, _proto, _canon, sockaddr in infos:
            addr = ipaddress.ip_address(sockaddr[0].split("%", 1)[0])
            if addr not in seen:
                seen.append(addr)
        return seen


class StaticBootstrap:
    """
    Brief: Fixed address list for exactly one DoH hostname.

    Inputs:
    - hostname: DoH endpoint host this bootstrap answers for
    - addresses: IPv4/IPv6 literals (strings or ipaddress objects)

    Outputs:
    - Callable hostname -> list of addresses; other hostnames raise
      BootstrapError.

    Raises:
    - ValueError: at construction for empty or unparsable address lists.

    Example:
        >>> b = StaticBootstrap("cloudflare-dns.com", ["1.1.1.1", "1.0.0.1"])
        >>> [str(a) for a in b("cloudflare-dns.com")]
        ['1.1.1.1', '1.0.0.1']
    """

    def __init__(self, hostname: str, addresses: Iterable[Union[str, IPAddress]]):
        if not hostname:
            raise ValueError("bootstrap hostname must be non-empty")
        self.hostname = hostname.rstrip(".").lower()
        self.addresses = [ipaddress.ip_address(str(a)) for a in addresses]
        if not self.addresses:
            raise ValueError(f"bootstrap for {hostname} needs at least one address")

    def __call__(self, hostname: str) -> List[IPAddress]:
        if hostname.rstrip(".").lower() != self.hostname:
            raise BootstrapError(
                f"Rejected request for {hostname}, only {self.hostname} is supported"
            )
        return list(self.addresses)
