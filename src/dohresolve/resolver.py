"""DNS-over-HTTPS hostname resolver.

Brief:
  DohResolver.lookup encodes a query, sends it through an HTTP client and
  decodes the answer. Every failure on the way is raised as a single
  ResolutionFailure whose ``kind`` and ``cause`` say what went wrong.

Inputs:
  - ResolverConfig fixed at construction.

Outputs:
  - Lists of ipaddress.IPv4Address / IPv6Address in answer order.
"""

from __future__ import annotations

import enum
import ipaddress
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .request_builder import (
    DNS_MESSAGE,
    DOH_MEDIA_TYPES,
    DohMethod,
    build_request,
    media_type,
)
from .transports.http import (
    Bootstrap,
    HttpClient,
    HttpStatusError,
    StdlibHttpClient,
    TransportError,
)
from .wire_codec import (
    DecodeError,
    EncodeError,
    encode_query,
    parse_response,
    rcode_name,
)

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

QUERY_ID = 0


class FailureKind(enum.Enum):
    ENCODE = "encode"
    TRANSPORT = "transport"
    HTTP_STATUS = "http_status"
    DECODE = "decode"
    NOT_FOUND = "not_found"


class NotFoundError(Exception):
    """
    Brief: Well-formed response that carries no addresses for the hostname.

    Inputs:
    - hostname: name that was looked up
    - rcode: response code of the answer (0 for an empty NOERROR answer)

    Outputs:
    - Exception instance with .hostname and .rcode
    """

    def __init__(self, hostname: str, rcode: int = 0) -> None:
        self.hostname = hostname
        self.rcode = int(rcode)
        if self.rcode:
            msg = f"{hostname}: {rcode_name(self.rcode)}"
        else:
            msg = f"{hostname}: no address records"
        super().__init__(msg)


class ResolutionFailure(Exception):
    """
    Brief: The one error type raised by DohResolver.lookup.

    Inputs:
    - hostname: name that failed to resolve
    - kind: FailureKind describing which stage failed
    - cause: underlying exception (also chained as __cause__)

    Outputs:
    - Exception instance; str() is "<hostname>: <cause>"
    """

    def __init__(self, hostname: str, kind: FailureKind, cause: BaseException) -> None:
        super().__init__(f"{hostname}: {cause}")
        self.hostname = hostname
        self.kind = kind
        self.cause = cause


@dataclass(frozen=True)
class ResolverConfig:
    """
    Brief: Immutable resolver settings, validated once.

    Inputs:
    - url: DoH endpoint URL
    - include_ipv6: also ask for AAAA records
    - method: exactly "GET" or "POST" (or a DohMethod)
    - content_type: application/dns-message or application/dns-udpwireformat
    - client: HTTP client; StdlibHttpClient() when omitted
    - bootstrap: optional resolver for the endpoint's own hostname

    Outputs:
    - ResolverConfig with ``method`` as a DohMethod and ``client`` already
      bound to ``bootstrap`` when one was given.

    Raises:
    - ValueError: for an unsupported method or content type, or an empty url
    """

    url: str
    include_ipv6: bool = True
    method: Union[str, DohMethod] = DohMethod.GET
    content_type: str = DNS_MESSAGE
    client: Optional[HttpClient] = field(default=None, compare=False)
    bootstrap: Optional[Bootstrap] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("DoH url must be non-empty")
        object.__setattr__(self, "method", DohMethod.parse(self.method))
        if media_type(self.content_type) not in DOH_MEDIA_TYPES:
            raise ValueError(
                f"Unsupported content type {self.content_type!r}; "
                f"expected one of {', '.join(DOH_MEDIA_TYPES)}"
            )
        client = self.client if self.client is not None else StdlibHttpClient()
        if self.bootstrap is not None:
            client = client.with_bootstrap(self.bootstrap)
        object.__setattr__(self, "client", client)


class DohResolver:
    """
    Brief: Resolve hostnames through one DoH endpoint, without retries.

    Inputs:
    - config: ResolverConfig

    Outputs:
    - lookup(hostname) -> list of addresses, or raises ResolutionFailure

    Example:
        >>> resolver = DohResolver(ResolverConfig("https://dns.example/dns-query"))
        >>> try:
        ...     resolver.lookup("example.com")
        ... except ResolutionFailure as exc:
        ...     exc.kind
        <FailureKind.TRANSPORT: 'transport'>
    """

    def __init__(self, config: ResolverConfig) -> None:
        self.config = config

    @property
    def url(self) -> str:
        return self.config.url

    def __call__(self, hostname: str) -> List[IPAddress]:
        return self.lookup(hostname)

    def lookup(self, hostname: str) -> List[IPAddress]:
        try:
            addresses = self._lookup(hostname)
        except ResolutionFailure as exc:
            logger.debug(
                "DoH lookup %s failed (%s): %s", hostname, exc.kind.value, exc.cause
            )
            raise
        logger.debug("DoH lookup %s -> %s", hostname, ", ".join(map(str, addresses)))
        return addresses

    def _lookup(self, hostname: str) -> List[IPAddress]:
        cfg = self.config
        try:
            query = encode_query(hostname, cfg.include_ipv6, query_id=QUERY_ID)
        except EncodeError as e:
            raise ResolutionFailure(hostname, FailureKind.ENCODE, e) from e

        request = build_request(
            query, url=cfg.url, method=cfg.method, content_type=cfg.content_type
        )

        try:
            response = cfg.client.execute(request)
        except TransportError as e:
            raise ResolutionFailure(hostname, FailureKind.TRANSPORT, e) from e
        except Exception as e:
            # Third-party clients may leak their own exception types.
            err = TransportError(f"{type(e).__name__}: {e}")
            raise ResolutionFailure(hostname, FailureKind.TRANSPORT, err) from e

        try:
            if not response.is_successful:
                err = HttpStatusError(response.status, response.reason)
                raise ResolutionFailure(hostname, FailureKind.HTTP_STATUS, err) from err

            if response.http_version != "HTTP/2":
                logger.debug(
                    "DoH response for %s over %s", hostname, response.http_version
                )

            try:
                body = response.read()
            except TransportError as e:
                raise ResolutionFailure(hostname, FailureKind.TRANSPORT, e) from e

            try:
                decoded = parse_response(hostname, body, expected_id=QUERY_ID)
            except DecodeError as e:
                raise ResolutionFailure(hostname, FailureKind.DECODE, e) from e
        finally:
            response.close()

        if not decoded.addresses:
            missing = NotFoundError(hostname, decoded.rcode)
            raise ResolutionFailure(
                hostname, FailureKind.NOT_FOUND, missing
            ) from missing
        return [ipaddress.ip_address(raw) for raw in decoded.addresses]
