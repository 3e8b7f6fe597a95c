"""Build the HTTP request that carries a DNS query (RFC 8484 section 4.1)."""

from __future__ import annotations

import base64
import enum
import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

DNS_MESSAGE = "application/dns-message"
UDPWIREFORMAT = "application/dns-udpwireformat"
DOH_MEDIA_TYPES = (DNS_MESSAGE, UDPWIREFORMAT)


def media_type(content_type: str) -> str:
    """Return the bare, lower-cased media type of a Content-Type value."""
    return str(content_type).split(";", 1)[0].strip().lower()


class DohMethod(enum.Enum):
    """HTTP method used to carry queries; fixed for the life of a resolver."""

    GET = "GET"
    POST = "POST"

    @classmethod
    def parse(cls, value: Union[str, "DohMethod"]) -> "DohMethod":
        """
        Brief: Accept exactly "GET" or "POST".

        Inputs:
        - value: method string or DohMethod

        Outputs:
        - DohMethod

        Raises:
        - ValueError: for any other value, including lower-case spellings
        """
        if isinstance(value, cls):
            return value
        if value == "GET":
            return cls.GET
        if value == "POST":
            return cls.POST
        raise ValueError(f"Only GET and POST Supported, got {value!r}")


@dataclass(frozen=True)
class HttpRequest:
    """What to send: a pure value with no connection state."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


def b64url_no_pad(data: bytes) -> str:
    """
    Brief: Base64url-encode without padding per RFC 8484.

    Inputs:
    - data: raw bytes to encode

    Outputs:
    - str: base64url string without '=' padding

    Example:
        >>> b64url_no_pad(b"\\x01\\x02")
        'AQI'
    """
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _append_dns_param(url: str, encoded: str) -> str:
    parsed = urllib.parse.urlsplit(url)
    pairs = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    pairs = [(k, v) for (k, v) in pairs if k != "dns"]
    pairs.append(("dns", encoded))
    return urllib.parse.urlunsplit(parsed._replace(query=urllib.parse.urlencode(pairs)))


def build_request(
    query: bytes,
    *,
    url: str,
    method: DohMethod,
    content_type: str = DNS_MESSAGE,
) -> HttpRequest:
    """
    Brief: Describe the HTTP request for one wire-format query.

    Inputs:
    - query: DNS query message bytes
    - url: DoH endpoint, e.g. https://dns.example/resolve
    - method: DohMethod.GET or DohMethod.POST
    - content_type: DoH media type used for Accept (and Content-Type on POST)

    Outputs:
    - HttpRequest

    Notes:
    - GET appends ?dns=<base64url, no padding>, keeping existing parameters.
    - POST sends the raw bytes to the URL unchanged.

    Example:
        >>> build_request(b"\\x00\\x00", url="https://dns.example/resolve",
        ...               method=DohMethod.GET).url
        'https://dns.example/resolve?dns=AAA'
    """
    if method is DohMethod.POST:
        return HttpRequest(
            method="POST",
            url=url,
            headers={"Content-Type": content_type, "Accept": content_type},
            body=bytes(query),
        )
    return HttpRequest(
        method="GET",
        url=_append_dns_param(url, b64url_no_pad(query)),
        headers={"Accept": content_type},
    )
