"""HTTP execution for DoH requests using the standard library http.client."""

from __future__ import annotations

import http.client
import importlib.metadata
import logging
import socket
import ssl
import urllib.parse
from typing import Callable, Dict, Optional, Protocol, Sequence

from ..request_builder import HttpRequest

logger = logging.getLogger(__name__)

try:
    DOHRESOLVE_VERSION = importlib.metadata.version("dohresolve")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - not installed
    DOHRESOLVE_VERSION = "unknown"

Bootstrap = Callable[[str], Sequence[object]]


class TransportError(Exception):
    """
    Brief: Connection, TLS, timeout or cancellation failure while talking HTTP.

    Inputs:
    - message: Description of the error

    Outputs:
    - Exception instance
    """

    pass


class HttpStatusError(Exception):
    """
    Brief: The DoH endpoint answered with a non-2xx HTTP status.

    Inputs:
    - status: HTTP status code
    - reason: HTTP reason phrase

    Outputs:
    - Exception instance with .status and .reason
    """

    def __init__(self, status: int, reason: str = "") -> None:
        super().__init__(f"response: {status} {reason}".rstrip())
        self.status = int(status)
        self.reason = reason


class HttpResponse:
    """
    Brief: Received status line and headers with a lazily read body.

    Inputs:
    - status, reason, headers, http_version: response metadata
    - reader: callable returning the full body bytes
    - closer: callable releasing the underlying connection

    Outputs:
    - Object usable as a context manager; close() is idempotent.
    """

    def __init__(
        self,
        status: int,
        reason: str,
        headers: Dict[str, str],
        *,
        reader: Callable[[], bytes],
        closer: Optional[Callable[[], None]] = None,
        http_version: str = "HTTP/1.1",
    ) -> None:
        self.status = int(status)
        self.reason = reason
        self.headers = {k.lower(): v for k, v in headers.items()}
        self.http_version = http_version
        self._reader = reader
        self._closer = closer
        self.closed = False

    @property
    def is_successful(self) -> bool:
        return 200 <= self.status < 300

    def read(self) -> bytes:
        if self.closed:
            raise TransportError("response already closed")
        return self._reader()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._closer is not None:
            self._closer()

    def __enter__(self) -> "HttpResponse":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class HttpClient(Protocol):
    """Anything able to execute an HttpRequest and hand back an HttpResponse."""

    def execute(self, request: HttpRequest) -> HttpResponse: ...

    def with_bootstrap(self, bootstrap: Bootstrap) -> "HttpClient": ...


def _build_ssl_ctx(
    verify: bool = True, ca_file: Optional[str] = None
) -> ssl.SSLContext:
    """
    Brief: Build SSLContext for HTTPS connections.

    Inputs:
    - verify: whether to verify TLS certs
    - ca_file: optional CA bundle path

    Outputs:
    - ssl.SSLContext
    """
    if not verify:
        return ssl._create_unverified_context()
    return (
        ssl.create_default_context(cafile=ca_file)
        if ca_file
        else ssl.create_default_context()
    )


def _connect_bootstrapped(
    host: str, port: int, timeout, source_address, bootstrap: Bootstrap
) -> socket.socket:
    """Open a TCP socket to the first reachable address the bootstrap returns."""
    try:
        addresses = list(bootstrap(host))
    except Exception as e:
        raise TransportError(f"bootstrap lookup for {host} failed: {e}") from e
    if not addresses:
        raise TransportError(f"bootstrap returned no addresses for {host}")

    last_error: Optional[OSError] = None
    for addr in addresses:
        try:
            return socket.create_connection(
                (str(addr), port), timeout=timeout, source_address=source_address
            )
        except OSError as e:
            logger.debug("bootstrap address %s for %s unreachable: %s", addr, host, e)
            last_error = e
    raise TransportError(
        f"Network error: no bootstrap address for {host} reachable: {last_error}"
    ) from last_error


class _BootstrapHTTPConnection(http.client.HTTPConnection):
    def __init__(self, *args, bootstrap: Bootstrap, **kwargs):
        super().__init__(*args, **kwargs)
        self._bootstrap = bootstrap

    def connect(self):
        self.sock = _connect_bootstrapped(
            self.host, self.port, self.timeout, self.source_address, self._bootstrap
        )
        self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


class _BootstrapHTTPSConnection(http.client.HTTPSConnection):
    """HTTPS connection that dials bootstrap addresses but verifies self.host."""

    def __init__(self, *args, bootstrap: Bootstrap, **kwargs):
        super().__init__(*args, **kwargs)
        self._bootstrap = bootstrap

    def connect(self):
        sock = _connect_bootstrapped(
            self.host, self.port, self.timeout, self.source_address, self._bootstrap
        )
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self.sock = self._context.wrap_socket(sock, server_hostname=self.host)


class HttpClientBase:
    """Shared request plumbing: default headers and bootstrap copies."""

    def __init__(
        self,
        *,
        timeout_ms: int = 1500,
        verify: bool = True,
        ca_file: Optional[str] = None,
        user_agent: Optional[str] = None,
        bootstrap: Optional[Bootstrap] = None,
    ) -> None:
        self.timeout_ms = int(timeout_ms)
        self.verify = bool(verify)
        self.ca_file = ca_file
        self.user_agent = user_agent or f"dohresolve v{DOHRESOLVE_VERSION}"
        self.bootstrap = bootstrap

    def _headers(self, request: HttpRequest) -> Dict[str, str]:
        hdrs = dict(request.headers)
        # Preserve any explicit header regardless of casing.
        if not any(k.lower() == "user-agent" for k in hdrs):
            hdrs["User-Agent"] = self.user_agent
        return hdrs

    def with_bootstrap(self, bootstrap: Bootstrap):
        """Return a copy of this client that resolves endpoints via bootstrap."""
        return type(self)(
            timeout_ms=self.timeout_ms,
            verify=self.verify,
            ca_file=self.ca_file,
            user_agent=self.user_agent,
            bootstrap=bootstrap,
        )


class StdlibHttpClient(HttpClientBase):
    """
    Brief: One http.client connection per request, closed with the response.

    Inputs:
    - timeout_ms: connect and read timeout per request
    - verify / ca_file: TLS verification settings
    - user_agent: default User-Agent when the request does not set one
    - bootstrap: optional hostname -> addresses callable for the endpoint

    Outputs:
    - execute(request) -> HttpResponse

    Example:
        >>> client = StdlibHttpClient(timeout_ms=500)
        >>> try:
        ...     client.execute(HttpRequest("GET", "https://example.invalid/dns-query"))
        ... except TransportError:
        ...     pass
    """

    def _open(self, parsed: urllib.parse.SplitResult) -> http.client.HTTPConnection:
        timeout = self.timeout_ms / 1000.0
        extra = {"bootstrap": self.bootstrap} if self.bootstrap is not None else {}
        if parsed.scheme == "https":
            cls = _BootstrapHTTPSConnection if extra else http.client.HTTPSConnection
            return cls(
                parsed.hostname,
                parsed.port or 443,
                timeout=timeout,
                context=_build_ssl_ctx(verify=self.verify, ca_file=self.ca_file),
                **extra,
            )
        cls = _BootstrapHTTPConnection if extra else http.client.HTTPConnection
        return cls(parsed.hostname, parsed.port or 80, timeout=timeout, **extra)

    def execute(self, request: HttpRequest) -> HttpResponse:
        parsed = urllib.parse.urlsplit(request.url)
        if parsed.scheme not in ("https", "http"):
            raise TransportError(f"Unsupported URL scheme: {parsed.scheme}")
        if not parsed.hostname:
            raise TransportError(f"URL has no host: {request.url}")

        target = (parsed.path or "/") + ("?" + parsed.query if parsed.query else "")
        conn = self._open(parsed)
        try:
            conn.request(
                request.method,
                target,
                body=request.body,
                headers=self._headers(request),
            )
            resp = conn.getresponse()
        except TransportError:
            conn.close()
            raise
        except ssl.SSLError as e:
            conn.close()
            raise TransportError(f"TLS error: {e}") from e
        except (OSError, http.client.HTTPException) as e:
            conn.close()
            raise TransportError(f"Network error: {e}") from e

        def _read() -> bytes:
            try:
                return resp.read()
            except ssl.SSLError as e:
                raise TransportError(f"TLS error: {e}") from e
            except (OSError, http.client.HTTPException) as e:
                raise TransportError(f"Network error: {e}") from e

        def _close() -> None:
            try:
                resp.close()
            finally:
                conn.close()

        return HttpResponse(
            resp.status,
            resp.reason,
            dict(resp.getheaders()),
            reader=_read,
            closer=_close,
            http_version="HTTP/1.0" if resp.version == 10 else "HTTP/1.1",
        )
