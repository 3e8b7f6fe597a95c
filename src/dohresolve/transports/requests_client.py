"""Pooled HTTP execution backed by requests.Session."""

from __future__ import annotations

from typing import Optional

import requests

from ..request_builder import HttpRequest
from .http import Bootstrap, HttpClientBase, HttpResponse, TransportError


class RequestsHttpClient(HttpClientBase):
    """
    Brief: Keep-alive DoH client sharing one requests.Session.

    Inputs (constructor):
        session: Optional pre-configured requests.Session (proxies, adapters).
        timeout_ms: Per-request timeout in milliseconds (default 1500).
        verify: Verify TLS certificates.
        ca_file: Optional CA bundle path; used as requests' ``verify`` value.
        user_agent: Default User-Agent when the request does not set one.

    Outputs:
        execute(request) -> HttpResponse whose close() releases the pooled
        connection back to the session.

    Notes:
        requests has no per-session resolver hook, so with_bootstrap raises
        ValueError; use StdlibHttpClient when a bootstrap resolver is needed.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        *,
        timeout_ms: int = 1500,
        verify: bool = True,
        ca_file: Optional[str] = None,
        user_agent: Optional[str] = None,
        bootstrap: Optional[Bootstrap] = None,
    ) -> None:
        if bootstrap is not None:
            raise ValueError(
                "RequestsHttpClient does not support bootstrap resolvers; "
                "use StdlibHttpClient instead"
            )
        super().__init__(
            timeout_ms=timeout_ms, verify=verify, ca_file=ca_file, user_agent=user_agent
        )
        self._session = session or requests.Session()

    def with_bootstrap(self, bootstrap: Bootstrap):
        raise ValueError(
            "RequestsHttpClient does not support bootstrap resolvers; "
            "use StdlibHttpClient instead"
        )

    def close(self) -> None:
        self._session.close()

    def execute(self, request: HttpRequest) -> HttpResponse:
        verify = self.ca_file if (self.verify and self.ca_file) else self.verify
        try:
            resp = self._session.request(
                request.method,
                request.url,
                data=request.body,
                headers=self._headers(request),
                timeout=self.timeout_ms / 1000.0,
                verify=verify,
                stream=True,
            )
        except requests.exceptions.SSLError as e:
            raise TransportError(f"TLS error: {e}") from e
        except requests.RequestException as e:
            raise TransportError(f"Network error: {e}") from e

        def _read() -> bytes:
            try:
                return resp.content
            except requests.RequestException as e:
                raise TransportError(f"Network error: {e}") from e

        raw_version = getattr(resp.raw, "version", 11)
        return HttpResponse(
            resp.status_code,
            resp.reason or "",
            dict(resp.headers),
            reader=_read,
            closer=resp.close,
            http_version="HTTP/1.0" if raw_version == 10 else "HTTP/1.1",
        )
