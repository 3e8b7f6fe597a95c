"""
Brief: Tests for DohResolver.lookup state machine and failure mapping using an
in-process fake HTTP client.

Inputs:
  - None

Outputs:
  - None
"""

import ipaddress
import logging

import pytest
from dnslib import QTYPE, RCODE, RR, A, DNSRecord

from dohresolve.request_builder import UDPWIREFORMAT, DohMethod
from dohresolve.resolver import (
    DohResolver,
    FailureKind,
    NotFoundError,
    ResolutionFailure,
    ResolverConfig,
)
from dohresolve.transports.http import (
    HttpResponse,
    HttpStatusError,
    StdlibHttpClient,
    TransportError,
)
from dohresolve.wire_codec import DecodeError, EncodeError

from conftest import build_reply


class _FakeClient:
    """Records requests and answers with a canned status/body."""

    def __init__(self, status=200, body=None, raise_exc=None, reason="OK"):
        self.status = status
        self.body = body
        self.raise_exc = raise_exc
        self.reason = reason
        self.requests = []
        self.responses = []
        self.body_reads = 0
        self.bootstrap = None

    def with_bootstrap(self, bootstrap):
        clone = _FakeClient(self.status, self.body, self.raise_exc, self.reason)
        clone.bootstrap = bootstrap
        return clone

    def execute(self, request):
        self.requests.append(request)
        if self.raise_exc is not None:
            raise self.raise_exc

        def _read():
            self.body_reads += 1
            if isinstance(self.body, Exception):
                raise self.body
            if callable(self.body):
                return self.body(request)
            return self.body

        resp = HttpResponse(self.status, self.reason, {}, reader=_read)
        self.responses.append(resp)
        return resp


def _answer(request):
    if request.body is not None:
        return build_reply(request.body)
    import base64
    from urllib.parse import parse_qs, urlsplit

    s = parse_qs(urlsplit(request.url).query)["dns"][0]
    return build_reply(base64.urlsafe_b64decode(s + "=" * (-len(s) % 4)))


def _resolver(client, **kwargs):
    return DohResolver(ResolverConfig("https://dns.example/dns-query", client=client, **kwargs))


def test_lookup_returns_addresses_in_order():
    client = _FakeClient(body=_answer)
    result = _resolver(client).lookup("example.com")
    assert result == [
        ipaddress.ip_address("192.0.2.10"),
        ipaddress.ip_address("2001:db8::10"),
    ]
    assert all(r.closed for r in client.responses)


def test_lookup_without_ipv6_asks_only_for_a():
    client = _FakeClient(body=_answer)
    result = _resolver(client, include_ipv6=False).lookup("example.com")
    assert result == [ipaddress.IPv4Address("192.0.2.10")]
    sent = client.requests[0]
    assert sent.method == "GET"
    assert "?dns=" in sent.url


def test_lookup_post_sends_body_with_content_type():
    client = _FakeClient(body=_answer)
    resolver = _resolver(client, method="POST", content_type=UDPWIREFORMAT)
    resolver.lookup("v4only.example")
    sent = client.requests[0]
    assert sent.method == "POST"
    assert sent.url == "https://dns.example/dns-query"
    assert sent.headers["Content-Type"] == UDPWIREFORMAT
    assert sent.headers["Accept"] == UDPWIREFORMAT


def test_encode_failure_does_not_touch_network():
    client = _FakeClient(body=_answer)
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("a" * 64 + ".example")
    assert ei.value.kind is FailureKind.ENCODE
    assert isinstance(ei.value.cause, EncodeError)
    assert client.requests == []


def test_transport_failure_is_wrapped():
    client = _FakeClient(raise_exc=TransportError("Network error: refused"))
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("example.com")
    assert ei.value.kind is FailureKind.TRANSPORT
    assert isinstance(ei.value.__cause__, TransportError)
    assert ei.value.hostname == "example.com"


def test_unexpected_client_exception_maps_to_transport():
    client = _FakeClient(raise_exc=RuntimeError("boom"))
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("example.com")
    assert ei.value.kind is FailureKind.TRANSPORT
    assert isinstance(ei.value.cause, TransportError)
    assert "RuntimeError" in str(ei.value.cause)


def test_http_500_is_wrapped_and_body_never_read():
    client = _FakeClient(status=500, reason="Internal Server Error", body=b"ignored")
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("example.com")
    assert ei.value.kind is FailureKind.HTTP_STATUS
    assert isinstance(ei.value.cause, HttpStatusError)
    assert ei.value.cause.status == 500
    assert ei.value.cause.reason == "Internal Server Error"
    assert client.body_reads == 0
    assert client.responses[0].closed


def test_body_read_failure_is_transport_and_closes():
    client = _FakeClient(body=TransportError("Network error: reset"))
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("example.com")
    assert ei.value.kind is FailureKind.TRANSPORT
    assert client.responses[0].closed


def test_malformed_body_is_decode_failure():
    client = _FakeClient(body=b"\x00\x01\x02")
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("example.com")
    assert ei.value.kind is FailureKind.DECODE
    assert isinstance(ei.value.cause, DecodeError)
    assert client.responses[0].closed


def test_empty_answer_is_not_found_not_decode():
    client = _FakeClient(body=_answer)
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client).lookup("missing.example")
    assert ei.value.kind is FailureKind.NOT_FOUND
    assert isinstance(ei.value.cause, NotFoundError)
    assert ei.value.cause.rcode == 0


def test_nxdomain_is_not_found_with_rcode():
    def _nx(request):
        reply = DNSRecord.parse(request.body).reply()
        reply.header.rcode = RCODE.NXDOMAIN
        return reply.pack()

    client = _FakeClient(body=_nx)
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client, method="POST").lookup("missing.example")
    assert ei.value.kind is FailureKind.NOT_FOUND
    assert ei.value.cause.rcode == 3
    assert "NXDOMAIN" in str(ei.value)


def test_response_with_wrong_id_is_decode_failure():
    def _wrong_id(request):
        reply = DNSRecord.parse(request.body).reply()
        reply.header.id = 4242
        reply.add_answer(RR("example.com", QTYPE.A, rdata=A("192.0.2.1")))
        return reply.pack()

    client = _FakeClient(body=_wrong_id)
    with pytest.raises(ResolutionFailure) as ei:
        _resolver(client, method="POST").lookup("example.com")
    assert ei.value.kind is FailureKind.DECODE


def test_failures_are_logged_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger="dohresolve.resolver")
    client = _FakeClient(status=503, reason="Unavailable")
    with pytest.raises(ResolutionFailure):
        _resolver(client).lookup("example.com")
    assert any("http_status" in rec.getMessage() for rec in caplog.records)


def test_config_rejects_unknown_method():
    with pytest.raises(ValueError):
        ResolverConfig("https://dns.example/dns-query", method="PUT")


def test_config_rejects_unknown_content_type():
    with pytest.raises(ValueError):
        ResolverConfig("https://dns.example/dns-query", content_type="text/plain")


def test_config_accepts_parameterized_content_type():
    client = _FakeClient(body=_answer)
    ctype = "Application/DNS-Message; charset=binary"
    resolver = _resolver(client, method="POST", include_ipv6=False, content_type=ctype)
    assert resolver.lookup("example.com") == [ipaddress.IPv4Address("192.0.2.10")]
    assert client.requests[-1].headers["Content-Type"] == ctype


def test_config_rejects_empty_url():
    with pytest.raises(ValueError):
        ResolverConfig("")


def test_config_defaults():
    cfg = ResolverConfig("https://dns.example/dns-query")
    assert cfg.method is DohMethod.GET
    assert cfg.include_ipv6 is True
    assert isinstance(cfg.client, StdlibHttpClient)


def test_config_binds_bootstrap_to_client_copy():
    base = _FakeClient()

    def boot(host):
        return ["192.0.2.53"]

    cfg = ResolverConfig("https://dns.example/dns-query", client=base, bootstrap=boot)
    assert cfg.client is not base
    assert cfg.client.bootstrap is boot
    assert base.bootstrap is None


def test_resolver_exposes_url_and_is_callable():
    client = _FakeClient(body=_answer)
    resolver = _resolver(client, include_ipv6=False)
    assert resolver.url == "https://dns.example/dns-query"
    assert resolver("v4only.example") == [ipaddress.IPv4Address("192.0.2.20")]
