"""
Brief: Shared pytest configuration: src on sys.path, per-test timeout and a
local DoH stub server.

Inputs:
  - None

Outputs:
  - Fixtures: doh_stub_server, enforce_test_timeout
"""

import base64
import os
import signal
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

import pytest
from dnslib import AAAA, QTYPE, RR, A, DNSRecord

# Ensure 'src' is on sys.path so 'dohresolve' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

KNOWN_HOSTS = {
    "example.com": ("192.0.2.10", "2001:db8::10"),
    "v4only.example": ("192.0.2.20", None),
}


def _alarm_handler(signum, frame):
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


def build_reply(query: bytes) -> bytes:
    """Answer A/AAAA questions for KNOWN_HOSTS; unknown names get no answers."""
    q = DNSRecord.parse(query)
    r = q.reply()
    for question in q.questions:
        name = str(question.qname).rstrip(".").lower()
        v4, v6 = KNOWN_HOSTS.get(name, (None, None))
        if question.qtype == QTYPE.A and v4:
            r.add_answer(RR(question.qname, QTYPE.A, rdata=A(v4), ttl=60))
        if question.qtype == QTYPE.AAAA and v6:
            r.add_answer(RR(question.qname, QTYPE.AAAA, rdata=AAAA(v6), ttl=60))
    return r.pack()


class _DohStubHandler(BaseHTTPRequestHandler):
    def _send(self, status, body=b""):
        self.send_response(status)
        self.send_header("Content-Type", "application/dns-message")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _record(self, body):
        self.server.seen.append(
            {
                "method": self.command,
                "path": self.path,
                "headers": {k.lower(): v for k, v in self.headers.items()},
                "body": body,
            }
        )

    def do_POST(self):  # noqa: N802
        ln = int(self.headers.get("Content-Length", "0"))
        body = self.rfile.read(ln)
        self._record(body)
        if urlparse(self.path).path == "/fail":
            self._send(500)
            return
        self._send(200, build_reply(body))

    def do_GET(self):  # noqa: N802
        self._record(None)
        parsed = urlparse(self.path)
        if parsed.path == "/fail":
            self._send(500)
            return
        if parsed.path == "/garbage":
            self._send(200, b"\x00\x01\x02")
            return
        qs = parse_qs(parsed.query)
        if "dns" not in qs:
            self._send(400)
            return
        s = qs["dns"][0]
        pad = "=" * ((4 - len(s) % 4) % 4)
        self._send(200, build_reply(base64.urlsafe_b64decode(s + pad)))

    def log_message(self, fmt, *args):  # quiet
        return


@pytest.fixture(scope="module")
def doh_stub_server():
    """
    Brief: Plain-HTTP DoH endpoint answering from KNOWN_HOSTS.

    Inputs:
      - None

    Outputs:
      - HTTPServer with .base ("http://127.0.0.1:<port>"), .port and .seen
        (list of received requests)
    """
    srv = HTTPServer(("127.0.0.1", 0), _DohStubHandler)
    host, port = srv.server_address
    srv.seen = []
    srv.port = port
    srv.base = f"http://{host}:{port}"

    t = threading.Thread(target=srv.serve_forever, daemon=True)
    t.start()
    time.sleep(0.05)
    try:
        yield srv
    finally:
        srv.shutdown()
        srv.server_close()
