"""RFC 1035 wire-format codec for DNS-over-HTTPS address lookups.

Brief:
  Encodes a hostname into an A (and optionally AAAA) query message and
  decodes the answer section of a response message into raw address bytes.
  Message framing and name compression are handled by dnslib. Pure
  functions, no I/O.

Inputs:
  - Hostnames as ASCII / already IDNA-normalized strings.
  - Response messages as bytes.

Outputs:
  - Query bytes, DecodedResponse values, or lists of 4/16-byte addresses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from dnslib import QTYPE, RCODE, DNSError, DNSHeader, DNSQuestion, DNSRecord
from dnslib.buffer import BufferError as DNSBufferError
from dnslib.label import DNSBuffer, DNSLabel, DNSLabelError

CLASS_IN = 1

HEADER_LEN = 12
MAX_LABEL_LEN = 63
MAX_NAME_LEN = 255

_ADDRESS_LENGTHS = {QTYPE.A: 4, QTYPE.AAAA: 16}
_LABEL_RE = re.compile(r"[A-Za-z0-9_-]+")

# Errors dnslib raises while walking a buffer.
_DNSLIB_ERRORS = (DNSError, DNSLabelError, DNSBufferError)


class EncodeError(ValueError):
    """
    Brief: Hostname cannot be expressed as a DNS wire-format name.

    Inputs:
    - message: description of the offending label or length

    Outputs:
    - Exception instance
    """

    pass


class DecodeError(ValueError):
    """
    Brief: Response message is truncated, malformed or unsafe to follow.

    Inputs:
    - message: description including the offset where parsing stopped

    Outputs:
    - Exception instance
    """

    pass


def rcode_name(rcode: int) -> str:
    """Return the mnemonic for a response code, e.g. 3 -> 'NXDOMAIN'."""
    return RCODE.get(rcode, f"RCODE{rcode}")


@dataclass(frozen=True)
class DecodedResponse:
    """Parsed response: RCODE plus the addresses that answer the query."""

    rcode: int
    addresses: List[bytes] = field(default_factory=list)

    @property
    def rcode_name(self) -> str:
        return rcode_name(self.rcode)


def _hostname_label(hostname: str) -> DNSLabel:
    if not isinstance(hostname, str) or not hostname:
        raise EncodeError("hostname must be a non-empty string")
    name = hostname[:-1] if hostname.endswith(".") else hostname
    if not name:
        raise EncodeError("hostname must contain at least one label")

    labels = []
    wire_len = 1
    for label in name.split("."):
        if not label:
            raise EncodeError(f"empty label in {hostname!r}")
        if not _LABEL_RE.fullmatch(label):
            raise EncodeError(f"invalid characters in label {label!r}")
        raw = label.encode("ascii")
        if len(raw) > MAX_LABEL_LEN:
            raise EncodeError(
                f"label {label[:16]!r}... is {len(raw)} bytes (max {MAX_LABEL_LEN})"
            )
        wire_len += 1 + len(raw)
        labels.append(raw)
    if wire_len > MAX_NAME_LEN:
        raise EncodeError(f"encoded name is {wire_len} bytes (max {MAX_NAME_LEN})")
    return DNSLabel(labels)


def encode_name(hostname: str) -> bytes:
    """
    Brief: Encode a hostname as length-prefixed labels ending in a zero byte.

    Inputs:
    - hostname: dotted name; one trailing dot is accepted

    Outputs:
    - bytes: wire-format name

    Example:
        >>> encode_name("a.example")
        b'\\x01a\\x07example\\x00'
    """
    buffer = DNSBuffer()
    buffer.encode_name_nocompress(_hostname_label(hostname))
    return bytes(buffer.data)


def encode_query(hostname: str, include_ipv6: bool, query_id: int = 0) -> bytes:
    """
    Brief: Build a recursive query for the A (and AAAA) records of hostname.

    Inputs:
    - hostname: name to resolve
    - include_ipv6: add a second AAAA question to the same message
    - query_id: transaction ID; 0 keeps GET responses cacheable (RFC 8484 4.1)

    Outputs:
    - bytes: complete DNS query message

    Notes:
    - IPv6 lookups use one message with QDCOUNT=2 rather than two round
      trips; parse_response accepts A and AAAA answers from it. The second
      question's name is a compression pointer to the first.

    Example:
        >>> encode_query("a.example", False)[:6]
        b'\\x00\\x00\\x01\\x00\\x00\\x01'
    """
    qname = _hostname_label(hostname)
    qtypes = (QTYPE.A, QTYPE.AAAA) if include_ipv6 else (QTYPE.A,)
    record = DNSRecord(
        DNSHeader(id=query_id & 0xFFFF, rd=1),
        questions=[DNSQuestion(qname, qtype, CLASS_IN) for qtype in qtypes],
    )
    try:
        return record.pack()
    except _DNSLIB_ERRORS as e:
        raise EncodeError(f"cannot encode {hostname!r}: {e}") from e


def _decode_name(buffer: DNSBuffer) -> DNSLabel:
    # dnslib only follows pointers that land before the pointer's own end,
    # but two overlapping pointers can still bounce between each other
    # until the interpreter's recursion limit.
    start = buffer.offset
    try:
        name = buffer.decode_name()
    except RecursionError as e:
        raise DecodeError(f"compression pointer loop at offset {start}") from e
    if any(len(label) > MAX_LABEL_LEN for label in name.label):
        raise DecodeError(
            f"label longer than {MAX_LABEL_LEN} bytes in name at offset {start}"
        )
    wire_len = sum(len(label) + 1 for label in name.label) + 1
    if wire_len > MAX_NAME_LEN:
        raise DecodeError(
            f"name at offset {start} is {wire_len} bytes (max {MAX_NAME_LEN})"
        )
    return name


def read_name(message: bytes, offset: int) -> Tuple[str, int]:
    """
    Brief: Decode a possibly compressed name starting at offset.

    Inputs:
    - message: full DNS message
    - offset: position of the first length byte

    Outputs:
    - (name, next_offset): dotted name without trailing dot, and the offset
      just past the name in the original (uncompressed) position

    Notes:
    - Pointers must target an earlier offset, so self-referencing, forward
      and out-of-range pointers raise DecodeError, as do pointer loops.
    """
    buffer = DNSBuffer(message)
    buffer.offset = offset
    try:
        name = _decode_name(buffer)
    except _DNSLIB_ERRORS as e:
        raise DecodeError(f"bad name at offset {offset}: {e}") from e
    text = ".".join(label.decode("ascii", errors="replace") for label in name.label)
    return text, buffer.offset


def _read_answer(buffer: DNSBuffer) -> Tuple[DNSLabel, int, int, bytes]:
    owner = _decode_name(buffer)
    rtype, rclass, _ttl, rdlength = buffer.unpack("!HHIH")
    start = buffer.offset
    if start + rdlength > len(buffer.data):
        raise DecodeError(f"RDATA truncated at offset {start}")
    expected = _ADDRESS_LENGTHS.get(rtype)
    if expected is not None and rdlength != expected:
        raise DecodeError(f"{QTYPE[rtype]} record with RDLENGTH {rdlength}")
    rdata = bytes(buffer.get(rdlength))
    return owner, rtype, rclass, rdata


def parse_response(
    hostname: str, message: bytes, expected_id: Optional[int] = None
) -> DecodedResponse:
    """
    Brief: Validate a response and collect the A/AAAA answers for hostname.

    Inputs:
    - hostname: the name that was queried
    - message: raw response bytes
    - expected_id: when set, the response ID must match it

    Outputs:
    - DecodedResponse: rcode and addresses (4- or 16-byte values, answer order)

    Notes:
    - A non-zero RCODE yields no addresses and is not an error.
    - Owners must match hostname or a CNAME target chained from it; records
      for other owners and other types are skipped.
    """
    if len(message) < HEADER_LEN:
        raise DecodeError(
            f"message is {len(message)} bytes, shorter than the {HEADER_LEN}-byte header"
        )

    buffer = DNSBuffer(message)
    try:
        header = DNSHeader.parse(buffer)
        if not header.qr:
            raise DecodeError("message is not a response (QR bit clear)")
        if expected_id is not None and header.id != expected_id:
            raise DecodeError(
                f"response ID {header.id} does not match query ID {expected_id}"
            )
        if header.rcode != RCODE.NOERROR:
            return DecodedResponse(rcode=header.rcode)

        for _ in range(header.q):
            _decode_name(buffer)
            buffer.unpack("!HH")

        accepted = {DNSLabel(hostname.encode("ascii", errors="replace"))}
        addresses: List[bytes] = []
        for _ in range(header.a):
            owner, rtype, rclass, rdata = _read_answer(buffer)
            if rclass != CLASS_IN or owner not in accepted:
                continue
            if rtype in _ADDRESS_LENGTHS:
                addresses.append(rdata)
            elif rtype == QTYPE.CNAME:
                # Decode the target in the full message so pointers resolve.
                target = DNSBuffer(message)
                target.offset = buffer.offset - len(rdata)
                accepted.add(_decode_name(target))
    except _DNSLIB_ERRORS as e:
        raise DecodeError(str(e)) from e

    return DecodedResponse(rcode=0, addresses=addresses)


def decode_answers(
    hostname: str, message: bytes, expected_id: Optional[int] = None
) -> List[bytes]:
    """Return the raw A/AAAA addresses answering hostname, in answer order."""
    return parse_response(hostname, message, expected_id).addresses
