"""dohresolve: hostname resolution over DNS-over-HTTPS (RFC 8484)."""

from .request_builder import DNS_MESSAGE, UDPWIREFORMAT, DohMethod
from .resolver import (
    DohResolver,
    FailureKind,
    NotFoundError,
    ResolutionFailure,
    ResolverConfig,
)

__all__ = [
    "DNS_MESSAGE",
    "UDPWIREFORMAT",
    "DohMethod",
    "DohResolver",
    "FailureKind",
    "NotFoundError",
    "ResolutionFailure",
    "ResolverConfig",
]
