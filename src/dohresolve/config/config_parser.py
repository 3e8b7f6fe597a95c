"""Configuration parsing for the dohresolve CLI.

Brief:
  Reads the YAML config file, validates it against the packaged JSON Schema
  and turns the ``resolver`` section into a ResolverConfig.

Inputs:
  - YAML config paths and parsed config dicts

Outputs:
  - Validated config dicts and ResolverConfig instances
"""

from __future__ import annotations

import urllib.parse
from typing import Any, Dict, Optional

import yaml

from ..request_builder import DNS_MESSAGE
from ..resolver import ResolverConfig
from ..transports.bootstrap import StaticBootstrap, SystemBootstrap
from ..transports.http import Bootstrap, StdlibHttpClient
from ..transports.requests_client import RequestsHttpClient
from .config_schema import validate_config

DEFAULT_TIMEOUT_MS = 1500


def parse_config_file(
    config_path: str, *, unknown_keys: str = "warn"
) -> Dict[str, Any]:
    """Brief: Read and schema-validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML configuration file.
      - unknown_keys: Policy forwarded to validate_config.

    Outputs:
      - dict: Parsed configuration mapping (an empty file yields {}).

    Raises:
      - ValueError: When the root is not a mapping or schema validation fails.
      - OSError: When the file cannot be read.
    """

    with open(config_path, "r") as f:
        cfg = yaml.safe_load(f) or {}

    if not isinstance(cfg, dict):
        raise ValueError("Configuration root must be a mapping")

    validate_config(cfg, config_path=config_path, unknown_keys=unknown_keys)
    return cfg


def build_resolver_config(cfg: Dict[str, Any]) -> ResolverConfig:
    """Brief: Construct a ResolverConfig from cfg['resolver'].

    Inputs:
      - cfg: Parsed (and validated) configuration mapping.

    Outputs:
      - ResolverConfig with its HTTP client and optional bootstrap: a
        StaticBootstrap for an address list, SystemBootstrap for "system".

    Raises:
      - ValueError: When the resolver section or url is missing, or when a
        bootstrap is combined with the requests client.

    Example:
      >>> rc = build_resolver_config({"resolver": {"url": "https://dns.example/q"}})
      >>> rc.method.value
      'GET'
    """

    section = cfg.get("resolver")
    if not isinstance(section, dict) or not section.get("url"):
        raise ValueError("config.resolver.url is required")

    url = str(section["url"])
    tls = section.get("tls") or {}
    client_kwargs = {
        "timeout_ms": int(section.get("timeout_ms", DEFAULT_TIMEOUT_MS)),
        "verify": bool(tls.get("verify", True)),
        "ca_file": tls.get("ca_file"),
    }
    if section.get("client", "http_client") == "requests":
        client = RequestsHttpClient(**client_kwargs)
    else:
        client = StdlibHttpClient(**client_kwargs)

    bootstrap: Optional[Bootstrap] = None
    addresses = section.get("bootstrap")
    if addresses == "system":
        bootstrap = SystemBootstrap(port=urllib.parse.urlsplit(url).port or 443)
    elif addresses:
        host = urllib.parse.urlsplit(url).hostname
        if not host:
            raise ValueError(f"cannot bootstrap url without a host: {url}")
        bootstrap = StaticBootstrap(host, addresses)

    return ResolverConfig(
        url=url,
        include_ipv6=bool(section.get("include_ipv6", True)),
        method=str(section.get("method", "GET")),
        content_type=str(section.get("content_type", DNS_MESSAGE)),
        client=client,
        bootstrap=bootstrap,
    )
