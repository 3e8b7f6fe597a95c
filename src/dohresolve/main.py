from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict, List

import yaml

from .config.config_parser import build_resolver_config, parse_config_file
from .config.logging_config import init_logging
from .request_builder import DOH_MEDIA_TYPES
from .resolver import DohResolver, ResolutionFailure


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dohresolve", description="Resolve hostnames over DNS-over-HTTPS"
    )
    parser.add_argument("hostnames", nargs="+", metavar="hostname")
    parser.add_argument("--config", help="Path to YAML config")
    parser.add_argument("--url", help="DoH endpoint, e.g. https://dns.google/dns-query")
    parser.add_argument("--method", choices=["GET", "POST"])
    parser.add_argument("--content-type", choices=list(DOH_MEDIA_TYPES))
    parser.add_argument(
        "--no-ipv6", action="store_true", help="Only ask for A records"
    )
    parser.add_argument("--timeout-ms", type=int)
    parser.add_argument(
        "--bootstrap",
        action="append",
        metavar="IP",
        help="Static address for the DoH server's own hostname (repeatable), "
        "or 'system' to pin the addresses the OS resolver returns",
    )
    parser.add_argument("--log-level", help="debug, info, warn, error or crit")
    return parser


def _apply_overrides(cfg: Dict[str, Any], args: argparse.Namespace) -> None:
    section = cfg.setdefault("resolver", {})
    if args.url:
        section["url"] = args.url
    if args.method:
        section["method"] = args.method
    if args.content_type:
        section["content_type"] = args.content_type
    if args.no_ipv6:
        section["include_ipv6"] = False
    if args.timeout_ms is not None:
        section["timeout_ms"] = args.timeout_ms
    if args.bootstrap == ["system"]:
        section["bootstrap"] = "system"
    elif args.bootstrap:
        section["bootstrap"] = list(args.bootstrap)
    if args.log_level:
        cfg.setdefault("logging", {})["level"] = args.log_level


def main(argv: List[str] | None = None) -> int:
    """
    Resolve each hostname given on the command line and print its addresses.

    Args:
        argv: Command-line arguments.

    Returns:
        0 when every lookup succeeded, 1 when any lookup failed, 2 for
        configuration errors.

    Example use:
        dohresolve --url https://cloudflare-dns.com/dns-query example.com
        dohresolve --config dohresolve.yaml --method POST example.com example.org
    """
    args = _build_parser().parse_args(argv)

    cfg: Dict[str, Any] = {}
    if args.config:
        try:
            cfg = parse_config_file(args.config)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            print(str(exc), file=sys.stderr)
            return 2
    _apply_overrides(cfg, args)

    init_logging(cfg.get("logging") or {"level": "warn"})
    logger = logging.getLogger("dohresolve.main")

    try:
        resolver = DohResolver(build_resolver_config(cfg))
    except ValueError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    logger.info("Resolving %d hostname(s) via %s", len(args.hostnames), resolver.url)

    rc = 0
    for hostname in args.hostnames:
        try:
            addresses = resolver.lookup(hostname)
        except ResolutionFailure as exc:
            print(f"{hostname}: {exc.kind.value}: {exc.cause}", file=sys.stderr)
            rc = 1
            continue
        for addr in addresses:
            print(f"{hostname}\t{addr}")
    return rc


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
