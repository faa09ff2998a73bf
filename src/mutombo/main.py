from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import List

from .config.models import GatewayConfig
from .config.store import ConfigStore
from .domain import canonicalize, is_valid_query
from .errors import ConfigLoadError, GatewayError, PersistenceError
from .gateway import Gateway, build_gateway
from .logging_config import AuditLog, init_logging
from .stats import format_snapshot_json

logger = logging.getLogger("mutombo.main")

DEFAULT_CONFIG_PATH = "./config/config.yaml"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mutombo", description="Self-hosted DNS resolution and filtering gateway"
    )
    parser.add_argument(
        "-c",
        "--config",
        default=os.environ.get("MUTOMBO_CONFIG", DEFAULT_CONFIG_PATH),
        help="Path to YAML config (default: $MUTOMBO_CONFIG or ./config/config.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("resolve", help="Run queries through the full pipeline")
    p.add_argument("queries", nargs="+", metavar="QUERY")

    p = sub.add_parser("check", help="Report whether domains are blocked")
    p.add_argument("domains", nargs="+", metavar="DOMAIN")

    p = sub.add_parser("sources", help="Manage blocklist subscriptions")
    src = p.add_subparsers(dest="action", required=True)
    src.add_parser("list", help="List configured blocklists")
    a = src.add_parser("add", help="Subscribe to a blocklist URL")
    a.add_argument("url")
    a.add_argument("--label", default="")
    a.add_argument("--title", default=None)
    for action in ("remove", "enable", "disable"):
        a = src.add_parser(action, help=f"{action.capitalize()} blocklists by name")
        a.add_argument("name")

    p = sub.add_parser("services", help="Manage blockable services")
    svc = p.add_subparsers(dest="action", required=True)
    svc.add_parser("list", help="List services and their state")
    for action in ("block", "unblock"):
        a = svc.add_parser(action, help=f"{action.capitalize()} a service")
        a.add_argument("domain")

    p = sub.add_parser("logs", help="Show audit log entries, newest first")
    p.add_argument("--search", default=None)
    p.add_argument("--limit", type=int, default=100)

    sub.add_parser("reset-counts", help="Zero the resolver cache hit counters")
    sub.add_parser(
        "serve",
        help="Answer one query per stdin line with 'blocked' or the address",
    )
    return parser


def _load_config(store: ConfigStore) -> GatewayConfig:
    """
    Load the config file, writing the defaults when it does not exist yet.

    Raises ConfigLoadError when the file exists but is invalid.
    """
    try:
        return store.load()
    except FileNotFoundError:
        config = GatewayConfig()
        try:
            store.save(config)
        except PersistenceError as exc:
            logger.warning("%s", exc)
        else:
            logger.info("Wrote default config to %s", store.path)
        return config


async def _cmd_resolve(gateway: Gateway, queries: List[str]) -> int:
    await gateway.start()
    rc = 0
    try:
        for query in queries:
            try:
                result = await gateway.handle(query, client="cli")
            except GatewayError as exc:
                print(f"{query}\t[ERROR] {exc}")
                rc = 1
                continue
            print(f"{result.domain}\t{'blocked' if result.blocked else result.ip}")
    finally:
        await gateway.stop()
    return rc


async def _cmd_check(gateway: Gateway, domains: List[str]) -> int:
    await gateway.start()
    rc = 0
    try:
        for query in domains:
            domain = canonicalize(query) if is_valid_query(query) else ""
            if not domain:
                print(f"{query}\t[ERROR] No valid URL format submitted!")
                rc = 1
                continue
            reason = gateway.engine.match(domain)
            print(f"{query}\t{'blocked (' + reason + ')' if reason else 'allowed'}")
    finally:
        await gateway.stop()
    return rc


async def _cmd_sources(gateway: Gateway, args: argparse.Namespace) -> int:
    engine = gateway.engine
    if args.action == "list":
        for s in engine.sources:
            state = "active" if s.active else "inactive"
            print(f"{s.name}\t{s.url}\t{s.label}\t{state}\t{s.created_at.isoformat()}")
        return 0
    if args.action == "add":
        source = await engine.add_source(args.url, label=args.label, title=args.title)
        print(f"Added blocklist '{source.name}'")
        return 0
    if args.action == "remove":
        ok = await engine.remove_source(args.name)
    else:
        ok = await engine.set_active(args.name, args.action == "enable")
    if not ok:
        print(f"[ERROR] No blocklist named '{args.name}'")
        return 1
    return 0


async def _cmd_services(gateway: Gateway, args: argparse.Namespace) -> int:
    engine = gateway.engine
    engine.load_services()
    if args.action == "list":
        for domain, service in sorted(engine.services.items()):
            state = "blocked" if service.blocked else "allowed"
            print(f"{domain}\t{state}\t{len(service.endpoints)} endpoints")
        return 0
    if args.action == "block":
        await engine.disable_service(args.domain)
    else:
        await engine.enable_service(args.domain)
    print(f"Service '{args.domain}' {args.action}ed")
    return 0


async def _cmd_serve(gateway: Gateway) -> int:
    await gateway.start()
    loop = asyncio.get_running_loop()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            query = line.strip()
            if not query:
                continue
            try:
                result = await gateway.handle(query, client="stdin")
            except GatewayError as exc:
                print(f"[ERROR] {exc}", flush=True)
                continue
            print("blocked" if result.blocked else result.ip, flush=True)
    finally:
        await gateway.stop()
        print(format_snapshot_json(gateway.stats.snapshot()), flush=True)
    return 0


async def _dispatch(gateway: Gateway, args: argparse.Namespace) -> int:
    if args.command == "resolve":
        return await _cmd_resolve(gateway, args.queries)
    if args.command == "check":
        return await _cmd_check(gateway, args.domains)
    if args.command == "sources":
        return await _cmd_sources(gateway, args)
    if args.command == "services":
        return await _cmd_services(gateway, args)
    if args.command == "reset-counts":
        rows = await gateway.cache.reset_counts()
        print(f"Reset hit counts for {rows} cached domains")
        return 0
    if args.command == "serve":
        return await _cmd_serve(gateway)
    raise ValueError(f"Unknown command {args.command!r}")


def main(argv: List[str] | None = None) -> int:
    """
    Entry point for the mutombo CLI.

    Inputs:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Outputs:
        Exit code: 0 on success, 1 on user errors, 2 when the config is invalid.

    Example use:
        CLI:
            PYTHONPATH=src python -m mutombo.main -c config/config.yaml resolve example.com
    """
    args = _build_parser().parse_args(argv)

    store = ConfigStore(args.config)
    try:
        config = _load_config(store)
    except ConfigLoadError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    init_logging(config.logging.model_dump())
    logger.debug("Loaded config from %s", store.path)

    if args.command == "logs":
        audit = AuditLog(config.audit_log)
        try:
            for entry in audit.read(search=args.search, limit=args.limit):
                print(f"{entry['time']}\t{entry['log']}")
        finally:
            audit.close()
        return 0

    gateway = build_gateway(config, config_store=store)
    try:
        return asyncio.run(_dispatch(gateway, args))
    except ConfigLoadError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except GatewayError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 0
    finally:
        gateway.close()


if __name__ == "__main__":
    sys.exit(main())
