"""
Command-line interface for the domain sniper.

This module provides the main CLI entry point with commands for:
- run: autonomous monitoring loop
- serve: HTTP API (monitoring is started from the API)
- add / list / remove: watched domain management
- check: one monitor cycle
- balance, self-test, request-key: registrar diagnostics and setup
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from . import __version__
from .api import create_app, cycle_summary
from .config import SystemConfig, load_config_from_env
from .enums import LogLevel
from .exceptions import ConfigurationError, SniperError
from .registrar_client import RegistrarClient
from .self_test import run_self_test
from .service import SniperService, parse_log_level


def _load_config(args: argparse.Namespace) -> SystemConfig:
    config = load_config_from_env(dotenv_path=Path(args.env_file) if args.env_file else None)
    if getattr(args, "database", None):
        config.persistence.database_path = Path(args.database)
    return config


def _uvicorn_level(config: SystemConfig) -> str:
    level = parse_log_level(config.logging.level)
    return "info" if level == LogLevel.SUCCESS else level.value


def _fail(message: str, code: int = 1) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return code


async def run_autonomous(config: SystemConfig, stop_event: Optional[asyncio.Event] = None) -> int:
    """
    Self-test (when enabled), then monitor until interrupted.

    Returns:
        Exit code
    """
    service = SniperService(config)
    try:
        if config.startup_self_test:
            result = await run_self_test(config, service.registrar)
            if not result.success:
                return 1

        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                pass  # not supported on this platform; Ctrl+C still raises

        await service.scheduler.run(stop_event)
        return 0
    finally:
        await service.close()


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    config = _load_config(args)
    try:
        config.require_registrar()
    except ConfigurationError as e:
        return _fail(e.message, 2)

    if args.no_self_test:
        config.startup_self_test = False

    try:
        return asyncio.run(run_autonomous(config))
    except KeyboardInterrupt:
        return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the 'serve' command."""
    config = _load_config(args)
    host = args.host or config.api.host
    port = args.port or config.api.port

    service = SniperService(config)
    if not service.registrar_ready:
        service.logger.warning(
            "cli",
            "Registrar credentials missing, serving domain management only",
            {"missing": config.registrar.missing_credentials},
        )

    try:
        uvicorn.run(create_app(service), host=host, port=port, log_level=_uvicorn_level(config))
    finally:
        asyncio.run(service.close())
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Handle the 'add' command."""
    service = SniperService(_load_config(args))
    try:
        domain = service.add_domain(
            args.domain,
            monitoring_enabled=not args.no_monitoring,
            auto_purchase_enabled=args.auto_purchase,
        )
    except SniperError as e:
        return _fail(e.message)
    finally:
        asyncio.run(service.close())

    print(f"Added {domain.name} (id {domain.id})")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the 'list' command."""
    service = SniperService(_load_config(args))
    try:
        domains = service.store.list_domains()
    finally:
        asyncio.run(service.close())

    if not domains:
        print("No watched domains.")
        return 0

    print(f"{'ID':>4}  {'DOMAIN':<40} {'STATUS':<12} {'MONITOR':<8} {'AUTO-BUY':<8} LAST CHECK")
    for d in domains:
        print(
            f"{d.id:>4}  {d.name:<40} {d.status.value:<12} "
            f"{'yes' if d.monitoring_enabled else 'no':<8} "
            f"{'yes' if d.auto_purchase_enabled else 'no':<8} "
            f"{d.last_checked_at or '-'}"
        )
    return 0


def cmd_remove(args: argparse.Namespace) -> int:
    """Handle the 'remove' command."""
    service = SniperService(_load_config(args))
    try:
        domain = service.remove_domain(args.id)
    except SniperError as e:
        return _fail(e.message)
    finally:
        asyncio.run(service.close())

    print(f"Removed {domain.name}")
    return 0


async def _check_once(service: SniperService) -> dict:
    try:
        return cycle_summary(await service.require_scheduler().trigger_once())
    finally:
        await service.close()


def cmd_check(args: argparse.Namespace) -> int:
    """Handle the 'check' command."""
    service = SniperService(_load_config(args))
    if not service.registrar_ready:
        asyncio.run(service.close())
        return _fail("Registrar credentials are not configured", 2)

    summary = asyncio.run(_check_once(service))
    print(f"Checked {summary['checked']} domain(s)")
    for name in summary["available"]:
        print(f"  available: {name}")
    for name in summary["purchased"]:
        print(f"  purchased: {name}")
    for error in summary["errors"]:
        print(f"  error: {error['domain']}: {error['error']}")
    return 0


async def _balance(config: SystemConfig) -> int:
    async with RegistrarClient(config.registrar) as registrar:
        result = await registrar.get_account_balance()
    if result.balance is None:
        return _fail(f"Balance unavailable: {result.error}")
    print(f"{result.balance:.2f} {result.currency or ''}".rstrip())
    return 0


def cmd_balance(args: argparse.Namespace) -> int:
    """Handle the 'balance' command."""
    config = _load_config(args)
    try:
        config.require_registrar()
    except ConfigurationError as e:
        return _fail(e.message, 2)
    return asyncio.run(_balance(config))


def cmd_self_test(args: argparse.Namespace) -> int:
    """Handle the 'self-test' command."""
    result = asyncio.run(run_self_test(_load_config(args)))
    return 0 if result.success else 1


async def _request_key(config: SystemConfig, redirection: Optional[str]) -> int:
    async with RegistrarClient(config.registrar) as registrar:
        request = await registrar.request_consumer_key(redirection=redirection)
    print(f"Consumer key:   {request.consumer_key}")
    print(f"Validation URL: {request.validation_url}")
    print("Open the URL, log in and authorize the key, then set OVH_CONSUMER_KEY.")
    return 0


def cmd_request_key(args: argparse.Namespace) -> int:
    """Handle the 'request-key' command."""
    config = _load_config(args)
    if not config.registrar.app_key:
        return _fail("OVH_APP_KEY is not set", 2)
    try:
        return asyncio.run(_request_key(config, args.redirect))
    except SniperError as e:
        return _fail(e.message)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-sniper",
        description="Watch domains at the registrar and buy them when they drop",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--env-file", "-e",
        help="Path to a .env file (defaults to ./.env)",
    )
    parser.add_argument(
        "--database", "-d",
        help="SQLite database path (overrides SNIPER_DATABASE)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Monitor watched domains until interrupted")
    run_parser.add_argument(
        "--no-self-test",
        action="store_true",
        help="Skip the startup self-test",
    )
    run_parser.set_defaults(func=cmd_run)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", help="Listen address (overrides HOST)")
    serve_parser.add_argument("--port", type=int, help="Listen port (overrides PORT)")
    serve_parser.set_defaults(func=cmd_serve)

    add_parser = subparsers.add_parser("add", help="Watch a domain")
    add_parser.add_argument("domain", help="Domain to watch (e.g., example.com)")
    add_parser.add_argument(
        "--auto-purchase",
        action="store_true",
        help="Order the domain as soon as it becomes available",
    )
    add_parser.add_argument(
        "--no-monitoring",
        action="store_true",
        help="Store the domain without polling it",
    )
    add_parser.set_defaults(func=cmd_add)

    list_parser = subparsers.add_parser("list", help="List watched domains")
    list_parser.set_defaults(func=cmd_list)

    remove_parser = subparsers.add_parser("remove", help="Stop watching a domain")
    remove_parser.add_argument("id", type=int, help="Domain id (see 'list')")
    remove_parser.set_defaults(func=cmd_remove)

    check_parser = subparsers.add_parser("check", help="Run one monitor cycle now")
    check_parser.set_defaults(func=cmd_check)

    balance_parser = subparsers.add_parser("balance", help="Show the prepaid account balance")
    balance_parser.set_defaults(func=cmd_balance)

    self_test_parser = subparsers.add_parser(
        "self-test",
        help="Validate configuration and registrar credentials",
    )
    self_test_parser.set_defaults(func=cmd_self_test)

    key_parser = subparsers.add_parser(
        "request-key",
        help="Request a consumer key with the permissions the sniper needs",
    )
    key_parser.add_argument("--redirect", help="URL to return to after validation")
    key_parser.set_defaults(func=cmd_request_key)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except ConfigurationError as e:
        return _fail(e.message, 2)


if __name__ == "__main__":
    sys.exit(main())
