"""Command-line interface for router-watchdog."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import CredentialsMissingError, WatchdogApp, probe_status, reboot_now
from .config import WatchdogConfig, load_config
from .dashboard import format_frequency, format_megabytes, format_signal, format_uptime
from .evaluator import UnusablePollError
from .executor import RequestError
from .logging import configure_logging
from .version import __version__

LOGGER = logging.getLogger(__name__)

_MASKED_OPTIONS = {"password_hash"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Watch a cellular router and reboot it when 5G is lost",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    start_parser = subparsers.add_parser("start", help="Run the watchdog")
    start_parser.add_argument(
        "--no-dashboard",
        action="store_true",
        help="Log to the console instead of showing the terminal dashboard",
    )

    subparsers.add_parser("status", help="Poll the router once and print its status")
    subparsers.add_parser("reboot", help="Log in and reboot the router now")
    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def _print_status(config: WatchdogConfig) -> int:
    try:
        state = asyncio.run(probe_status(config))
    except (RequestError, UnusablePollError) as exc:
        LOGGER.error("Status poll failed: %s", exc)
        return 1

    print(f"Router:  {config.device.url}")
    print(f"Uptime:  {format_uptime(state.uptime_seconds)}")
    print(f"4G:      {format_frequency(state.primary_frequency).strip()}")
    print(f"5G:      {format_frequency(state.secondary_frequency).strip()}")
    print(f"RSRQ:    {format_signal(state.rsrq)}")
    print(f"RSRQ 5G: {format_signal(state.rsrq_5g, secondary=True)}")
    print(f"Upload:  {format_megabytes(state.tx_bytes).strip()}")
    print(f"Download:{format_megabytes(state.rx_bytes)}")
    return 0


def _reboot(config: WatchdogConfig) -> int:
    try:
        accepted = asyncio.run(reboot_now(config))
    except (CredentialsMissingError, RequestError) as exc:
        LOGGER.error("Reboot failed: %s", exc)
        return 1
    return 0 if accepted else 1


def _show_config(config: WatchdogConfig) -> int:
    print(f"Configuration loaded from {config.path!s}\n")
    for section in config.raw.sections():
        print(f"[{section}]")
        for key, value in config.raw[section].items():
            if key in _MASKED_OPTIONS and value:
                value = "********"
            print(f"{key} = {value}")
        print()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        use_dashboard = False if args.no_dashboard else None
        return WatchdogApp.start(config, use_dashboard=use_dashboard)

    if args.command == "show-config":
        return _show_config(config)

    configure_logging(config.log_level, verbose=config.logging.verbose)

    if args.command == "status":
        return _print_status(config)

    if args.command == "reboot":
        return _reboot(config)

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
