"""Command-line interface for wattwatch."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import WattwatchApp
from .config import ConfigurationError, WattwatchConfig, load_config
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="ThingSpeak power-usage monitor and device controller",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Poll telemetry until interrupted")
    subparsers.add_parser("fetch", help="Fetch the latest telemetry record once")

    toggle_parser = subparsers.add_parser("toggle", help="Switch a device on or off")
    toggle_parser.add_argument("device_id", type=int, help="Device identifier")
    toggle_parser.add_argument("state", choices=("on", "off"), help="Desired state")

    chat_parser = subparsers.add_parser("chat", help="Send a message to the assistant")
    chat_parser.add_argument("message", nargs="+", help="Message text")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def _fetch(config: WattwatchConfig) -> int:
    app = WattwatchApp(config)
    try:
        applied = await app.poller.poll_once()
    finally:
        await app.aclose()

    if not applied:
        return 1
    snapshot = app.store.snapshot
    print(f"Remaining balance: {snapshot.remaining_balance_percent:.1f}%")
    print(f"Battery temperature: {snapshot.battery_temperature:.1f}C")
    latest = app.store.window.latest()
    if latest is not None:
        print(f"Usage: {latest.usage_value} (predicted {latest.predicted_value})")
    else:
        print("Usage: no valid sample in latest record")
    return 0


async def _toggle(config: WattwatchConfig, device_id: int, turn_on: bool) -> int:
    app = WattwatchApp(config)
    try:
        batch = app.set_device(device_id, turn_on)
        if batch is None:
            print(f"Unknown device {device_id}")
            return 1
        if batch.empty:
            print(f"Device {device_id} is local only; nothing sent")
            return 0
        await batch.wait()
    finally:
        await app.aclose()
    return 0


async def _chat(config: WattwatchConfig, message: str) -> int:
    app = WattwatchApp(config)
    try:
        reply = app.chat(message)
        if reply is None:
            return 1
        print(reply.text)
        await app.dispatcher.wait_all()
    finally:
        await app.aclose()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)

    if args.command == "start":
        try:
            config.thingspeak.require_channel()
        except ConfigurationError as exc:
            LOGGER.error("%s", exc)
            return 2
        WattwatchApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    try:
        if args.command == "fetch":
            config.thingspeak.require_channel()
            return asyncio.run(_fetch(config))
        if args.command == "toggle":
            config.thingspeak.require_write_key()
            return asyncio.run(_toggle(config, args.device_id, args.state == "on"))
        if args.command == "chat":
            return asyncio.run(_chat(config, " ".join(args.message)))
    except ConfigurationError as exc:
        LOGGER.error("%s", exc)
        return 2
    except KeyboardInterrupt:
        return 130

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
