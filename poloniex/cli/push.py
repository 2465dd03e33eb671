"""poloniex-push CLI entrypoint.

Subcommands: ticker, trollbox, market PAIR [PAIR ...].

Streams decoded push events to stdout, one line per event, until interrupted or
until --limit events were printed.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

from poloniex.config import ClientConfig, configure_logging, load_config
from poloniex.errors import PoloniexError
from poloniex.pushapi.channels import TopicSubscription
from poloniex.pushapi.client import PushClient
from poloniex.pushapi.types import MarketUpdates, Tick, TrollboxMessage


def build_parser() -> argparse.ArgumentParser:
    """
    Return the top-level CLI argument parser.
    """
    p = argparse.ArgumentParser(prog="poloniex-push")
    sub = p.add_subparsers(dest="command", required=True)

    def add_common(sp: argparse.ArgumentParser) -> None:
        """Add arguments shared across all subcommands."""
        sp.add_argument("--config", type=Path, required=False, help="Path to TOML config")
        sp.add_argument(
            "--limit",
            type=int,
            default=0,
            metavar="N",
            help="Exit after N events (0 = run until interrupted)",
        )
        sp.add_argument("--log-level", default=None, help="Override the configured log level")

    add_common(sub.add_parser("ticker", help="Stream ticker updates for all markets"))
    add_common(sub.add_parser("trollbox", help="Stream trollbox messages"))

    market = sub.add_parser("market", help="Stream order book and trade updates")
    add_common(market)
    market.add_argument("pairs", nargs="+", metavar="PAIR", help="Currency pair, e.g. BTC_XMR")
    return p


def format_event(event: Any) -> str:
    """Render one decoded event as a single line."""
    if isinstance(event, Tick):
        return (
            f"ticker {event.currency_pair} last={event.last} bid={event.highest_bid} "
            f"ask={event.lowest_ask} change={event.percent_change}"
        )
    if isinstance(event, TrollboxMessage):
        return (
            f"trollbox #{event.message_number} {event.username}({event.reputation}): "
            f"{event.message}"
        )
    if isinstance(event, MarketUpdates):
        kinds = ",".join(str(update.type) for update in event.updates)
        return f"market {event.currency_pair} seq={event.sequence} [{kinds}]"
    return repr(event)


async def _pump(
    subscription: TopicSubscription[Any],
    printed: asyncio.Queue[str],
) -> None:
    async for event in subscription:
        await printed.put(format_event(event))


async def run(config: ClientConfig, command: str, pairs: list[str], limit: int) -> int:
    """Subscribe, print events, unsubscribe. Returns the process exit code."""
    lines: asyncio.Queue[str] = asyncio.Queue()

    async with PushClient(config.push) as client:
        subscriptions: list[TopicSubscription[Any]] = []
        if command == "ticker":
            subscriptions.append(await client.subscribe_ticker())
        elif command == "trollbox":
            subscriptions.append(await client.subscribe_trollbox())
        else:
            for pair in pairs:
                subscriptions.append(await client.subscribe_market(pair))

        pumps = [asyncio.create_task(_pump(s, lines)) for s in subscriptions]
        count = 0
        try:
            while not limit or count < limit:
                print(await lines.get(), flush=True)
                count += 1
        finally:
            if command == "ticker":
                await client.unsubscribe_ticker()
            elif command == "trollbox":
                await client.unsubscribe_trollbox()
            else:
                for pair in pairs:
                    await client.unsubscribe_market(pair)
            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entrypoint wrapper compatible with setuptools scripts."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.limit < 0:
        parser.error("--limit must be >= 0")

    try:
        config = load_config(args.config) if args.config else ClientConfig()
    except (FileNotFoundError, PoloniexError) as e:
        print(f"poloniex-push: {e}", file=sys.stderr)
        return 2

    configure_logging(args.log_level or config.push.log_level)

    try:
        return asyncio.run(run(config, args.command, getattr(args, "pairs", []), args.limit))
    except KeyboardInterrupt:
        return 130
    except PoloniexError as e:
        print(f"poloniex-push: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
