"""
zol-client - command line helpers for the ZOL program.

Usage:
    zol-client blockhash                 # fetch a freshness token
    zol-client position OWNER            # read a user position
    zol-client classify "MESSAGE"        # classify an error message
    zol-client stats                     # RPC manager stats
    zol-client --settings settings.toml --log-level DEBUG blockhash
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from loguru import logger
from solders.pubkey import Pubkey

from .application.context import ZolContext
from .chain.constants import FACTION_NAMES, ITEM_NAMES, USDC_DECIMALS
from .errors.classifier import classify, format_details
from .infrastructure.config.app_config import ZolConfig
from .infrastructure.logging import configure_logging


async def _blockhash(ctx: ZolContext) -> int:
    token = await ctx.rpc.get_freshness_token()
    print(f"blockhash:               {token.blockhash}")
    print(f"last valid block height: {token.last_valid_block_height}")
    return 0


async def _position(ctx: ZolContext, owner: str) -> int:
    try:
        owner_key = Pubkey.from_string(owner)
    except ValueError:
        logger.error(f"CLI | invalid owner address: {owner}")
        return 2

    position = await ctx.get_user_position(owner_key, priority=10)
    if position is None:
        print("not registered")
        return 1

    settings = position.automation_settings
    print(f"owner:       {position.owner}")
    print(f"faction:     {FACTION_NAMES.get(position.faction_id, position.faction_id)}")
    print(f"deposited:   {position.deposited_amount / 10**USDC_DECIMALS:.6f} USDC")
    print(f"last epoch:  {position.last_deposit_epoch}")
    for label, rule in (("slot 1", settings.priority_slot_1), ("slot 2", settings.priority_slot_2)):
        if rule.enabled:
            print(f"{label}:      {ITEM_NAMES.get(rule.item_id, rule.item_id)} @ {rule.threshold}")
        else:
            print(f"{label}:      disabled")
    print(f"fallback:    {settings.fallback_action.value}")
    inv = position.inventory
    print(f"inventory:   swords={inv.sword_count} shields={inv.shield_count} spyglasses={inv.spyglass_count}")
    return 0


def _classify(message: str) -> int:
    err = classify({"message": message})
    print(f"category:  {err.category.value}")
    print(f"title:     {err.title}")
    print(f"message:   {err.message}")
    print(f"retryable: {err.retryable}")
    if err.action_label:
        print(f"action:    {err.action_label}")
    if err.details:
        print(f"details:   {err.details}")
    print()
    print(format_details({"message": message}))
    return 0


def _stats(ctx: ZolContext) -> int:
    stats = ctx.rpc.stats()
    print(f"current endpoint:   {stats.current_endpoint + 1}/{stats.total_endpoints}")
    print(f"queue length:       {stats.queue_length}")
    print(f"requests in flight: {stats.requests_in_flight}")
    cache = ctx.cache.stats()
    print(f"cache entries:      {cache['size']}")
    return 0


async def _run(args: argparse.Namespace, config: ZolConfig) -> int:
    async with ZolContext.create(config) as ctx:
        if args.command == "blockhash":
            return await _blockhash(ctx)
        if args.command == "position":
            return await _position(ctx, args.owner)
        return _stats(ctx)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="zol-client", description="ZOL program client utilities")
    parser.add_argument("--settings", default=None, help="Path to a TOML settings file")
    parser.add_argument("--log-level", default=None, help="Override logging level")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("blockhash", help="Fetch a freshness token (recent blockhash)")
    parser_position = subparsers.add_parser("position", help="Read a user position")
    parser_position.add_argument("owner", help="Wallet address (base58)")
    parser_classify = subparsers.add_parser("classify", help="Classify an error message")
    parser_classify.add_argument("message", help="Raw error text")
    subparsers.add_parser("stats", help="Show RPC manager stats")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    if args.command == "classify":
        configure_logging(level=args.log_level or "WARNING")
        return _classify(args.message)

    config = ZolConfig.load(args.settings)
    configure_logging(level=args.log_level or config.logging.level, log_file=config.logging.file)
    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
