"""
Command line entry point for the PumpSwap/DLMM arbitrage scanner.

Usage:
    sol-arb                      # continuous scan
    sol-arb monitor              # spread monitoring only
    sol-arb analysis             # one-shot pool report
    sol-arb scan --cycles 10 --log-level debug
"""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv
from solders.keypair import Keypair

from . import logging_config
from .adapters.pumpswap import validate_pool_config
from .config import ScannerConfig, load_config
from .exceptions import ConfigurationError, RpcConnectionError, WalletError
from .rpc import connect_with_retry, get_sol_balance, load_keypair
from .scanner import ArbitrageScanner, ServiceContext, run_analysis
from .utils import format_amount, get_logger
from .version import __version__

logger = get_logger(__name__)

MODES = ("scan", "monitor", "analysis", "help")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sol-arb",
        description="PumpSwap / Meteora DLMM arbitrage scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  scan       Continuous arbitrage detection (default)
  monitor    Log the unit-price spread between venues every cycle
  analysis   One-shot report of both pools
  help       Show this message

Configuration is read from the environment (and .env):
  RPC_URL, KEYPAIR_PATH, PRIVATE_KEY, PUMPSWAP_POOL, DLMM_POOL, MINT,
  BASE_MINT, SLIPPAGE, CACHE_DURATION, MIN_PROFIT_PCT, WSOL_TRADE_SIZE,
  PROCESS_DELAY, DRY_RUN, LOG_LEVEL
        """,
    )
    parser.add_argument(
        "mode",
        nargs="?",
        default="scan",
        choices=MODES,
        help="What to run (default: scan)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML file overriding environment settings",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Dotenv file to load (default: .env)",
    )
    parser.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many cycles (default: run until interrupted)",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(logging_config.LEVEL_NAMES),
        default=None,
        help="Override LOG_LEVEL",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def print_banner(config: ScannerConfig) -> None:
    logger.info("=" * 60)
    logger.info(f"🚀 Solana DEX arbitrage scanner v{__version__}")
    logger.info("=" * 60)
    for line in config.describe():
        logger.info(line)
    logger.info("=" * 60)


async def run_mode(
    config: ScannerConfig, keypair: Optional[Keypair], mode: str, cycles: Optional[int]
) -> int:
    try:
        client = await connect_with_retry(config.rpc_url)
    except RpcConnectionError as e:
        logger.error(f"❌ {e}")
        return 1

    context = ServiceContext.build(config, client, keypair)
    if keypair is not None:
        try:
            balance = await get_sol_balance(client, keypair.pubkey())
            logger.info(f"💰 Wallet balance: {format_amount(balance)} SOL")
        except Exception as e:
            logger.warning(f"Could not read wallet balance: {e}")

    scanner = ArbitrageScanner(context)
    try:
        if mode == "analysis":
            await run_analysis(context)
        else:
            await scanner.run(mode, max_cycles=cycles)
    finally:
        if mode != "analysis":
            logger.info("📈 Session summary")
            for line in scanner.stats.summary():
                logger.info(f"   {line}")
        await context.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode == "help":
        parser.print_help()
        return 0

    load_dotenv(args.env_file)

    try:
        config = load_config(config_path=args.config)
    except ConfigurationError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return 1

    level_name = args.log_level or config.log_level
    logging_config.setup(logging_config.level_from_name(level_name))

    print_banner(config)
    validate_pool_config(config)

    try:
        keypair = load_keypair(config.keypair_path, config.private_key)
    except WalletError as e:
        logger.error(f"❌ Wallet error: {e}")
        return 1

    if keypair is None:
        if not config.dry_run:
            logger.error(
                "❌ No wallet configured. Set KEYPAIR_PATH or PRIVATE_KEY, "
                "or run with DRY_RUN=true"
            )
            return 1
        logger.warning("No wallet configured; continuing in dry-run mode")
    else:
        logger.info(f"👛 Wallet: {keypair.pubkey()}")

    try:
        return asyncio.run(run_mode(config, keypair, args.mode, args.cycles))
    except KeyboardInterrupt:
        print("\n\n⏸ Stopped by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
