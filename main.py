#!/usr/bin/env python3
"""
jitokit - Launch Pipeline Entry Point
=====================================

Creates a token, its OpenBook market and its Raydium pool (with bundled
buys and an optional timed sell), as toggled in the environment / .env.

Usage:
    # Run with ./.env
    python main.py

    # Use another env file, debug logging
    python main.py --env-file devnet.env --verbose

    # Show the resolved configuration only
    python main.py --show-config
"""
import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from jitokit.config import ConfigError, load_config, load_run_options
from jitokit.run import run


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def show_config() -> int:
    """Display the resolved configuration."""
    try:
        config = load_config(os.environ)
        options = load_run_options(os.environ)
    except ConfigError as e:
        print(f"Invalid configuration: {e}")
        return 1

    print(f"\n{'='*60}")
    print(f"  JITOKIT CONFIGURATION")
    print(f"{'='*60}")
    for key, value in config.to_dict().items():
        print(f"  {key:20} {value}")

    print(f"\nSTEPS:")
    print(f"  Create token:     {options.create_token}")
    print(f"  Create market:    {options.create_market}")
    print(f"  Create pool:      {options.create_pool}")
    print(f"  Sell after pool:  {options.sell_after_create}")
    print(f"{'='*60}\n")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Solana token launch toolkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --env-file devnet.env --verbose
  python main.py --show-config
        """,
    )

    parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file to load (default: .env)",
    )
    parser.add_argument(
        "--show-config",
        action="store_true",
        help="Show configuration and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()
    load_dotenv(args.env_file)
    setup_logging(args.verbose)

    if args.show_config:
        return show_config()

    return asyncio.run(run(os.environ))


if __name__ == "__main__":
    sys.exit(main())
