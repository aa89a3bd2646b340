#!/usr/bin/env python3
"""
Solana Block Streamer.

Streams blocks in slot order from a Solana RPC node and prints a one-line
summary per slot.

Usage:
    python scripts/stream_blocks.py --start 250000000 --end 250000050
    python scripts/stream_blocks.py --live --prefetch 10
    python scripts/stream_blocks.py --url https://a,https://b --slot  # Print tip

Endpoints default to SOLANA_RPC_URL / SOLANA_WS_URL from the environment
(or .env), falling back to the public node.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from solana_rpc import (
    ClientConfig,
    SolanaClient,
    SolanaRpcError,
    StreamConfig,
)


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    return logging.getLogger(__name__)


def print_header(config: ClientConfig, stream_config: StreamConfig):
    """Print startup header."""
    print()
    print("=" * 60)
    print("SOLANA BLOCK STREAM")
    print("=" * 60)
    print(f"Endpoints: {', '.join(config.urls)}")
    print(f"Commitment: {config.commitment}")
    end = 'live' if stream_config.live else (stream_config.end or 'tip')
    print(f"Slots: {stream_config.start} -> {end}")
    print(f"Prefetch: {stream_config.prefetch}")
    print("=" * 60)
    print()


def format_block(result) -> str:
    """One-line summary for a stream result."""
    if result.missing:
        return f"{result.slot:>12}  MISSING  {result.reason}"

    block = result.block
    block_time = block.get('blockTime')
    when = datetime.fromtimestamp(block_time).strftime('%H:%M:%S') if block_time else '--:--:--'
    txs = len(block.get('transactions') or [])
    return f"{result.slot:>12}  {when}  {txs:>5} txs  {block.get('blockhash', '')}"


async def run_stream(client: SolanaClient, stream_config: StreamConfig, logger) -> int:
    """Consume the stream until it ends; returns the process exit code."""
    stream = client.create_block_stream(config=stream_config)

    try:
        async with stream:
            async for result in stream:
                print(format_block(result))
    except SolanaRpcError as e:
        logger.error(f"Stream failed: {e}")
        return 1

    metrics = stream.metrics
    print()
    print(f"Blocks: {metrics.blocks_emitted}, missing: {metrics.missing_slots}, "
          f"fetches: {metrics.fetches_started}, "
          f"rate: {metrics.blocks_per_second:.1f} blocks/s")
    return 0


async def run(args, logger) -> int:
    config = ClientConfig.from_env()
    if args.url:
        config.urls = [u.strip() for u in args.url.split(',') if u.strip()]
    if args.ws:
        config.ws_url = args.ws
    if args.commitment:
        config.commitment = args.commitment

    async with SolanaClient(config) as client:
        if args.slot:
            print(await client.get_slot())
            return 0

        stream_config = StreamConfig(
            start=args.start if args.start is not None else 0,
            end=args.end,
            live=args.live,
            prefetch=args.prefetch,
        )

        if args.start is None:
            # Default to the last few slots below the tip
            tip = await client.get_slot()
            stream_config.start = max(0, tip - args.count)
            if stream_config.end is None and not stream_config.live:
                stream_config.end = tip

        print_header(client.config, stream_config)
        return await run_stream(client, stream_config, logger)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Solana Block Streamer - ordered blocks with prefetch'
    )
    parser.add_argument(
        '--url', '-u',
        type=str,
        default=None,
        help='Comma-separated RPC endpoints (default: SOLANA_RPC_URL)'
    )
    parser.add_argument(
        '--ws',
        type=str,
        default=None,
        help='WebSocket endpoint (default: SOLANA_WS_URL)'
    )
    parser.add_argument(
        '--commitment', '-c',
        type=str,
        choices=['processed', 'confirmed', 'finalized'],
        default=None,
        help='Commitment level (default: SOLANA_COMMITMENT or finalized)'
    )
    parser.add_argument(
        '--start', '-s',
        type=int,
        default=None,
        help='First slot (default: tip minus --count)'
    )
    parser.add_argument(
        '--end', '-e',
        type=int,
        default=None,
        help='Exclusive end slot (default: tip at start)'
    )
    parser.add_argument(
        '--count', '-n',
        type=int,
        default=20,
        help='Slots below the tip to stream when --start is omitted (default: 20)'
    )
    parser.add_argument(
        '--live',
        action='store_true',
        help='Follow the tip forever'
    )
    parser.add_argument(
        '--prefetch', '-p',
        type=int,
        default=30,
        help='Prefetch window (default: 30)'
    )
    parser.add_argument(
        '--slot',
        action='store_true',
        help='Print the current slot and exit'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()
    logger = setup_logging(args.verbose)

    try:
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        print()
        print("Stopped.")
        return 0
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
