#!/usr/bin/env python3
"""Entry point for the Trinity relayer service.

This module provides the main entry point for the relayer that runs as a
containerized backend in either production (ROFL) or local testing mode.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from trinity_relayer.exceptions import NonceSyncError, SigningError  # noqa: E402
from trinity_relayer.relayer import TrinityRelayer  # noqa: E402


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Trinity Relayer - Relay 2-of-3 cross-chain consensus proofs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  ARBITRUM_RPC_URL           - RPC endpoint for the home chain
  CONSENSUS_CONTRACT_ADDRESS - TrinityConsensusVerifier address
  SOLANA_RPC_URL             - Solana JSON-RPC endpoint
  TON_ENDPOINT               - TON Center jsonRPC endpoint
  TON_API_KEY                - TON Center API key (optional)
  PRIVATE_KEY                - Validator key for local mode (required with --local)
  HOME_POLLING_INTERVAL      - Home chain event polling interval (default: 4)
  SOLANA_POLLING_INTERVAL    - Solana polling interval (default: 5)
  TON_POLLING_INTERVAL       - TON polling interval (default: 8)
  LOG_LEVEL                  - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--local",
        action="store_true",
        default=False,
        help="Run in local mode without ROFL utilities (for testing)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Main entry point for the Trinity relayer.

    Parses startup arguments, loads configuration from environment,
    and runs the relayer until interrupted.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()
    args = parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)

    if mode_msg := ("(LOCAL MODE)" if args.local else ""):
        logger.info(f"=== Trinity Relayer Starting {mode_msg} ===")
        logger.info("Local mode enabled: ROFL utilities disabled")
    else:
        logger.info("=== Trinity Relayer Starting ===")

    try:
        relayer = TrinityRelayer.from_env(local_mode=args.local)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, relayer.request_shutdown)

        await relayer.run()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - ARBITRUM_RPC_URL: RPC endpoint for the home chain")
        logger.error("  - CONSENSUS_CONTRACT_ADDRESS: TrinityConsensusVerifier address")
        logger.error("  - SOLANA_RPC_URL: Solana JSON-RPC endpoint")
        logger.error("  - TON_ENDPOINT: TON Center jsonRPC endpoint")
        if args.local:
            logger.error("  - PRIVATE_KEY: Required for local mode")
        sys.exit(1)

    except (SigningError, NonceSyncError) as e:
        logger.error(f"Startup Error: {e}")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
