"""
deckbridge - Entry Point

Run with: python -m deckbridge
"""

import argparse
import asyncio
import logging
import sys

from deckbridge import __version__
from deckbridge.config import DECK_PORT, PlayoutSettings
from deckbridge.server import DeckBridgeServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="deckbridge",
        description="deckbridge - drive a CasparCG server from HyperDeck-protocol controllers",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=DECK_PORT,
        help=f"Deck protocol port (default: {DECK_PORT})",
    )

    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--caspar-host",
        type=str,
        default=None,
        help="CasparCG host (default: $CASPAR_HOST or 127.0.0.1)",
    )

    parser.add_argument(
        "--caspar-port",
        type=int,
        default=None,
        help="CasparCG AMCP port (default: $CASPAR_PORT or 5250)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def build_playout_settings(args: argparse.Namespace) -> PlayoutSettings:
    """Environment settings with command line overrides applied."""
    settings = PlayoutSettings.from_env()
    if args.caspar_host:
        settings.host = args.caspar_host
    if args.caspar_port is not None:
        settings.port = args.caspar_port
    return settings


async def run_server(host: str, port: int, playout: PlayoutSettings) -> None:
    """Start and run the deckbridge server."""
    server = DeckBridgeServer(host=host, port=port, playout=playout)
    await server.run()


def main() -> int:
    """Main entry point for the application."""
    args = parse_args()
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)
    logger.info("Starting deckbridge %s...", __version__)

    try:
        asyncio.run(run_server(host=args.host, port=args.port, playout=build_playout_settings(args)))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
