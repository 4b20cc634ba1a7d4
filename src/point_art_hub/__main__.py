"""Entry point for point-art-hub MCP server."""

import argparse
import asyncio
import logging
import sys

from point_art_hub import __version__
from point_art_hub.config.settings import Settings
from point_art_hub.server import create_server, initialize_services, shutdown_services


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="point-art-hub",
        description="Point Art Hub - Backup, restore and notifications for the shop datastore via MCP",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser.parse_args()


async def main() -> None:
    """Main entry point for the MCP server."""
    # Load settings
    settings = Settings()

    # stdout carries the MCP transport
    logging.basicConfig(
        stream=sys.stderr,
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize services
    await initialize_services(settings)

    # Create and run server
    mcp = create_server()

    try:
        await mcp.run_stdio_async()
    finally:
        await shutdown_services()


def cli() -> None:
    """CLI entry point."""
    # Parse args first (handles --help and --version)
    parse_args()

    asyncio.run(main())


if __name__ == "__main__":
    cli()
