"""Main entry point for the EventThreads server."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog

from eventthreads import __version__
from eventthreads.exceptions import ConfigurationError


def setup_logging(debug: bool = False) -> None:
    """Configure structured logging."""
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
    )

    # Keep normal runs readable; allow deep third-party logs only in --debug mode.
    noisy_loggers = ("uvicorn.access", "aiosqlite", "httpx", "httpcore")
    noisy_level = logging.DEBUG if debug else logging.WARNING
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(noisy_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if not debug
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="EventThreads API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version", action="version", version=f"EventThreads {__version__}"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    parser.add_argument("--config-file", type=Path, help="Path to configuration file")

    return parser.parse_args()


async def main() -> None:
    """Main application entry point."""
    args = parse_args()
    setup_logging(debug=args.debug)

    logger = structlog.get_logger()
    logger.info("Starting EventThreads", version=__version__)

    try:
        from eventthreads.api.server import run_api_server
        from eventthreads.config import load_config

        config = load_config(config_file=args.config_file)
        if args.debug:
            config.debug = True

        logger.info(
            "Configuration loaded",
            environment="production" if config.is_production else "development",
            host=config.api_server_host,
            port=config.api_server_port,
            debug=config.debug,
        )

        await run_api_server(config)

    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        sys.exit(1)

    logger.info("EventThreads shutdown complete")


def run() -> None:
    """Synchronous entry point for setuptools."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
