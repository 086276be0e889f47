#!/usr/bin/env python
"""Main entry point for the daybook MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from daybook_mcp.config import config
from daybook_mcp.exceptions import DaybookError
from daybook_mcp.observability import configure_logging, metrics
from daybook_mcp.server.mcp_server import DaybookMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Daybook MCP Server")
    parser.add_argument(
        "--notes-dir",
        help="Note root; must be the top level of a git work tree",
        type=str,
        default=os.environ.get("DAYBOOK_NOTES_DIR"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("DAYBOOK_LOG_LEVEL", "INFO"),
    )
    parser.add_argument(
        "--transport",
        help="MCP transport",
        choices=["stdio", "sse", "streamable-http"],
        default=os.environ.get("DAYBOOK_TRANSPORT", "stdio"),
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.notes_dir:
        config.notes_dir = Path(args.notes_dir)


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    if metrics.save_metrics():
        logging.getLogger(__name__).info("Metrics saved to disk on shutdown")


def main(argv=None):
    """Run the daybook MCP server."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level)
    except OSError as e:
        # Fall back to console logging if the log directory is unusable
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    atexit.register(_save_metrics_on_exit)

    # The note root must already be a git work tree; refuse to start otherwise
    try:
        server = DaybookMcpServer()
        server.initialize()
    except DaybookError as e:
        logger.error(f"Cannot start: {e}")
        sys.exit(1)

    try:
        logger.info(f"Starting daybook MCP server ({args.transport})")
        server.run(transport=args.transport)
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
