"""
Aion entry point.

This file handles startup concerns (arg-parsing, logging) and launches the appropriate interface
(API only, or API plus the interactive CLI).
"""

import argparse
import logging
import sys
import threading
from pathlib import Path

from aion.api.app import run_api
from aion.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # Every backend call goes through httpx; its request lines are noise at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the Aion application.

    This function sets up the command-line interface, initializes logging, and starts the
    application in either API or CLI mode.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the Aion coding agent")
    parser.add_argument(
        "--mode",
        choices=["api", "cli"],
        type=str.lower,
        default="api",
        help="Launch the REST API only, or the API plus an interactive CLI (default: api)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    workspace = Path(settings.WORKSPACE_DIR).expanduser().resolve()
    if not workspace.is_dir():
        logger.error("Workspace directory does not exist: %s", workspace)
        sys.exit(1)

    logger.info("Starting Aion [%s mode] in %s", args.mode, workspace)
    logger.debug("Settings: %s", settings.model_dump(exclude={"API_KEY"}))

    if args.mode == "api":
        run_api(host="0.0.0.0", port=settings.API_PORT, reload=settings.DEBUG)
        return

    # Start API server in a separate thread
    api_thread = threading.Thread(
        target=run_api,
        kwargs={
            "host": "127.0.0.1",
            "port": settings.API_PORT,
            "reload": False,  # Reload doesn't work well with threading
            "log_level": "warning",
        },
        daemon=True,
    )
    api_thread.start()

    # Lazy import to avoid client dependencies if not needed
    from aion.client.cli import run_cli  # pylint: disable=import-outside-toplevel

    # Run CLI in main thread
    run_cli()


if __name__ == "__main__":
    main()
