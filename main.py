# main.py
"""CLI entry point for the story workflow gateway."""

from __future__ import annotations

import argparse

import uvicorn

from config import settings
from utils.logging import setup_logging


def main() -> None:
    """Parse command-line arguments and start the HTTP server."""
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default=settings.API_HOST, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.API_PORT)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    setup_logging(args.log_level)
    uvicorn.run(
        "api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
