#!/usr/bin/env python3
"""Run the CampusFix API.

Usage:
    python run.py [--host HOST] [--port PORT] [--reload] [--workers N]

Examples:
    python run.py                      # Run with defaults (localhost:8000)
    python run.py --port 8080          # Run on port 8080
    python run.py --reload             # Run with auto-reload for development
    python run.py --workers 4          # Run with 4 worker processes
"""

import argparse

import uvicorn

from campusfix.config import get_settings


def main():
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Run the CampusFix API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Host to bind to (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to bind to (default: {settings.port})",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload on code changes (development mode)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        default=settings.log_level.lower(),
        help="Logging level for uvicorn",
    )

    args = parser.parse_args()

    if args.workers > 1 and settings.feed_backend == "memory":
        parser.error("the in-memory change feed only works with a single worker")

    uvicorn.run(
        "campusfix.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
