#!/usr/bin/env python3
"""Run the ChallengeHub API server.

Usage:
    python run.py [--host HOST] [--port PORT] [--reload] [--workers N]

Examples:
    python run.py                      # Run with defaults (localhost:8000)
    python run.py --reload             # Run with auto-reload for development
    python run.py --create-tables      # Create missing tables, then serve
"""

import argparse
import asyncio

import uvicorn


def main():
    parser = argparse.ArgumentParser(
        description="Run the ChallengeHub API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
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
        default="info",
        help="Uvicorn logging level (default: info)",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before serving (development only; use alembic otherwise)",
    )

    args = parser.parse_args()

    if args.create_tables:
        from challengehub.database import close_db, init_db

        async def _create():
            await init_db(create_tables=True)
            await close_db()

        asyncio.run(_create())

    uvicorn.run(
        "challengehub.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers if not args.reload else 1,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
