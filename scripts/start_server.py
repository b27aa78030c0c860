#!/usr/bin/env python3
"""
Start the RCV results API server.
"""

import argparse
import logging
import socket
import sys
from pathlib import Path

import uvicorn

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from web.main import set_database_path  # noqa: E402

logger = logging.getLogger(__name__)


def find_available_port(host, start_port, max_attempts=10):
    """Return the first port from start_port that can be bound, or None."""
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, port))
            except OSError:
                continue
            return port
    return None


def main():
    parser = argparse.ArgumentParser(description="Start the results API server")
    parser.add_argument(
        "--db", required=True, help="Path to DuckDB database file from process_ballots.py"
    )
    parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--auto-port",
        action="store_true",
        help="Automatically find available port if default is taken",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    db_path = Path(args.db)
    if not db_path.exists():
        logger.error(f"Database file not found: {db_path}")
        print("Run process_ballots.py first to create the database.")
        sys.exit(1)

    # Also exported as RCV_DATABASE_PATH so reload workers pick it up
    set_database_path(str(db_path.absolute()))

    port = args.port
    if args.auto_port:
        available_port = find_available_port(args.host, args.port)
        if available_port is None:
            logger.error(f"No available ports found starting from {args.port}")
            sys.exit(1)
        elif available_port != args.port:
            logger.warning(f"Port {args.port} is taken, using port {available_port}")
        port = available_port

    print("Starting RCV results API server...")
    print(f"Database: {db_path.absolute()}")
    print(f"Results: http://{args.host}:{port}/api/results")
    print("Press Ctrl+C to stop")

    uvicorn.run(
        "web.main:app",
        host=args.host,
        port=port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
