"""Command-line interface for the users API service."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Sequence

import httpx

from users_api.config import Settings, load_settings
from users_api.database import Database
from users_api.errors import StoreError

logger = logging.getLogger("users_api.main")

_DEFAULT_SERVICE_URL = "http://localhost:3000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users API service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Connect to the database and create the users table")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument(
        "--host",
        default=None,
        help="Bind address for the API (default: HOST or 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API (default: PORT or 3000)",
    )

    check_parser = subparsers.add_parser(
        "check", help="Probe the /health endpoint of a running service"
    )
    check_parser.add_argument(
        "--url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the running service (default: {_DEFAULT_SERVICE_URL})",
    )
    check_parser.add_argument(
        "--timeout",
        type=float,
        default=5.0,
        help="Request timeout in seconds (default: 5)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "check"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _connect_database(settings: Settings) -> Database:
    """Connect and ensure the schema, exiting the process on failure."""

    database = Database.from_settings(settings)
    try:
        database.connect()
        database.initialize()
    except StoreError as exc:
        logger.error("Database connection failed: %s", exc)
        database.close()
        raise SystemExit(1) from exc
    return database


def _serve(*, settings: Settings, host: str, port: int) -> None:
    from users_api.service import create_app
    import uvicorn

    database = _connect_database(settings)
    app = create_app(database=database, settings=settings)

    logger.info("Server running on port %s", port)
    logger.info("Metrics available at http://localhost:%s/metrics", port)
    logger.info("Health check at http://localhost:%s/health", port)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


def _check(url: str, timeout: float) -> int:
    endpoint = url.rstrip("/") + "/health"
    try:
        response = httpx.get(endpoint, timeout=timeout)
    except httpx.HTTPError as exc:
        print(f"Failed to contact service at {endpoint}: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return 1

    print(f"{payload.get('status', 'unknown')} (uptime {payload.get('uptime', '?')}s)")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "serve":
        _serve(
            settings=settings,
            host=args.host or settings.host,
            port=args.port or settings.port,
        )
    elif args.command == "init-db":
        database = _connect_database(settings)
        database.close()
        print("Database initialisation complete.")
    elif args.command == "check":
        raise SystemExit(_check(args.url, args.timeout))


if __name__ == "__main__":
    main()
