"""credcache -- command-line entry point.

Usage::

    python -m credcache [--config PATH] get SERVICE KEY [KEY ...]
    python -m credcache [--config PATH] set SERVICE KEY VALUE [--json]
    python -m credcache [--config PATH] delete SERVICE KEY

Every command:
    1. Loads configuration from YAML (or defaults)
    2. Creates the platform secret backend
    3. Registers the service and waits for its credentials to load
    4. Reads, writes or deletes, then waits for backend jobs to finish
    5. Prints the result as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from credcache.config import Settings, load_settings
from credcache.keys import StorageKey
from credcache.manager import CredentialsManager

logger = logging.getLogger("credcache")


# ---------------------------------------------------------------------------
# Integration seams -- module-level names so tests can patch them.
# ---------------------------------------------------------------------------


def load_config(config_path: str | None) -> Settings:
    """Load settings from a YAML file or the built-in defaults."""
    path = Path(config_path) if config_path else None
    return load_settings(config_path=path)


def create_backend(settings: Settings) -> Any:
    """Create the platform-appropriate secret backend."""
    from credcache.backends import create_backend as _create_backend

    return _create_backend(settings)


def create_manager(settings: Settings, backend: Any) -> CredentialsManager:
    return CredentialsManager(
        backend,
        allow_insecure_fallback=settings.allow_insecure_fallback(),
    )


# ---------------------------------------------------------------------------
# CLI argument parsing
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Parameters
    ----------
    argv:
        Argument list.  Defaults to ``sys.argv[1:]`` when ``None``.
    """
    parser = argparse.ArgumentParser(
        prog="credcache",
        description="Read and write credentials in the platform secret store",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    get = sub.add_parser("get", help="Print stored credentials")
    get.add_argument("service")
    get.add_argument("keys", nargs="+", metavar="KEY")

    set_ = sub.add_parser("set", help="Store a credential")
    set_.add_argument("service")
    set_.add_argument("key")
    set_.add_argument("value")
    set_.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Parse VALUE as a JSON object and store it as a bundle",
    )

    delete = sub.add_parser("delete", help="Delete a credential")
    delete.add_argument("service")
    delete.add_argument("key")

    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_command(args: argparse.Namespace, settings: Settings) -> dict[str, Any]:
    """Run one CLI command and return the JSON-serialisable result."""
    backend = create_backend(settings)

    keys = args.keys if args.command == "get" else [args.key]
    async with create_manager(settings, backend) as manager:
        manager.add_service(args.service, keys)
        await manager.wait_for_service(args.service)

        if args.command == "set":
            value: Any = args.value
            if args.json:
                value = json.loads(args.value)
                if not isinstance(value, dict):
                    raise ValueError("--json value must be a JSON object")
                manager.set_bundle(args.service, args.key, value)
            else:
                manager.set_text(args.service, args.key, value)
        elif args.command == "delete":
            manager.set_credentials(StorageKey(args.service, args.key), None)

        await manager.drain()
        return {
            "service": args.service,
            "credentials": {key: manager.credentials(args.service, key) for key in keys},
        }


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """Parse CLI args, run the command and print its result."""
    args = parse_args(argv)
    settings = load_config(args.config)
    logging.basicConfig(
        level=settings.logging.level.upper(),
        format=settings.logging.format,
        stream=sys.stderr,
    )

    try:
        result = asyncio.run(run_command(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    print(json.dumps(result, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
