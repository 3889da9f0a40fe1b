"""Command-line inspection of a store.

Usage:
    python -m storedmap_sql [--url URL] indices
    python -m storedmap_sql [--url URL] count INDEX

The URL defaults to STOREDMAP_DATABASE_URL.
"""

import argparse
import asyncio
import logging
import sys

from storedmap_sql.config import get_log_level
from storedmap_sql.errors import StoredMapError
from storedmap_sql.store.index_store import open_store


async def _run(args: argparse.Namespace) -> int:
    """Open the store, run one command, and close it."""
    properties = {"sql.url": args.url} if args.url else {}
    # inspection needs a single connection
    properties |= {"sql.pool.initialSize": "1", "sql.pool.minIdle": "1"}
    store = await open_store(properties)
    try:
        if args.command == "indices":
            for name in sorted(await store.indices()):
                print(name)
        else:
            print(await store.count(args.index))
    finally:
        await store.close()
    return 0


def main() -> int:
    """Parse arguments and run the requested command."""
    parser = argparse.ArgumentParser(
        prog="storedmap-sql", description="Inspect a storedmap-sql store"
    )
    parser.add_argument(
        "--url", default=None, help="Database URL (default: STOREDMAP_DATABASE_URL)"
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("indices", help="List the indices present in the database")
    count = sub.add_parser("count", help="Count the items in an index")
    count.add_argument("index", help="Index name")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, get_log_level()),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    try:
        return asyncio.run(_run(args))
    except StoredMapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
