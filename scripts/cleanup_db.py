#!/usr/bin/env python3
"""Relayer database cleanup.

Deletes every order together with its escrow validations and secret
commitments. With --drop the SQLite file itself is removed; restart the
relayer (or run alembic upgrade head) to recreate the tables.

Usage:
    python scripts/cleanup_db.py [--drop] [--yes]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from moleswap.config import get_settings
from moleswap.orders.database import close_db, get_db, init_db
from moleswap.orders.repository import OrderRepository

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def sqlite_path(database_url: str):
    """File behind a SQLite URL, or None for other databases."""
    if not database_url.startswith("sqlite") or ":memory:" in database_url:
        return None
    return Path(database_url.split(":///", 1)[1])


async def delete_orders() -> int:
    await init_db()
    try:
        async with get_db() as session:
            return await OrderRepository(session).delete_all()
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Clean up the relayer database")
    parser.add_argument("--drop", action="store_true", help="Remove the SQLite file")
    parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args()

    database_url = get_settings().database_url
    if not args.yes:
        answer = input(f"Delete all orders in {database_url}? [y/N] ")
        if answer.lower() != "y":
            print("Aborted")
            return 1

    if args.drop:
        path = sqlite_path(database_url)
        if path is None:
            logger.error("--drop only works with a SQLite file database")
            return 1
        if path.exists():
            path.unlink()
            logger.info(f"Removed {path}")
        else:
            logger.info(f"{path} does not exist, nothing to remove")
        path.parent.mkdir(parents=True, exist_ok=True)
        return 0

    deleted = asyncio.run(delete_orders())
    logger.info(f"Deleted {deleted} orders")
    return 0


if __name__ == "__main__":
    sys.exit(main())
