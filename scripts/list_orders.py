#!/usr/bin/env python3
"""List orders held by a running relayer.

Usage:
    python scripts/list_orders.py [--status active] [--limit 20] [--json]

Options:
    --status   Only show orders with this status
    --maker    Only show orders from this maker
    --limit    Page size (default: 20, max: 100)
    --offset   Page offset (default: 0)
    --json     Print the raw orders as JSON
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import httpx
from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def format_order(order: dict) -> str:
    """One line per order."""
    fields = order["order"]
    return (
        f"{order['orderHash'][:18]}...  {order['status']:<10} "
        f"{fields['makingAmount']:>24} -> {fields['takingAmount']:<24} "
        f"{order.get('createdAt') or '-'}"
    )


async def list_orders(base_url: str, params: dict) -> dict:
    async with httpx.AsyncClient(base_url=base_url, timeout=30.0) as client:
        health = await client.get("/health")
        if health.status_code != 200:
            raise RuntimeError(f"Relayer at {base_url} is not healthy")

        response = await client.get("/api/orders", params=params)
        body = response.json()
        if not body.get("success"):
            raise RuntimeError(body.get("error", {}).get("message", "Failed to list orders"))
        return body["data"]


def main():
    parser = argparse.ArgumentParser(description="List relayer orders")
    parser.add_argument("--url", default=os.getenv("RELAYER_URL", "http://localhost:3000"))
    parser.add_argument("--status", default=None)
    parser.add_argument("--maker", default=None)
    parser.add_argument("--limit", type=int, default=20)
    parser.add_argument("--offset", type=int, default=0)
    parser.add_argument("--json", action="store_true", help="Print raw JSON")
    args = parser.parse_args()

    params = {"limit": args.limit, "offset": args.offset}
    if args.status:
        params["status"] = args.status
    if args.maker:
        params["maker"] = args.maker

    try:
        data = asyncio.run(list_orders(args.url, params))
    except (httpx.HTTPError, RuntimeError) as e:
        logger.error(f"Failed to list orders: {e}")
        return 1

    if args.json:
        print(json.dumps(data["orders"], indent=2))
        return 0

    print(f"Orders {args.offset + 1}-{args.offset + len(data['orders'])} of {data['total']}")
    print("-" * 100)
    for order in data["orders"]:
        print(format_order(order))
    if data["hasMore"]:
        print(f"... more available (--offset {args.offset + args.limit})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
