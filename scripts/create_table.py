"""
CLI helper to provision the restaurant tracker DynamoDB table and its indexes.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from restaurant_tracker.config import configure_logging, get_settings
from restaurant_tracker.store import DynamoTableClient


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Create the restaurant tracker table")
    parser.add_argument(
        "-t",
        "--table-name",
        type=str,
        default=settings.table_name,
        help="Table name (defaults to TABLE_NAME)",
    )
    parser.add_argument(
        "-e",
        "--endpoint-url",
        type=str,
        default=settings.dynamodb_endpoint_url,
        help="Override the DynamoDB endpoint, e.g. http://localhost:8000",
    )
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Return without waiting for the table to become active",
    )
    args = parser.parse_args()
    if not args.table_name:
        parser.error("a table name is required (--table-name or TABLE_NAME)")

    configure_logging(settings)
    client = DynamoTableClient(
        table_name=args.table_name,
        region=settings.aws_region,
        endpoint_url=args.endpoint_url,
    )
    client.create_table(wait=not args.no_wait)
    return 0


if __name__ == "__main__":
    sys.exit(main())
