#!/usr/bin/env python3
"""
Build the catalog SQLite database from a JSON Lines seed file.

Each line is either a category record ({"kind": "category", "name": ...,
"subcategories": [...]}) or a product record (name, category, selling_rate,
optional id, brand, model_number, quantity, cost_rate, status, warranty,
subcategory and an attributes object).

Usage:
    python scripts/build_database.py [--seed PATH] [--output PATH]

The server builds the database on first start if it is missing; run this to
rebuild it explicitly.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add parent directory to path for imports when running as script
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pcparts_catalog.config import DB_PATH, SEED_PATH
from pcparts_catalog.db.connection import build_database


def main():
    parser = argparse.ArgumentParser(description="Build catalog database")
    parser.add_argument(
        "--seed",
        type=Path,
        default=SEED_PATH,
        help=f"JSON Lines seed file (default: {SEED_PATH})",
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=DB_PATH,
        help=f"Output database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress output",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO, format="%(message)s")

    if not args.seed.exists():
        print(f"Error: Seed file not found: {args.seed}")
        return 1

    if args.output.exists():
        args.output.unlink()

    start = time.time()
    try:
        counts = build_database(args.seed, args.output)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print(f"Categories: {counts['categories']:,}")
        print(f"Subcategories: {counts['subcategories']:,}")
        print(f"Products: {counts['products']:,}")
        print(f"Built in {time.time() - start:.2f}s")
        print(f"Output: {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
