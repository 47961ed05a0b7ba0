#!/usr/bin/env python3
"""
Bulk import asset rows from CSV or JSON and print the summary.

Usage:
    python import_assets.py --file data/assets.csv
    python import_assets.py --file data/assets.json --mode add_peripherals
    JSON: a list of row objects, or {"assets": [...]}
"""

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from assettrack.db import close_db
from assettrack.errors import EmptyBatchError
from assettrack.services.batch_writer import IMPORT_MODES, bulk_import


def load_rows(path: Path) -> list:
    if path.suffix.lower() == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
        return data.get("assets", []) if isinstance(data, dict) else data
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


async def run(filepath: str, mode: str) -> dict | None:
    path = Path(filepath)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return None
    rows = load_rows(path)
    try:
        summary = await bulk_import(rows, import_mode=mode)
    except EmptyBatchError as e:
        print(f"Error: {e}")
        return None
    finally:
        await close_db()
    return summary.model_dump(by_alias=True)


def main():
    parser = argparse.ArgumentParser(description="Bulk import assets from CSV or JSON")
    parser.add_argument("--file", required=True, help="Path to CSV or JSON")
    parser.add_argument("--mode", default="auto", choices=IMPORT_MODES, help="Import mode")
    args = parser.parse_args()
    result = asyncio.run(run(args.file, args.mode))
    if result is None:
        sys.exit(1)
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
