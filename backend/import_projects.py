#!/usr/bin/env python3
"""
Seed projects from CSV. Bulk asset imports only link to existing projects.

Usage:
    python import_projects.py --file data/templates/projects_template.csv
    CSV: project_ref_number, project_title, solution_principal, warranty,
         preventive_maintenance, start_date, end_date
"""

import argparse
import asyncio
import csv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from assettrack.db import close_db, get_db
from assettrack.db_inventory import get_project_by_ref, insert_project

OPTIONAL_COLUMNS = (
    "project_title",
    "solution_principal",
    "warranty",
    "preventive_maintenance",
    "start_date",
    "end_date",
)


async def run(filepath: str) -> int:
    path = Path(filepath)
    if not path.exists():
        print(f"Error: file not found: {path}")
        return 0
    db = await get_db()
    count = 0
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            for row in reader:
                ref = (row.get("project_ref_number") or "").strip()
                if not ref:
                    continue
                if await get_project_by_ref(db, ref):
                    print(f"  = {ref} already exists")
                    continue
                extra = {c: (row.get(c) or "").strip() or None for c in OPTIONAL_COLUMNS}
                project_id = await insert_project(db, ref, **extra)
                count += 1
                print(f"  + project_id={project_id} {ref} {extra['project_title'] or ''}")
    finally:
        await close_db()
    return count


def main():
    parser = argparse.ArgumentParser(description="Import projects from CSV")
    parser.add_argument("--file", required=True, help="Path to CSV")
    args = parser.parse_args()
    n = asyncio.run(run(args.file))
    print(f"Imported {n} projects.")


if __name__ == "__main__":
    main()
