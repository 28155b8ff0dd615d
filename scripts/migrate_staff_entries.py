#!/usr/bin/env python3
"""
One-time script to rewrite legacy staff entries as structured records.

Early builds stored accepted/declined staff as bare "provider:subject"
strings. This script converts every such entry into a structured response
record so that only one storage shape remains.

Usage:
    python scripts/migrate_staff_entries.py [--dry-run]

Options:
    --dry-run    Show what would be migrated without making changes
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from staffing.core.database import create_db_and_tables, engine
from staffing.staff.responses import migrate_legacy_entries, reconcile_role_stats


def main(dry_run: bool = False):
    """Migrate legacy entries, then bring role_stats back in line."""
    create_db_and_tables()

    with Session(engine) as session:
        stats = migrate_legacy_entries(session, dry_run=dry_run)

        prefix = "Would migrate" if dry_run else "Migrated"
        print(f"{prefix} {stats['entries']} entries across {stats['events']} events")
        if stats["skipped"]:
            print(f"Skipped {stats['skipped']} events changed during migration; run again")

        if not dry_run:
            reconciled = reconcile_role_stats(session)
            print(f"Checked role_stats on {reconciled['checked']} events, repaired {reconciled['repaired']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Migrate legacy staff entries")
    parser.add_argument("--dry-run", action="store_true", help="Show changes without writing")
    args = parser.parse_args()
    main(dry_run=args.dry_run)
