#!/usr/bin/env python3
"""
Index Rebuild Utility

Checks the secondary indexes of a document store against its documents and,
unless --check-only is given, drops and re-derives them.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from docvec.core.config import BACKEND_KINDS, get_document_backend
from docvec.core.errors import ConfigurationError, MaintenanceError
from docvec.core.maintenance import MaintenanceReport, check_index_consistency, rebuild_indexes


def format_report(report: MaintenanceReport) -> str:
    """Format a maintenance report for display."""
    lines = [f"Operation: {report.operation}", f"Table: {report.table}"]
    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.issues_found > 0:
        lines.append(f"Status: ISSUES FOUND ({report.issues_found} issues)")
    else:
        lines.append("Status: SUCCESS")

    lines.append(f"Documents: {report.documents}")
    lines.append(f"Index entries: {report.entries}")

    # Don't flood output
    for title, items in (("Missing entries", report.missing_entries),
                         ("Stale entries", report.stale_entries),
                         ("Corrupt records", report.corrupt_records)):
        if items:
            lines.append(f"{title}: {len(items)}")
            for item in items[:5]:
                lines.append(f"  - {item}")

    for action in report.actions_taken:
        lines.append(f"  - {action}")

    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Check or rebuild the secondary indexes of a document store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --check-only                       # Report index drift for every table
  %(prog)s --table users                      # Rebuild the indexes of one table
  %(prog)s --backend file --path ./data/docs  # Rebuild a file-backed store
  %(prog)s --compact                          # Rebuild, then compact storage

Environment variables:
- DOCVEC_BACKEND=kv|file (default kv)
- DOCVEC_DB_PATH=./data/docvec.db (kv backend location)
- DOCVEC_DATA_DIR=./data/docvec (file backend location)
        """
    )
    parser.add_argument("--backend", choices=BACKEND_KINDS, help="Storage backend (default: DOCVEC_BACKEND)")
    parser.add_argument("--path", help="Database file or data directory (default from environment)")
    parser.add_argument("--table", help="Only process this table")
    parser.add_argument("--check-only", action="store_true", help="Report inconsistencies without rebuilding")
    parser.add_argument("--compact", action="store_true", help="Compact storage after rebuilding")
    parser.add_argument("--json", "-j", action="store_true", help="Output reports as JSON")
    parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-error output")
    args = parser.parse_args(argv)

    try:
        backend = get_document_backend(args.backend, args.path)
    except (ConfigurationError, RuntimeError) as e:
        print(f"ERROR: Could not open store: {e}")
        return 1

    try:
        if args.table is not None and args.table not in backend.list_tables():
            raise MaintenanceError(f"Table not found: {args.table}")
        tables = [args.table] if args.table is not None else backend.list_tables()

        if not tables:
            if args.json:
                print(json.dumps({"reports": []}, indent=2))
            elif not args.quiet:
                print("No tables found. Nothing to do.")
            return 0

        reports = [check_index_consistency(backend, table) for table in tables]
        if not args.check_only:
            if not args.quiet and not args.json:
                print(f"Rebuilding indexes of {len(tables)} table(s)...")
            reports.extend(rebuild_indexes(backend, args.table))
            if args.compact:
                backend.compact()
                reports[-1].actions_taken.append(f"Compacted {backend.name} storage")
            reports.extend(check_index_consistency(backend, table) for table in tables)

        if args.json:
            print(json.dumps({"reports": [report.to_dict() for report in reports]}, indent=2, default=str))
        elif not args.quiet:
            for report in reports:
                print(format_report(report))
                print("-" * 40)

        final_checks = reports[-len(tables):]
        if all(report.consistent for report in final_checks):
            if not args.quiet and not args.json:
                print("✓ Indexes consistent")
            return 0
        if not args.json:
            print("Indexes inconsistent. Run without --check-only to rebuild.")
        return 2

    except MaintenanceError as e:
        print(f"ERROR: Maintenance operation failed: {e}")
        return 1
    finally:
        backend.close()


if __name__ == "__main__":
    sys.exit(main())
