#!/usr/bin/env python3
"""
Stage (and optionally commit) a career-history export from the command line.

Usage:
    python scripts/run_import.py export.json --workspace ws-1
    python scripts/run_import.py export.json --workspace ws-1 --quick
    python scripts/run_import.py export.json --workspace ws-1 --dry-run
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from career_import.committer import ImportCommitter
from career_import.database import SessionLocal, init_db
from career_import.entity_store import SqlEntityStore
from career_import.errors import ParseFailure
from career_import.orchestrator import ImportOrchestrator
from career_import.parsers import JsonExportParser
from career_import.staging import SqlKeyValueStore, StagingStore


def describe(record) -> str:
    attrs = record.attributes.populated()
    label = next(iter(attrs.values()), "(empty)")
    match = record.suggested_match
    if match and match.is_match:
        suggestion = f"{match.confidence.value} match {match.matched_id} (score {match.score:.0f})"
    else:
        suggestion = "new"
    return f"{record.entity_type.value:<12} {str(label)[:40]:<40} {suggestion:<55} -> {record.decision.value}"


def main():
    parser = argparse.ArgumentParser(
        description="Import a career-history export with duplicate detection"
    )
    parser.add_argument("export", type=Path, help="Path to a JSON export")
    parser.add_argument("--workspace", required=True, help="Workspace to import into")
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Commit immediately using the suggested decisions",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show suggested decisions, then discard the session",
    )

    args = parser.parse_args()

    init_db()
    db = SessionLocal()

    try:
        entity_store = SqlEntityStore(db)
        staging = StagingStore(SqlKeyValueStore(SessionLocal), entity_store)
        orchestrator = ImportOrchestrator(
            JsonExportParser(), staging, ImportCommitter(staging, entity_store)
        )

        try:
            outcome = orchestrator.upload(
                args.workspace, args.export.read_bytes(), args.export.name, args.quick
            )
        except ParseFailure as e:
            print(f"Could not parse {args.export}: {e.reason}")
            sys.exit(1)

        session = outcome.session
        stats = session.stats()

        print("=" * 60)
        print("CAREER IMPORT")
        print("=" * 60)
        print(f"Session: {session.id}")
        print(f"Records: {stats['total_records']}")
        print(f"Suggested duplicates: {stats['duplicates_found']}")
        print(f"Mode: {'DRY RUN' if args.dry_run else 'QUICK' if args.quick else 'STAGE ONLY'}")
        print("=" * 60)

        for record in session.candidates:
            print(describe(record))

        if args.dry_run:
            orchestrator.discard(session.id)
            print("\nSession discarded (dry run).")
        elif args.quick:
            result = orchestrator.commit(session.id)
            print(
                f"\nCreated: {result.committed_count}  Merged: {result.merged_count}  "
                f"Skipped: {result.skipped_count}  Failed: {result.failed_count}"
            )
            for error in result.errors:
                print(f"  {error.candidate_id}: {error.error}")
        else:
            print(f"\nReview and commit session {session.id} through the API.")

    finally:
        db.close()


if __name__ == "__main__":
    main()
