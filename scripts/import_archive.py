import os
import sys
import json
import argparse

# Add parent directory to path to allow imports from okr_tracker
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from okr_tracker.database import create_db_and_tables
from okr_tracker.importer.options import ImportOptions, InvalidImportOptions
from okr_tracker.models import DuplicateStrategy
from okr_tracker.services.import_service import ImportRejected, run_archive_import


def build_parser():
    parser = argparse.ArgumentParser(description="Import a goal-tracking export archive.")
    parser.add_argument("path", help="Path to the .zip export")
    parser.add_argument("--tenant", required=True, help="Tenant to import into")
    parser.add_argument("--user", required=True, help="User recorded as the importer")
    parser.add_argument("--email", help="E-mail for check-ins without an owner")
    parser.add_argument(
        "--strategy", choices=[s.value for s in DuplicateStrategy], default=DuplicateStrategy.SKIP.value,
        help="What to do with records that already exist",
    )
    parser.add_argument("--no-check-ins", action="store_true", help="Do not import check-ins")
    parser.add_argument("--no-teams", action="store_true", help="Do not create missing teams")
    parser.add_argument("--fiscal-start", type=int, default=1, help="First month of the fiscal year (1-12)")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        options = ImportOptions.from_form(
            tenant_id=args.tenant,
            user_id=args.user,
            user_email=args.email,
            duplicate_strategy=args.strategy,
            fiscal_year_start_month=args.fiscal_start,
            import_check_ins=not args.no_check_ins,
            import_teams=not args.no_teams,
        )
    except InvalidImportOptions as e:
        print(e, file=sys.stderr)
        return 2

    with open(args.path, "rb") as f:
        data = f.read()

    create_db_and_tables()
    try:
        result = run_archive_import(data, options, file_name=os.path.basename(args.path))
    except ImportRejected as e:
        print(f"Import rejected: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(f"Import {result.status.value}")
        for key, value in vars(result.summary).items():
            print(f"  {key}: {value}")
        for message in result.errors:
            print(f"ERROR: {message}")
        for message in result.warnings:
            print(f"WARNING: {message}")
        print(f"{len(result.skipped_items)} items skipped.")

    return 1 if result.status.value == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())
