"""Dealerline CRM — operator command line.

Runs the service-layer operations against the configured database.

Usage:
  # Write the sample import file
  python cli.py sample-csv > sample-leads-import.csv

  # Validate and import a CSV of leads (validation report only with --dry-run)
  python cli.py import-csv leads.csv --user-id <uuid>

  # Send the day-1 message to selected leads
  python cli.py send-first-message <lead-id> [<lead-id> ...]

  # Create tag campaigns from the template catalog
  python cli.py seed-templates --user-id <uuid>

  # Stage management (admin)
  python cli.py stages list
  python cli.py stages add "Test Drive" --color "#22c55e" --actor-id <uuid>
  python cli.py stages delete <stage-id> --actor-id <uuid>

  # Counters and analytics
  python cli.py dashboard
  python cli.py analytics --range 30
"""
import argparse
import asyncio
import json
import logging
import sys
import uuid
from datetime import date

from db.connection import dispose_engine, get_db
from db.repositories import pipeline_stages as stages_repo
from errors import CRMError
from services import analytics, campaign_templates, csv_import, first_message, pipeline_board

logger = logging.getLogger(__name__)


async def run_import(path: str, user_id, dry_run: bool) -> int:
    rows = csv_import.parse_csv(path)
    validations = csv_import.validate_rows(rows)
    invalid = [v for v in validations if not v.is_valid]
    warned = [v for v in validations if v.warnings]

    print(f"{len(validations)} row(s): {len(validations) - len(invalid)} valid, {len(invalid)} invalid")
    for v in invalid:
        print(f"  row {v.row}: {'; '.join(v.errors)}")
    for v in warned:
        print(f"  row {v.row} (warning): {'; '.join(v.warnings)}")

    if dry_run:
        return 0
    async with get_db() as session:
        result = await csv_import.import_rows(session, validations, user_id)
    print(result.summary())
    return 0 if result.success_count or not result.total else 1


async def run_send_first_message(lead_ids: list) -> int:
    async with get_db() as session:
        result = await first_message.send_first_message(session, lead_ids)
    print(result.summary())
    return 0


async def run_seed(user_id, names) -> int:
    async with get_db() as session:
        outcomes = await campaign_templates.seed_from_catalog(session, user_id, names or None)
    for identifier, outcome in outcomes.items():
        print(f"  {identifier}: {outcome}")
    return 0


async def run_stages(args) -> int:
    async with get_db() as session:
        if args.stage_command == "list":
            for stage, count in await stages_repo.lead_counts(session):
                print(f"  {stage.order_position:>3}  {stage.name:<24} {stage.color}  {count} lead(s)  {stage.id}")
        elif args.stage_command == "add":
            stage = await pipeline_board.create_stage(session, args.actor_id, args.name, args.color)
            print(f"Created stage {stage.name!r} at position {stage.order_position}")
        elif args.stage_command == "delete":
            await pipeline_board.delete_stage(session, args.actor_id, args.stage_id)
            print(f"Deleted stage {args.stage_id}")
    return 0


async def run_dashboard() -> int:
    async with get_db() as session:
        stats = await analytics.dashboard(session)
    print(json.dumps(stats.model_dump(), indent=2))
    return 0


async def run_analytics(preset: str, start, end) -> int:
    start_at, end_at = analytics.date_range(preset, start, end)
    async with get_db() as session:
        metrics = await analytics.message_metrics(session, start_at, end_at)
        volume = await analytics.message_volume(session, start_at, end_at)
        funnel = await analytics.pipeline_funnel(session)
        active = await analytics.active_enrollments(session)
    print(json.dumps({
        "range": [start_at.isoformat(), end_at.isoformat()],
        "metrics": metrics.model_dump(),
        "active_enrollments": active,
        "volume": [p.model_dump(mode="json") for p in volume],
        "funnel": [s.model_dump() for s in funnel],
    }, indent=2))
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dealerline CRM operations")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("sample-csv", help="Print the sample import CSV")

    imp = sub.add_parser("import-csv", help="Validate and import a leads CSV")
    imp.add_argument("path")
    imp.add_argument("--user-id", type=uuid.UUID, default=None, help="Creator recorded on imported leads")
    imp.add_argument("--dry-run", action="store_true", help="Only print the validation report")

    send = sub.add_parser("send-first-message", help="Tag leads Initial_Message and fire the day-1 webhook")
    send.add_argument("lead_ids", nargs="+", type=uuid.UUID)

    seed = sub.add_parser("seed-templates", help="Create tag campaigns from the template catalog")
    seed.add_argument("--user-id", type=uuid.UUID, default=None)
    seed.add_argument("--name", action="append", default=[], help="Template name or identifier (repeatable)")

    stages = sub.add_parser("stages", help="Pipeline stage management")
    stage_sub = stages.add_subparsers(dest="stage_command", required=True)
    stage_sub.add_parser("list")
    add = stage_sub.add_parser("add")
    add.add_argument("name")
    add.add_argument("--color", default=stages_repo.DEFAULT_COLOR)
    add.add_argument("--actor-id", type=uuid.UUID, required=True)
    delete = stage_sub.add_parser("delete")
    delete.add_argument("stage_id", type=uuid.UUID)
    delete.add_argument("--actor-id", type=uuid.UUID, required=True)

    sub.add_parser("dashboard", help="Print dashboard counters")

    report = sub.add_parser("analytics", help="Print message metrics, volume and funnel")
    report.add_argument("--range", dest="preset", default="7", choices=["7", "30", "90", "custom"])
    report.add_argument("--start", type=date.fromisoformat, default=None)
    report.add_argument("--end", type=date.fromisoformat, default=None)

    return parser


async def _main(args) -> int:
    try:
        if args.command == "import-csv":
            return await run_import(args.path, args.user_id, args.dry_run)
        if args.command == "send-first-message":
            return await run_send_first_message(args.lead_ids)
        if args.command == "seed-templates":
            return await run_seed(args.user_id, args.name)
        if args.command == "stages":
            return await run_stages(args)
        if args.command == "dashboard":
            return await run_dashboard()
        if args.command == "analytics":
            return await run_analytics(args.preset, args.start, args.end)
    except CRMError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()
    return 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = _build_arg_parser()
    args = parser.parse_args()

    if args.command == "sample-csv":
        print(csv_import.sample_csv())
    elif args.command:
        sys.exit(asyncio.run(_main(args)))
    else:
        parser.print_help()
        sys.exit(1)
