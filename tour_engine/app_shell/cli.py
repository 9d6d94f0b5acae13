import argparse
import logging
import sys
from datetime import datetime

from tour_engine.adapters.clock import SystemClock
from tour_engine.adapters.sqlite.migrator import SQLiteMigrator
from tour_engine.adapters.sqlite_db import SQLiteTourSessionRepo
from tour_engine.api.deps import Settings, build_attribution
from tour_engine.components.analytics import SummaryQuery, run_summary
from tour_engine.components.completion import TourCompletionService
from tour_engine.rules.loader import load_rules
from tour_engine.rules.models import Rules

logger = logging.getLogger("cli")


def get_rules(settings: Settings) -> Rules:
    if not settings.rules_path.exists():
        logger.error("Rules file %s not found.", settings.rules_path)
        sys.exit(1)
    return load_rules(settings.rules_path)


def handle_migrate(settings: Settings, args: argparse.Namespace) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    migrator = SQLiteMigrator(settings.db_path, str(settings.migrations_dir))
    applied = migrator.run_migrations()
    print(f"Applied {len(applied)} migrations.")


def handle_summary(settings: Settings, args: argparse.Namespace) -> None:
    repo = SQLiteTourSessionRepo(settings.db_path)
    query = SummaryQuery(
        property_id=args.property_id,
        start=datetime.fromisoformat(args.start) if args.start else None,
        end=datetime.fromisoformat(args.end) if args.end else None,
        recent_limit=args.limit,
    )
    summary = run_summary(query, repo)
    totals = summary.totals
    print(f"Sessions:        {totals.total_sessions}")
    print(f"Completed:       {totals.completed_sessions} ({totals.completion_rate:.0%})")
    print(f"Avg engagement:  {totals.average_engagement_score}")
    print(f"Events sent:     {totals.events_sent} ({totals.event_rate:.0%})")
    for session in summary.recent_sessions:
        state = "completed" if session.completed else (session.completion_reason or "open")
        print(
            f"  {session.session_id}  {session.property_id}  {session.tour_type}  "
            f"{state}  engagement={session.engagement_score}"
        )


def handle_retry(settings: Settings, args: argparse.Namespace) -> None:
    rules = get_rules(settings)
    service = TourCompletionService(
        repo=SQLiteTourSessionRepo(settings.db_path),
        attribution=build_attribution(settings, rules),
        clock=SystemClock(),
        rules=rules,
    )
    report = service.retry_pending_dispatches(limit=args.limit)
    print(f"Attempted {report.attempted}, sent {report.sent}, failed {report.failed}.")
    if report.failed:
        sys.exit(2)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tour Engagement Engine CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # summary
    summary_parser = subparsers.add_parser("summary", help="Print the tour analytics summary")
    summary_parser.add_argument("--property-id", help="Restrict to one property")
    summary_parser.add_argument("--start", help="ISO start time (inclusive)")
    summary_parser.add_argument("--end", help="ISO end time (inclusive)")
    summary_parser.add_argument("--limit", type=int, default=20, help="Recent sessions to list")

    # retry-dispatch
    retry_parser = subparsers.add_parser(
        "retry-dispatch", help="Re-send attribution events for finalized sessions"
    )
    retry_parser.add_argument("--limit", type=int, default=100, help="Max sessions per pass")

    return parser


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.command == "migrate":
        handle_migrate(settings, args)
    elif args.command == "summary":
        handle_summary(settings, args)
    elif args.command == "retry-dispatch":
        handle_retry(settings, args)


if __name__ == "__main__":
    main()
