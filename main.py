#!/usr/bin/env python3
"""
Blocksync - Time block reconciliation

Main entry point for Blocksync. Runs a sync of the locally stored time
blocks against the remote time-log service, exports the resulting report,
and publishes grouped suggestions for blocks that were never logged.
"""

import argparse
import json
import logging
import sys
import time
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from blocksync import __version__
from blocksync.config import ConfigManager, Settings
from blocksync.models import FocusRange, MergeReport
from blocksync.storage import StorageManager
from blocksync.timelog import (
    RetryPolicy,
    TimeLogClient,
    TimeLogError,
    TimeLogSyncService,
    build_push_suggestions,
    differences_to_csv,
)


def setup_logging(config: ConfigManager):
    """Configure logging for the application."""
    level = getattr(logging, str(config.get("logging.level", "INFO")).upper(), logging.INFO)
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.log_filename)
        ]
    )


def parse_focus_week(value: Optional[str]) -> Optional[FocusRange]:
    """
    Turn any date into the Monday-to-Sunday week containing it.

    Args:
        value: Date string in YYYY-MM-DD format

    Returns:
        FocusRange for that week, or None if no value was given
    """
    if not value:
        return None
    day = date.fromisoformat(value)
    monday = day - timedelta(days=day.weekday())
    return FocusRange(start=monday, end=monday + timedelta(days=6))


def parse_from_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.combine(date.fromisoformat(value), datetime.min.time(), tzinfo=timezone.utc)


def build_service(config: ConfigManager) -> TimeLogSyncService:
    """Sync service whose clients use the retry settings from the configuration."""

    def client_factory(settings):
        return TimeLogClient.from_settings(
            settings,
            retry_policy=RetryPolicy(max_retries=config.max_retries, base_delay=config.base_delay),
            create_retry_policy=RetryPolicy(
                max_retries=config.create_max_retries,
                base_delay=config.create_base_delay,
            ),
            timeout=config.request_timeout,
        )

    return TimeLogSyncService(client_factory=client_factory, source=config.time_log_source)


def resolve_settings(config: ConfigManager, storage: StorageManager) -> Settings:
    """
    Settings used for both syncing and publishing.

    The configuration file wins when it names a TimeLog base URL; otherwise
    the settings persisted by the last sync are used. The API key always
    comes from the configuration (or its environment fallback) since it is
    never persisted.
    """
    settings = config.settings
    stored_settings = storage.load_settings()
    if stored_settings is not None and not config.get("settings.timeLogBaseUrl"):
        settings = stored_settings.model_copy(update={"time_log_api_key": settings.time_log_api_key})
    return settings


def print_report(report: MergeReport):
    summary = report.summary
    print("\n" + "=" * 60)
    print("TimeLog Sync Report")
    print("=" * 60)
    print(f"Downloaded:  {summary.downloaded}")
    print(f"Created:     {summary.created}")
    print(f"Identical:   {summary.identical}")
    print(f"Differences: {summary.differences}")

    for diff in report.differences:
        local_date = diff.local.date if diff.local else "-"
        print(f"  [{diff.type.value}] {local_date}: {diff.message}")

    if report.recommendation_date:
        print(
            f"\nLocal blocks have unsynced edits dating back to "
            f"{report.recommendation_date.date().isoformat()}. "
            f"Consider a full refresh with --from-date."
        )
    if report.unsynced_weekly_blocks:
        print(f"\n{len(report.unsynced_weekly_blocks)} block(s) in the focus week are not synced yet.")


def run_sync(config: ConfigManager, args) -> MergeReport:
    """
    Sync stored blocks with the remote time log and store the result.
    """
    focus_range = parse_focus_week(args.focus_week)
    service = build_service(config)

    with StorageManager(config.database_filename) as storage:
        storage.initialize_database()
        settings = resolve_settings(config, storage)

        blocks = storage.load_blocks()
        last_sync_date = storage.get_last_sync_date()
        logging.info(f"Loaded {len(blocks)} blocks, last sync: {last_sync_date or 'never'}")

        started_at = datetime.now(timezone.utc)
        start_time = time.time()
        try:
            result = service.sync(
                settings,
                blocks,
                now=started_at,
                last_sync_date=last_sync_date,
                focus_range=focus_range,
                limit_to_focus_range=args.limit_to_focus,
                from_date=parse_from_date(args.from_date),
            )
        except TimeLogError as e:
            storage.log_sync_run(
                started_at,
                success=False,
                error_message=str(e),
                execution_time_ms=int((time.time() - start_time) * 1000),
            )
            raise

        storage.save_blocks(result.blocks)
        storage.save_settings(settings)
        storage.write({"lastReport": result.report.model_dump(mode="json", by_alias=True)})
        storage.log_sync_run(
            started_at,
            success=True,
            summary=result.report.summary,
            execution_time_ms=int((time.time() - start_time) * 1000),
        )
        return result.report


def load_last_report(config: ConfigManager) -> Optional[MergeReport]:
    with StorageManager(config.database_filename) as storage:
        storage.initialize_database()
        raw = storage.read().get("lastReport")
    return MergeReport.model_validate(raw) if raw else None


def export_csv(report: MergeReport, path: str):
    content = differences_to_csv(report.differences)
    if not content:
        print("No differences to export.")
        return
    Path(path).write_text(content, encoding="utf-8")
    logging.info(f"Exported {len(report.differences)} differences to {path}")


def show_suggestions(config: ConfigManager, report: MergeReport, publish: bool = False):
    suggestions = build_push_suggestions(report.unsynced_weekly_blocks, source=config.time_log_source)
    if not suggestions:
        print("No local changes require publishing for this week.")
        return

    for suggestion in suggestions:
        print(
            f"{suggestion.day}  {suggestion.work_item_title or 'Unassigned'}: "
            f"{suggestion.minutes}m across {len(suggestion.blocks)} block(s)"
        )

    if publish:
        with StorageManager(config.database_filename) as storage:
            storage.initialize_database()
            settings = resolve_settings(config, storage)
        responses = build_service(config).publish(settings, suggestions)
        print(f"\nPublished {len(responses)} TimeLog entr{'y' if len(responses) == 1 else 'ies'}.")
        print(json.dumps(responses, indent=2, default=str))


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Blocksync - reconcile calendar time blocks with a remote time log",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --sync                                   # Sync the configured lookback window
  python main.py --sync --focus-week 2025-03-03           # Sync and report on one week
  python main.py --sync --focus-week 2025-03-03 --limit-to-focus
  python main.py --sync --from-date 2025-01-01            # Full refresh from a date
  python main.py --export-csv report.csv                  # Export the last report
  python main.py --suggest --publish                      # Publish unsynced blocks
        """
    )

    parser.add_argument("--config", default="config.yaml", help="Configuration file (default: config.yaml)")
    parser.add_argument("--sync", action="store_true", help="Sync local blocks with the remote time log")
    parser.add_argument("--from-date", type=str, help="Fetch remote entries from this date (YYYY-MM-DD)")
    parser.add_argument("--focus-week", type=str, help="Any date (YYYY-MM-DD) inside the week to focus on")
    parser.add_argument(
        "--limit-to-focus",
        action="store_true",
        help="Only analyze the focus week (delta refresh)"
    )
    parser.add_argument("--export-csv", type=str, metavar="PATH", help="Write report differences to a CSV file")
    parser.add_argument("--suggest", action="store_true", help="Show grouped blocks that need publishing")
    parser.add_argument("--publish", action="store_true", help="Create remote entries for the suggestions")
    parser.add_argument("--version", action="version", version=f"Blocksync {__version__}")

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)
    config = ConfigManager(args.config)
    setup_logging(config)

    try:
        if args.sync:
            report = run_sync(config, args)
            print_report(report)
        else:
            report = load_last_report(config)
            if report is None:
                print("No sync report available. Run with --sync first.")
                return

        if args.export_csv:
            export_csv(report, args.export_csv)

        if args.suggest or args.publish:
            show_suggestions(config, report, publish=args.publish)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")

    except (TimeLogError, ValueError) as e:
        logging.error(f"Blocksync failed: {e}")
        print(f"\nSync failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
