# app/cli/jobs.py
"""
CLI commands for running scheduled jobs by hand.

Usage:
    python -m app.cli.jobs pipeline
    python -m app.cli.jobs retention --trigger-source manual
    python -m app.cli.jobs preview
    python -m app.cli.jobs history --limit 10
    python -m app.cli.jobs init-db
"""

import argparse
import sys

from dotenv import load_dotenv

load_dotenv()


def get_db_session():
    """Get a database session."""
    from app.database import SessionLocal

    return SessionLocal()


def _monitor(settings):
    from app.services.alerts import AlertDispatcher
    from app.services.job_monitor import JobRunMonitor

    return JobRunMonitor(AlertDispatcher.from_settings(settings))


def cmd_pipeline(args):
    """Run one quick -> deep -> deepest pass."""
    from app.config import get_settings
    from app.services.batch_runner import run_pipeline_pass
    from app.services.classifier_client import ClassificationClient
    from app.services.errors import PipelineRunError

    settings = get_settings()
    db = get_db_session()
    try:
        with ClassificationClient.from_settings(settings) as client:
            summary = run_pipeline_pass(
                db, client, settings, trigger_source=args.trigger_source, monitor=_monitor(settings)
            )
    except PipelineRunError as e:
        print(f"Pipeline run failed: {e.message}")
        sys.exit(1)
    finally:
        db.close()

    if not summary.enabled:
        print("Auto analysis is disabled; nothing processed")
        return

    print("\n=== Pipeline Pass ===\n")
    for stage in summary.stages:
        print(
            f"  {stage.stage}: {stage.total} candidates, {stage.succeeded} succeeded, "
            f"{stage.failed} failed, {stage.skipped} skipped"
        )
    print(f"\nTotal: {summary.total} processed, {summary.succeeded} succeeded, {summary.failed} failed")


def cmd_retention(args):
    """Run one retention pass."""
    from app.config import get_settings
    from app.services.errors import RetentionRunError
    from app.services.retention import run_retention_job

    settings = get_settings()
    db = get_db_session()
    try:
        result = run_retention_job(db, settings, trigger_source=args.trigger_source, monitor=_monitor(settings))
    except RetentionRunError as e:
        print(f"Retention run failed: {e.message}")
        sys.exit(1)
    finally:
        db.close()

    print("\n=== Retention Pass ===\n")
    print(f"Cutoff: {result.cutoff.isoformat()} ({result.retention_hours}h on {result.timestamp_field})")
    print(f"Total posts: {result.total_posts}")
    print(f"Old posts: {result.old_posts}")
    if result.noop:
        print(result.message)
    print(f"Archived: {result.posts_archived}")
    print(f"Deleted: {result.posts_deleted}")
    print(f"Queue cleaned: {result.queue_cleaned}")
    print(f"Counters reset: {result.counters_reset}")


def cmd_preview(args):
    """Show what the next retention pass would do."""
    from app.config import get_settings
    from app.services.retention import preview_retention
    from app.services.run_config import load_run_config

    db = get_db_session()
    try:
        preview = preview_retention(db, load_run_config(db, get_settings()))
    finally:
        db.close()

    print("\n=== Retention Preview (dry run) ===\n")
    print(f"Cutoff: {preview.cutoff.isoformat()} ({preview.retention_hours}h on {preview.timestamp_field})")
    print(f"Total posts: {preview.total_posts}")
    print(f"Old posts: {preview.old_posts}")
    print(f"Would archive: {preview.would_archive}")
    print(f"Would delete: {preview.would_delete}")
    print(f"Untouched: {preview.untouched}")


def cmd_history(args):
    """List recent retention runs."""
    from app.services.retention import list_cleanup_history

    db = get_db_session()
    try:
        rows = list_cleanup_history(db, limit=args.limit)

        print("\n=== Cleanup History ===\n")
        if not rows:
            print("No cleanup runs recorded")
        for row in rows:
            status = "ok" if row.success else f"FAILED ({row.error_message})"
            print(
                f"{row.executed_at.isoformat()}  archived={row.posts_archived} deleted={row.posts_deleted} "
                f"queue={row.queue_cleaned} cutoff={row.cutoff_date.isoformat()} {status}"
            )
    finally:
        db.close()


def cmd_init_db(args):
    """Create any missing tables for local development."""
    from app.database import init_db

    init_db()
    print("Tables created")


def main():
    parser = argparse.ArgumentParser(
        description="Psyop pipeline job CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run one pipeline pass
  python -m app.cli.jobs pipeline

  # Preview, then run retention
  python -m app.cli.jobs preview
  python -m app.cli.jobs retention --trigger-source manual

  # Local development database
  python -m app.cli.jobs init-db
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    pipeline_parser = subparsers.add_parser("pipeline", help="Run one pipeline pass")
    pipeline_parser.add_argument("--trigger-source", default="cli", help="Recorded on the job run (default: cli)")
    pipeline_parser.set_defaults(func=cmd_pipeline)

    retention_parser = subparsers.add_parser("retention", help="Run one retention pass")
    retention_parser.add_argument("--trigger-source", default="cli", help="Recorded on the job run (default: cli)")
    retention_parser.set_defaults(func=cmd_retention)

    preview_parser = subparsers.add_parser("preview", help="Preview retention without changes")
    preview_parser.set_defaults(func=cmd_preview)

    history_parser = subparsers.add_parser("history", help="List recent cleanup runs")
    history_parser.add_argument("--limit", type=int, default=20, help="Rows to show (default: 20)")
    history_parser.set_defaults(func=cmd_history)

    init_parser = subparsers.add_parser("init-db", help="Create missing tables (local development)")
    init_parser.set_defaults(func=cmd_init_db)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
