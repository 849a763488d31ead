# app/services/retention/cleanup_service.py
"""
Retention pass: archive important posts, delete disposable ones.

Phases, in order:
1. Diagnostic counts against the cutoff (now - retention window)
2. Archive phase: old active posts that are important
3. Delete phase: a fresh re-read of old active posts, deleting disposable ones
4. Daily reset of rolling 30-day counters
5. Secondary analysis queue cleanup
6. Cleanup History audit row

With no posts older than the cutoff, phases 2 and 3 are skipped and the
run reports "nothing to do". Every mutation is scoped by an explicit id
list, chunked by MUTATION_CHUNK_SIZE.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import Settings
from app.constants import JobNames
from app.logging_config import job_context
from app.models import JobRunStatus, Post, PostStatus, utcnow
from app.services.errors import RetentionRunError
from app.services.job_monitor import JobRunMonitor
from app.services.retention.counters import reset_rolling_counters
from app.services.retention.history import record_cleanup_history
from app.services.retention.policy import RetentionAction, chunk_ids, decide
from app.services.retention.queue import cleanup_analysis_queue
from app.services.run_config import RunConfig, load_run_config

logger = logging.getLogger(__name__)

NOTHING_TO_DO = "Nothing to do: no posts older than cutoff"


@dataclass
class CleanupResult:
    """Result of one retention pass."""

    cutoff: datetime
    retention_hours: int
    timestamp_field: str = "created_at"
    success: bool = True
    noop: bool = False
    total_posts: int = 0
    old_posts: int = 0
    posts_archived: int = 0
    posts_deleted: int = 0
    queue_cleaned: int = 0
    counters_reset: bool = False
    history_recorded: bool = False
    message: str = ""
    error: str | None = None
    job_run_id: uuid.UUID | None = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "noop": self.noop,
            "message": self.message,
            "total_posts": self.total_posts,
            "old_posts": self.old_posts,
            "posts_archived": self.posts_archived,
            "posts_deleted": self.posts_deleted,
            "queue_cleaned": self.queue_cleaned,
            "counters_reset": self.counters_reset,
            "retention_hours": self.retention_hours,
            "cutoff_date": self.cutoff.isoformat(),
            "timestamp_field": self.timestamp_field,
            "history_recorded": self.history_recorded,
            "job_run_id": str(self.job_run_id) if self.job_run_id else None,
            "error": self.error,
        }


def _timestamp_column(timestamp_field: str):
    if timestamp_field not in ("created_at", "published_at"):
        raise ValueError(f"Unsupported retention timestamp field: {timestamp_field}")
    return getattr(Post, timestamp_field)


def _old_active_posts(db: Session, cutoff: datetime, timestamp_field: str) -> list[Post]:
    column = _timestamp_column(timestamp_field)
    return (
        db.query(Post)
        .filter(column < cutoff, Post.status != PostStatus.ARCHIVED.value)
        .order_by(column.asc())
        .all()
    )


def _count_posts(db: Session, cutoff: datetime, timestamp_field: str) -> tuple[int, int]:
    column = _timestamp_column(timestamp_field)
    total = db.query(func.count(Post.id)).scalar() or 0
    old = db.query(func.count(Post.id)).filter(column < cutoff).scalar() or 0
    return total, old


def _archive_posts(db: Session, post_ids: list[uuid.UUID], now: datetime) -> int:
    archived = 0
    for chunk in chunk_ids(post_ids):
        archived += db.query(Post).filter(
            Post.id.in_(chunk),
            Post.status != PostStatus.ARCHIVED.value,
        ).update(
            {Post.status: PostStatus.ARCHIVED.value, Post.updated_at: now},
            synchronize_session=False,
        )
    db.commit()
    return archived


def _delete_posts(db: Session, post_ids: list[uuid.UUID]) -> int:
    deleted = 0
    for chunk in chunk_ids(post_ids):
        # Archived rows are never deletable, even if archived concurrently
        deleted += db.query(Post).filter(
            Post.id.in_(chunk),
            Post.status != PostStatus.ARCHIVED.value,
        ).delete(synchronize_session=False)
    db.commit()
    return deleted


def run_retention(db: Session, config: RunConfig, now: datetime | None = None) -> CleanupResult:
    """
    Run one retention pass.

    Args:
        db: Database session
        config: Run configuration (retention window and timestamp field)
        now: Reference time; defaults to the current UTC time

    Returns:
        CleanupResult with counters

    Raises:
        Any exception from a functional phase. A failed Cleanup History
        row is still attempted before the exception propagates.
    """
    now = now or utcnow()
    timestamp_field = config.retention_timestamp_field
    result = CleanupResult(
        cutoff=now - timedelta(hours=config.posts_retention_hours),
        retention_hours=config.posts_retention_hours,
        timestamp_field=timestamp_field,
    )
    logger.info(
        f"Retention pass: {config.posts_retention_hours}h window, cutoff {result.cutoff.isoformat()} on {timestamp_field}",
        extra={"event": "retention_started"},
    )

    try:
        result.total_posts, result.old_posts = _count_posts(db, result.cutoff, timestamp_field)

        if result.old_posts == 0:
            result.noop = True
            result.message = NOTHING_TO_DO
            logger.info(NOTHING_TO_DO, extra={"event": "retention_noop", "count": result.total_posts})
        else:
            archive_ids = [
                post.id
                for post in _old_active_posts(db, result.cutoff, timestamp_field)
                if decide(post, result.cutoff, timestamp_field) is RetentionAction.ARCHIVE
            ]
            result.posts_archived = _archive_posts(db, archive_ids, now)

            # Fresh read so nothing archived above is considered for deletion
            db.expire_all()
            delete_ids = [
                post.id
                for post in _old_active_posts(db, result.cutoff, timestamp_field)
                if decide(post, result.cutoff, timestamp_field) is RetentionAction.DELETE
            ]
            result.posts_deleted = _delete_posts(db, delete_ids)
            result.message = f"Archived {result.posts_archived}, deleted {result.posts_deleted} posts"
            logger.info(
                result.message,
                extra={"event": "retention_applied", "count": result.posts_archived + result.posts_deleted},
            )

        result.counters_reset = reset_rolling_counters(db, config, now.date())
        result.queue_cleaned = cleanup_analysis_queue(db, now)

    except Exception as e:
        db.rollback()
        result.success = False
        result.error = str(e)
        result.history_recorded = record_cleanup_history(db, result) is not None
        raise

    result.history_recorded = record_cleanup_history(db, result) is not None
    return result


@dataclass
class RetentionPreview:
    """Dry-run counts for a retention pass."""

    cutoff: datetime
    retention_hours: int
    timestamp_field: str
    total_posts: int = 0
    old_posts: int = 0
    would_archive: int = 0
    would_delete: int = 0
    untouched: int = 0

    def to_dict(self) -> dict:
        return {
            "cutoff_date": self.cutoff.isoformat(),
            "retention_hours": self.retention_hours,
            "timestamp_field": self.timestamp_field,
            "total_posts": self.total_posts,
            "old_posts": self.old_posts,
            "would_archive": self.would_archive,
            "would_delete": self.would_delete,
            "untouched": self.untouched,
        }


def preview_retention(db: Session, config: RunConfig, now: datetime | None = None) -> RetentionPreview:
    """Compute what a retention pass would do, without mutating anything."""
    now = now or utcnow()
    timestamp_field = config.retention_timestamp_field
    preview = RetentionPreview(
        cutoff=now - timedelta(hours=config.posts_retention_hours),
        retention_hours=config.posts_retention_hours,
        timestamp_field=timestamp_field,
    )
    preview.total_posts, preview.old_posts = _count_posts(db, preview.cutoff, timestamp_field)

    for post in _old_active_posts(db, preview.cutoff, timestamp_field):
        action = decide(post, preview.cutoff, timestamp_field)
        if action is RetentionAction.ARCHIVE:
            preview.would_archive += 1
        elif action is RetentionAction.DELETE:
            preview.would_delete += 1
    preview.untouched = preview.total_posts - preview.would_archive - preview.would_delete
    return preview


def run_retention_job(
    db: Session,
    settings: Settings | None = None,
    trigger_source: str = "scheduler",
    monitor: JobRunMonitor | None = None,
    now: datetime | None = None,
) -> CleanupResult:
    """
    Run a retention pass wrapped in an auto-cleanup job run.

    Raises:
        RetentionRunError: if the pass failed; the job run is closed as failed
    """
    monitor = monitor or JobRunMonitor()
    run_id = monitor.start(db, JobNames.RETENTION, trigger_source, payload={"trigger_source": trigger_source})

    with job_context(JobNames.RETENTION, run_id):
        return _run_retention_pass(db, settings, monitor, run_id, now)


def _run_retention_pass(
    db: Session, settings: Settings | None, monitor: JobRunMonitor, run_id, now: datetime | None
) -> CleanupResult:
    try:
        config = load_run_config(db, settings)
        result = run_retention(db, config, now=now)
    except Exception as e:
        db.rollback()
        logger.exception(f"Retention pass failed: {e}")
        monitor.finish(
            db,
            run_id,
            JobRunStatus.FAILED,
            500,
            error_message=str(e),
            metadata={"success": False, "error": str(e)},
            job_name=JobNames.RETENTION,
        )
        raise RetentionRunError(str(e), run_id) from e

    result.job_run_id = run_id
    monitor.finish(db, run_id, JobRunStatus.SUCCESS, 200, metadata=result.to_dict(), job_name=JobNames.RETENTION)
    return result
