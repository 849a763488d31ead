# app/services/retention/history.py
"""Cleanup History audit rows. Writes are best-effort."""

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import CleanupHistory, utcnow

if TYPE_CHECKING:
    from app.services.retention.cleanup_service import CleanupResult

logger = logging.getLogger(__name__)


def record_cleanup_history(db: Session, result: "CleanupResult") -> CleanupHistory | None:
    """
    Append one audit row for a retention run.

    A failed insert is logged and swallowed; it never fails the run.
    """
    row = CleanupHistory(
        executed_at=utcnow(),
        posts_deleted=result.posts_deleted,
        posts_archived=result.posts_archived,
        queue_cleaned=result.queue_cleaned,
        total_posts=result.total_posts,
        old_posts=result.old_posts,
        retention_hours=result.retention_hours,
        cutoff_date=result.cutoff,
        success=result.success,
        error_message=result.error,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to record cleanup history: {e}",
            extra={"event": "cleanup_history_failed"},
        )
        return None
    return row


def list_cleanup_history(db: Session, limit: int = 20) -> list[CleanupHistory]:
    """Most recent cleanup runs first."""
    return db.query(CleanupHistory).order_by(CleanupHistory.executed_at.desc()).limit(limit).all()
