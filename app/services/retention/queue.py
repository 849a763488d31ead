# app/services/retention/queue.py
"""Purge of stale entries from the secondary analysis queue."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.constants import RetentionDefaults
from app.models import AnalysisQueueItem, QueueStatus
from app.services.retention.policy import chunk_ids

logger = logging.getLogger(__name__)

_FINISHED_STATUSES = (QueueStatus.COMPLETED.value, QueueStatus.FAILED.value)


def cleanup_analysis_queue(
    db: Session,
    now: datetime,
    max_age_days: int = RetentionDefaults.QUEUE_RETENTION_DAYS,
) -> int:
    """
    Delete completed or failed queue entries older than max_age_days.

    Pending and processing entries are never touched.

    Returns:
        Number of entries deleted
    """
    cutoff = now - timedelta(days=max_age_days)
    finished_at = func.coalesce(AnalysisQueueItem.completed_at, AnalysisQueueItem.created_at)
    ids = [
        row.id
        for row in db.query(AnalysisQueueItem.id)
        .filter(AnalysisQueueItem.status.in_(_FINISHED_STATUSES), finished_at < cutoff)
        .all()
    ]

    for chunk in chunk_ids(ids):
        db.query(AnalysisQueueItem).filter(AnalysisQueueItem.id.in_(chunk)).delete(synchronize_session=False)
    db.commit()

    if ids:
        logger.info(f"Cleaned {len(ids)} stale queue entries", extra={"event": "queue_cleaned", "count": len(ids)})
    return len(ids)
