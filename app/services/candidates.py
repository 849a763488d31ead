# app/services/candidates.py
"""
Candidate selection for each pipeline stage.

Eligibility is expressed purely through the stage-timestamp and
classification-flag filters, so re-running a selection after a successful
call never returns the same post for the same stage again. No row locking
is taken: overlapping invocations may select the same posts.
"""

import logging
import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.constants import PipelineDefaults
from app.models import AnalysisStage, Post, PostStatus
from app.services.run_config import RunConfig

logger = logging.getLogger(__name__)


def _has_content():
    return func.length(func.trim(Post.contents)) > 0


def _not_archived():
    return Post.status != PostStatus.ARCHIVED.value


def select_quick_candidates(db: Session, limit: int = PipelineDefaults.QUICK_BATCH_SIZE) -> list[Post]:
    """Unclassified, non-archived posts with content, oldest ingestion first."""
    return (
        db.query(Post)
        .filter(
            Post.is_psyop.is_(None),
            _not_archived(),
            Post.contents.isnot(None),
            _has_content(),
        )
        .order_by(Post.created_at.asc())
        .limit(limit)
        .all()
    )


def select_deep_candidates(db: Session, limit: int = PipelineDefaults.DEEP_BATCH_CAP) -> list[Post]:
    """
    Posts flagged as psyop that have not been deep-analyzed.

    quick_analyzed_at is intentionally not required: a post flagged by any
    route is eligible for the deep stage. Empty posts are excluded here so
    they cannot fill the fixed cap ahead of usable ones.
    """
    return (
        db.query(Post)
        .filter(
            Post.is_psyop.is_(True),
            _not_archived(),
            Post.deep_analyzed_at.is_(None),
            Post.contents.isnot(None),
            _has_content(),
        )
        .order_by(Post.created_at.asc())
        .limit(limit)
        .all()
    )


def select_deepest_candidates(db: Session, limit: int = PipelineDefaults.DEEPEST_BATCH_CAP) -> list[Post]:
    """Deep-analyzed psyop posts awaiting the deepest stage, oldest deep analysis first."""
    return (
        db.query(Post)
        .filter(
            Post.is_psyop.is_(True),
            Post.deep_analyzed_at.isnot(None),
            Post.deepest_analysis_completed_at.is_(None),
            _not_archived(),
            Post.contents.isnot(None),
            _has_content(),
        )
        .order_by(Post.deep_analyzed_at.asc())
        .limit(limit)
        .all()
    )


def select_candidates(db: Session, stage: AnalysisStage, config: RunConfig) -> list[Post]:
    """Dispatch to the selector for a stage."""
    if stage == AnalysisStage.QUICK:
        candidates = select_quick_candidates(db, limit=config.batch_size)
    elif stage == AnalysisStage.DEEP:
        candidates = select_deep_candidates(db)
    else:
        candidates = select_deepest_candidates(db)

    logger.info(
        f"Selected {len(candidates)} {stage.value} candidates",
        extra={"event": "candidates_selected", "stage": stage.value, "count": len(candidates)},
    )
    return candidates


def revalidate(db: Session, post_id: uuid.UUID) -> tuple[Post | None, str | None]:
    """
    Reload a candidate from the store immediately before execution.

    Returns (post, None) when still usable, otherwise (post_or_None, reason)
    with reason one of "not_found", "archived", "empty_content".
    """
    post = db.get(Post, post_id, populate_existing=True)
    if post is None:
        return None, "not_found"
    if post.is_archived:
        return post, "archived"
    if not post.has_content:
        return post, "empty_content"
    return post, None
