# app/services/stage_executor.py
"""
Stage execution with per-item failure isolation.

Each candidate gets exactly one classification call per invocation. The
classification service owns every result field and the stage timestamp;
this module only interprets the response:

- success          -> SUCCEEDED
- benign skip      -> SKIPPED (post vanished, or not yet ready for deepest)
- anything else    -> FAILED, counted, and the loop moves on

Failed posts stay eligible and are retried by the next scheduled run.
"""

import logging
import uuid
from dataclasses import asdict, dataclass
from enum import Enum

import httpx
from sqlalchemy.orm import Session

from app.constants import BenignSkipPhrases, PipelineDefaults
from app.logging_config import ProgressTracker
from app.models import AnalysisStage, Post
from app.services.candidates import revalidate
from app.services.classifier_client import STAGE_ENDPOINTS
from app.services.usage_meter import log_usage

logger = logging.getLogger(__name__)

# Response bodies are truncated to this many characters in failure logs
_BODY_LOG_CHARS = 300


class StageOutcome(str, Enum):
    """Result of executing one stage for one post."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class StageResult:
    """Counters for one stage of one pass."""

    stage: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    def record(self, outcome: StageOutcome) -> None:
        if outcome == StageOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome == StageOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return asdict(self)


def benign_skip_reason(stage: AnalysisStage, body_text: str | None) -> str | None:
    """
    Return a skip reason if a non-2xx body is a recognized benign condition.

    "Post not found" applies to every stage; "not ready" only to deepest.
    """
    text = (body_text or "").lower()
    if any(phrase in text for phrase in BenignSkipPhrases.NOT_FOUND):
        return "not_found"
    if stage == AnalysisStage.DEEPEST and any(phrase in text for phrase in BenignSkipPhrases.DEEPEST_NOT_READY):
        return "not_ready"
    return None


def execute_stage(db: Session, client, stage: AnalysisStage, post_id: uuid.UUID) -> StageOutcome:
    """
    Execute one stage for one post.

    Args:
        db: Database session
        client: ClassificationClient (or anything with invoke(stage, post))
        stage: Pipeline stage
        post_id: Candidate post id

    Returns:
        StageOutcome for the counters
    """
    post, reason = revalidate(db, post_id)
    if reason is not None:
        logger.info(
            f"Skipping {stage.value} for post {post_id}: {reason}",
            extra={"event": "candidate_skipped", "stage": stage.value, "post_id": str(post_id), "reason": reason},
        )
        return StageOutcome.SKIPPED

    try:
        response = client.invoke(stage, post)
    except httpx.HTTPError as e:
        logger.error(
            f"{stage.value} call failed for post {post_id}: {e}",
            extra={"event": "stage_item_failed", "stage": stage.value, "post_id": str(post_id)},
        )
        return StageOutcome.FAILED

    if response.ok:
        if response.usage is not None:
            _record_usage(db, stage, post, response)
        logger.info(
            f"{stage.value} completed for post {post_id}",
            extra={
                "event": "stage_item_succeeded",
                "stage": stage.value,
                "post_id": str(post_id),
                "duration_ms": response.latency_ms,
            },
        )
        return StageOutcome.SUCCEEDED

    skip_reason = benign_skip_reason(stage, response.body_text)
    if skip_reason is not None:
        logger.warning(
            f"{stage.value} skipped for post {post_id}: {skip_reason}",
            extra={
                "event": "candidate_skipped",
                "stage": stage.value,
                "post_id": str(post_id),
                "reason": skip_reason,
                "status_code": response.status_code,
            },
        )
        return StageOutcome.SKIPPED

    logger.error(
        f"{stage.value} returned {response.status_code} for post {post_id}: "
        f"{response.body_text[:_BODY_LOG_CHARS]}",
        extra={
            "event": "stage_item_failed",
            "stage": stage.value,
            "post_id": str(post_id),
            "status_code": response.status_code,
        },
    )
    return StageOutcome.FAILED


def _record_usage(db: Session, stage: AnalysisStage, post: Post, response) -> None:
    endpoint = STAGE_ENDPOINTS[stage]
    log_usage(
        db,
        endpoint=endpoint,
        usage=response.usage,
        response_time_ms=response.latency_ms,
        post_id=post.id,
        function_name=endpoint,
    )


def run_stage(db: Session, client, stage: AnalysisStage, candidates: list[Post]) -> StageResult:
    """
    For each candidate, execute in isolation and accumulate the outcome.

    Strictly sequential: each call is awaited before the next starts, which
    bounds the load on the classification service. Any exception raised
    while executing one candidate is logged and counted as a failure.
    """
    # Capture ids up front; executing a candidate may expire loaded rows
    post_ids = [post.id for post in candidates]
    result = StageResult(stage=stage.value, total=len(post_ids))
    tracker = ProgressTracker(result, log_every=PipelineDefaults.PROGRESS_LOG_EVERY)

    for post_id in post_ids:
        try:
            outcome = execute_stage(db, client, stage, post_id)
        except Exception as e:
            logger.error(
                f"{stage.value} failed for post {post_id}: {e}",
                extra={"event": "stage_item_failed", "stage": stage.value, "post_id": str(post_id)},
                exc_info=True,
            )
            db.rollback()
            outcome = StageOutcome.FAILED
        result.record(outcome)
        tracker.tick()

    if post_ids:
        tracker.finish()
    return result
