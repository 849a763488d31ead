"""
Batch Runner: one full pass of the psyop analysis pipeline.

Stages run strictly in order (quick -> deep -> deepest), each against a
fresh read of the store. Because deep eligibility only needs the
classification flag, a post flagged during the quick stage can advance
through deep (and deepest) within the same pass.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import Settings
from app.constants import JobNames
from app.logging_config import job_context, log_stage
from app.models import AnalysisStage, AutoAnalysisStats, JobRunStatus, utcnow
from app.services.candidates import select_candidates
from app.services.errors import PipelineRunError
from app.services.job_monitor import JobRunMonitor
from app.services.run_config import load_run_config
from app.services.stage_executor import StageResult, run_stage

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    """Aggregate result of one pipeline pass."""

    success: bool = True
    enabled: bool = True
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    stages: list[StageResult] = field(default_factory=list)
    job_run_id: uuid.UUID | None = None
    message: str = ""

    def add(self, result: StageResult) -> None:
        self.stages.append(result)
        self.total += result.total
        self.succeeded += result.succeeded
        self.failed += result.failed
        self.skipped += result.skipped

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "enabled": self.enabled,
            "processed": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "stages": {result.stage: result.to_dict() for result in self.stages},
            "job_run_id": str(self.job_run_id) if self.job_run_id else None,
            "message": self.message,
        }


def increment_daily_stats(db: Session, stat_date: date, succeeded: int, failed: int) -> AutoAnalysisStats:
    """Add this pass's counters to the row for stat_date, creating it if needed."""
    for attempt in range(2):
        row = db.query(AutoAnalysisStats).filter(AutoAnalysisStats.stat_date == stat_date).first()
        if row is None:
            row = AutoAnalysisStats(stat_date=stat_date, posts_analyzed=0, posts_failed=0)
            db.add(row)
        row.posts_analyzed = (row.posts_analyzed or 0) + succeeded
        row.posts_failed = (row.posts_failed or 0) + failed
        try:
            db.commit()
            return row
        except IntegrityError:
            # A concurrent pass created today's row first; retry as an update
            db.rollback()
            if attempt == 1:
                raise
    return row


def run_pipeline_pass(
    db: Session,
    client,
    settings: Settings | None = None,
    trigger_source: str = "scheduler",
    monitor: JobRunMonitor | None = None,
) -> BatchSummary:
    """
    Run quick, deep and deepest stages once, wrapped in a job run.

    Args:
        db: Database session
        client: ClassificationClient used for every stage call
        settings: Application settings (retention field only; optional here)
        trigger_source: Who triggered the run, recorded on the job run
        monitor: JobRunMonitor; a monitor without alert channels by default

    Returns:
        BatchSummary

    Raises:
        PipelineRunError: on any failure outside the per-item loop
    """
    monitor = monitor or JobRunMonitor()
    run_id = monitor.start(db, JobNames.PIPELINE, trigger_source, payload={"trigger_source": trigger_source})

    with job_context(JobNames.PIPELINE, run_id):
        return _run_stages(db, client, settings, monitor, run_id)


def _run_stages(db: Session, client, settings: Settings | None, monitor: JobRunMonitor, run_id) -> BatchSummary:
    summary = BatchSummary(job_run_id=run_id)
    try:
        config = load_run_config(db, settings)

        if not config.enabled:
            summary.enabled = False
            summary.message = "Auto analysis is disabled"
            logger.info(summary.message, extra={"event": "pipeline_disabled"})
            monitor.finish(
                db, run_id, JobRunStatus.SUCCESS, 200, metadata=summary.to_dict(), job_name=JobNames.PIPELINE
            )
            return summary

        for stage in AnalysisStage:
            # Fresh read: earlier stages may have changed eligibility
            db.expire_all()
            with log_stage(stage.value):
                candidates = select_candidates(db, stage, config)
                summary.add(run_stage(db, client, stage, candidates))

        increment_daily_stats(db, utcnow().date(), summary.succeeded, summary.failed)

    except Exception as e:
        db.rollback()
        summary.success = False
        summary.message = str(e)
        logger.exception(f"Pipeline pass failed: {e}")
        monitor.finish(
            db,
            run_id,
            JobRunStatus.FAILED,
            500,
            error_message=str(e),
            metadata=summary.to_dict(),
            job_name=JobNames.PIPELINE,
        )
        raise PipelineRunError(str(e), run_id) from e

    summary.message = f"Processed {summary.total} posts"
    logger.info(
        f"Pipeline pass complete: {summary.succeeded} succeeded, {summary.failed} failed, {summary.skipped} skipped",
        extra={
            "event": "pipeline_complete",
            "total": summary.total,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
            "skipped": summary.skipped,
        },
    )
    monitor.finish(db, run_id, JobRunStatus.SUCCESS, 200, metadata=summary.to_dict(), job_name=JobNames.PIPELINE)
    return summary
