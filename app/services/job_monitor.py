"""
Job Run Monitor for scheduled invocations.

Records the lifecycle of each pipeline or retention invocation in
scheduled_job_runs and dispatches failure alerts:

    running -> success   (terminal)
    running -> failed    (terminal, alert dispatched)

Tracking is observability only. A failure to write a job run row is
logged and never blocks the functional work.
"""

import logging
import uuid
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import JobRun, JobRunStatus, utcnow
from app.services.alerts import AlertDispatcher, build_failure_alert

logger = logging.getLogger(__name__)


class JobRunMonitor:
    """
    Opens and closes job run rows and sends failure alerts.

    Usage:
        monitor = JobRunMonitor(AlertDispatcher.from_settings(settings))
        run_id = monitor.start(db, "auto-cleanup", "scheduler")
        ...
        monitor.finish(db, run_id, JobRunStatus.SUCCESS, 200, metadata=summary)
    """

    def __init__(self, alerts: AlertDispatcher | None = None):
        self.alerts = alerts or AlertDispatcher()

    def start(
        self,
        db: Session,
        job_name: str,
        trigger_source: str,
        payload: dict[str, Any] | None = None,
    ) -> uuid.UUID | None:
        """
        Insert a running job run row.

        Returns:
            The run id, or None if the insert failed
        """
        run = JobRun(
            job_name=job_name,
            trigger_source=trigger_source,
            status=JobRunStatus.RUNNING.value,
            started_at=utcnow(),
            payload=payload,
        )
        try:
            db.add(run)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Failed to insert job run for {job_name}: {e}",
                extra={"event": "job_run_insert_failed", "job_name": job_name},
            )
            return None

        logger.info(
            f"Job run {run.id} started for {job_name}",
            extra={
                "event": "job_run_started",
                "job_name": job_name,
                "job_run_id": str(run.id),
                "trigger_source": trigger_source,
            },
        )
        return run.id

    def finish(
        self,
        db: Session,
        run_id: uuid.UUID | None,
        status: JobRunStatus,
        http_status: int,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
        job_name: str | None = None,
    ) -> None:
        """
        Close a job run. A None run_id is a no-op.

        Only a running row transitions; terminal rows are left untouched.
        A failed status dispatches one alert.
        """
        if run_id is None:
            return

        should_alert = status == JobRunStatus.FAILED
        try:
            run = db.query(JobRun).filter(JobRun.id == run_id).first()
            if run is None:
                logger.warning(f"Job run {run_id} not found when finishing")
            elif run.status != JobRunStatus.RUNNING.value:
                logger.warning(
                    f"Job run {run_id} already {run.status}; ignoring transition to {status.value}",
                    extra={"event": "job_run_already_finished", "job_run_id": str(run_id)},
                )
                should_alert = False
            else:
                job_name = job_name or run.job_name
                run.status = status.value
                run.finished_at = utcnow()
                run.http_status = http_status
                run.error_message = error_message
                run.run_metadata = metadata
                db.commit()
                logger.info(
                    f"Job run {run_id} finished with status {status.value}",
                    extra={
                        "event": "job_run_finished",
                        "job_run_id": str(run_id),
                        "job_name": job_name,
                        "status_code": http_status,
                    },
                )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(
                f"Failed to update job run {run_id}: {e}",
                extra={"event": "job_run_update_failed", "job_run_id": str(run_id)},
            )

        if should_alert:
            self.alerts.dispatch(build_failure_alert(job_name, error_message, metadata))


def list_job_runs(db: Session, job_name: str | None = None, limit: int = 20) -> list[JobRun]:
    """
    List recent job runs, newest first.

    Args:
        db: Database session
        job_name: Optional job name filter
        limit: Maximum number of runs to return
    """
    query = db.query(JobRun).order_by(JobRun.started_at.desc())
    if job_name:
        query = query.filter(JobRun.job_name == job_name)
    return query.limit(limit).all()
