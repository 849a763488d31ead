# app/routers/jobs.py
"""
Scheduler-facing job endpoints.

POST /v1/pipeline/run        - One quick -> deep -> deepest pass
POST /v1/retention/run       - One archive/delete retention pass
GET  /v1/retention/preview   - Dry-run retention counts
GET  /v1/retention/history   - Recent Cleanup History rows
GET  /v1/jobs/runs           - Recent Job Run rows

Run endpoints return 200 on success or no-op, and 500 with
{"success": false, "error": ...} when the run failed.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.database import get_db
from app.services.alerts import AlertDispatcher
from app.services.batch_runner import run_pipeline_pass
from app.services.classifier_client import ClassificationClient
from app.services.errors import JobRunError
from app.services.job_monitor import JobRunMonitor, list_job_runs
from app.services.retention import list_cleanup_history, preview_retention, run_retention_job
from app.services.run_config import load_run_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["jobs"])


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def get_classifier_client(settings: Settings = Depends(get_settings)) -> Iterator[ClassificationClient]:
    """One classification client per request, closed afterwards."""
    client = ClassificationClient.from_settings(settings)
    try:
        yield client
    finally:
        client.close()


def get_job_monitor(settings: Settings = Depends(get_settings)) -> JobRunMonitor:
    return JobRunMonitor(AlertDispatcher.from_settings(settings))


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class CleanupHistoryResponse(BaseModel):
    """One Cleanup History row."""

    model_config = ConfigDict(from_attributes=True)

    executed_at: datetime
    posts_deleted: int
    posts_archived: int
    queue_cleaned: int
    total_posts: int
    old_posts: int
    retention_hours: int
    cutoff_date: datetime
    success: bool
    error_message: str | None = None


class JobRunResponse(BaseModel):
    """One Job Run row."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    job_name: str
    trigger_source: str
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    http_status: int | None = None
    error_message: str | None = None
    metadata: dict[str, Any] | None = None


class RetentionPreviewResponse(BaseModel):
    """Dry-run retention counts."""

    dry_run: bool = True
    cutoff_date: str
    retention_hours: int
    timestamp_field: str
    total_posts: int
    old_posts: int
    would_archive: int
    would_delete: int
    untouched: int


def _failure_response(error: JobRunError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": error.message,
            "job_run_id": str(error.job_run_id) if error.job_run_id else None,
        },
    )


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("/pipeline/run", response_model=None)
def trigger_pipeline(
    x_trigger_source: str | None = Header(default=None, alias="X-Trigger-Source"),
    db: Session = Depends(get_db),
    client: ClassificationClient = Depends(get_classifier_client),
    monitor: JobRunMonitor = Depends(get_job_monitor),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any] | JSONResponse:
    """Run one pipeline pass. No body required."""
    trigger_source = x_trigger_source or "scheduler"
    logger.info(f"Pipeline run triggered by {trigger_source}", extra={"trigger_source": trigger_source})
    try:
        summary = run_pipeline_pass(db, client, settings, trigger_source=trigger_source, monitor=monitor)
    except JobRunError as e:
        return _failure_response(e)
    return summary.to_dict()


@router.post("/retention/run", response_model=None)
def trigger_retention(
    x_trigger_source: str | None = Header(default=None, alias="X-Trigger-Source"),
    db: Session = Depends(get_db),
    monitor: JobRunMonitor = Depends(get_job_monitor),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any] | JSONResponse:
    """Run one retention pass. Any request body is ignored."""
    trigger_source = x_trigger_source or "scheduler"
    logger.info(f"Retention run triggered by {trigger_source}", extra={"trigger_source": trigger_source})
    try:
        result = run_retention_job(db, settings, trigger_source=trigger_source, monitor=monitor)
    except JobRunError as e:
        return _failure_response(e)
    return result.to_dict()


@router.get("/retention/preview", response_model=RetentionPreviewResponse)
def get_retention_preview(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> RetentionPreviewResponse:
    """Preview what the next retention pass would archive and delete."""
    config = load_run_config(db, settings)
    preview = preview_retention(db, config)
    return RetentionPreviewResponse(**preview.to_dict())


@router.get("/retention/history", response_model=list[CleanupHistoryResponse])
def get_retention_history(
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[CleanupHistoryResponse]:
    return [CleanupHistoryResponse.model_validate(row) for row in list_cleanup_history(db, limit=limit)]


@router.get("/jobs/runs", response_model=list[JobRunResponse])
def get_job_runs(
    job_name: str | None = Query(None, description="Filter by job name"),
    limit: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
) -> list[JobRunResponse]:
    return [
        JobRunResponse(
            id=str(run.id),
            job_name=run.job_name,
            trigger_source=run.trigger_source,
            status=run.status,
            started_at=run.started_at,
            finished_at=run.finished_at,
            http_status=run.http_status,
            error_message=run.error_message,
            metadata=run.run_metadata,
        )
        for run in list_job_runs(db, job_name=job_name, limit=limit)
    ]
