"""
Structured JSON logging for scheduled jobs.

Every record emitted while a job run is active carries the job name, the job
run id and (inside a stage) the stage name, so a single run can be followed
through the hosted log stream.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

job_name_var: ContextVar[str | None] = ContextVar("job_name", default=None)
job_run_id_var: ContextVar[str | None] = ContextVar("job_run_id", default=None)
stage_var: ContextVar[str | None] = ContextVar("stage", default=None)

# Extra record attributes copied into the JSON payload
_EXTRA_FIELDS = (
    "event",
    "duration_ms",
    "post_id",
    "trigger_source",
    "status_code",
    "reason",
    "endpoint",
    "tokens_in",
    "tokens_out",
    "cost_usd",
    "channel",
    "count",
    "total",
    "succeeded",
    "failed",
    "skipped",
)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"timestamp": "...", "level": "INFO", "job_name": "auto-cleanup", "job_run_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {
            "job_name": getattr(record, "job_name", None) or job_name_var.get(),
            "job_run_id": getattr(record, "job_run_id", None) or job_run_id_var.get(),
            "stage": getattr(record, "stage", None) or stage_var.get(),
        }
        data.update({key: str(value) for key, value in context.items() if value})

        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                data[key] = getattr(record, key)

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger."""
    log_level = getattr(logging, level.upper())
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(handler)

    # Per-request logs from these are noise next to per-item stage logs
    for noisy in ("httpx", "httpcore", "sqlalchemy"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@contextmanager
def job_context(job_name: str, job_run_id):
    """
    Bind a job run to every log record emitted inside the block.

    job_run_id may be None when the run row could not be written; records
    then carry only the job name.
    """
    name_token = job_name_var.set(job_name)
    run_token = job_run_id_var.set(str(job_run_id) if job_run_id else None)
    try:
        yield
    finally:
        job_run_id_var.reset(run_token)
        job_name_var.reset(name_token)


@contextmanager
def log_stage(stage: str):
    """
    Bind a pipeline stage and log its start, completion or failure with duration.

    Usage:
        with log_stage("quick"):
            result = run_stage(...)
    """
    token = stage_var.set(stage)
    start = time.monotonic()
    logger = logging.getLogger("pipeline")
    logger.info(f"Stage {stage} started", extra={"event": "stage_start"})

    try:
        yield
    except Exception as e:
        logger.error(
            f"Stage {stage} failed: {e}",
            extra={"event": "stage_failed", "duration_ms": int((time.monotonic() - start) * 1000)},
            exc_info=True,
        )
        raise
    else:
        logger.info(
            f"Stage {stage} completed",
            extra={"event": "stage_complete", "duration_ms": int((time.monotonic() - start) * 1000)},
        )
    finally:
        stage_var.reset(token)


class ProgressTracker:
    """
    Periodic progress lines for a stage loop.

    Reads its counters from the stage result it is given (anything with
    total/succeeded/failed/skipped) instead of counting on its own.
    """

    def __init__(self, result, log_every: int = 10):
        self.result = result
        self.log_every = log_every
        self.seen = 0
        self._start = time.monotonic()
        self._logger = logging.getLogger("pipeline.progress")

    def _counts(self) -> dict:
        return {
            "total": self.result.total,
            "succeeded": self.result.succeeded,
            "failed": self.result.failed,
            "skipped": self.result.skipped,
        }

    def tick(self) -> None:
        self.seen += 1
        if self.seen % self.log_every == 0 or self.seen == self.result.total:
            r = self.result
            self._logger.info(
                f"{r.stage}: {self.seen}/{r.total} ({r.succeeded} ok, {r.failed} failed, {r.skipped} skipped)",
                extra={"event": "progress_update", "stage": r.stage, **self._counts()},
            )

    def finish(self) -> int:
        """Log the stage totals and return elapsed milliseconds."""
        elapsed_ms = int((time.monotonic() - self._start) * 1000)
        r = self.result
        self._logger.info(
            f"{r.stage}: completed {self.seen}/{r.total} in {elapsed_ms}ms",
            extra={"event": "progress_complete", "stage": r.stage, "duration_ms": elapsed_ms, **self._counts()},
        )
        return elapsed_ms
