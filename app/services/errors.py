# app/services/errors.py
"""Run-level errors surfaced to the HTTP and CLI layers."""

import uuid


class JobRunError(RuntimeError):
    """A scheduled run aborted outside the per-item loop."""

    def __init__(self, message: str, job_run_id: uuid.UUID | None = None):
        super().__init__(message)
        self.message = message
        self.job_run_id = job_run_id


class PipelineRunError(JobRunError):
    """The analysis pipeline pass failed."""


class RetentionRunError(JobRunError):
    """The retention pass failed."""
