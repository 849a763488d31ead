# app/services/__init__.py
"""
Business logic services.
"""

from app.services.batch_runner import BatchSummary, run_pipeline_pass
from app.services.classifier_client import ClassificationClient
from app.services.job_monitor import JobRunMonitor
from app.services.run_config import RunConfig, load_run_config

__all__ = [
    "run_pipeline_pass",
    "BatchSummary",
    "ClassificationClient",
    "JobRunMonitor",
    "RunConfig",
    "load_run_config",
]
