# app/services/retention/__init__.py
"""
Retention management for the posts store.

Old posts are archived when important (positively flagged or elevated
threat) and hard-deleted when disposable (negatively flagged with a
routine threat). Everything else is left untouched.

Modules:
- policy: Per-post retention decision
- cleanup_service: Retention pass, dry-run preview, job wrapper
- counters: Daily reset of rolling 30-day counters
- queue: Secondary analysis queue cleanup
- history: Cleanup History audit rows
"""

from app.services.retention.cleanup_service import (
    CleanupResult,
    RetentionPreview,
    preview_retention,
    run_retention,
    run_retention_job,
)
from app.services.retention.counters import reset_rolling_counters
from app.services.retention.history import list_cleanup_history, record_cleanup_history
from app.services.retention.policy import RetentionAction, decide, is_disposable, is_important
from app.services.retention.queue import cleanup_analysis_queue

__all__ = [
    # Policy
    "RetentionAction",
    "decide",
    "is_important",
    "is_disposable",
    # Pass
    "run_retention",
    "run_retention_job",
    "preview_retention",
    "CleanupResult",
    "RetentionPreview",
    # Maintenance
    "reset_rolling_counters",
    "cleanup_analysis_queue",
    # History
    "record_cleanup_history",
    "list_cleanup_history",
]
