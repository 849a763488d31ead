# app/constants.py
"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used throughout the codebase should be
defined here with documentation explaining their purpose.
"""


class PipelineDefaults:
    """Default values for pipeline execution."""

    QUICK_BATCH_SIZE = 20               # Overridden by auto_analysis_config.batch_size
    DEEP_BATCH_CAP = 20                 # Fixed cap, not configurable
    DEEPEST_BATCH_CAP = 20              # Fixed cap, not configurable
    PROGRESS_LOG_EVERY = 5              # Progress log interval within a stage


class JobNames:
    """Job names recorded on scheduled_job_runs rows."""

    PIPELINE = "psyop-batch-pipeline"
    RETENTION = "auto-cleanup"


class StageEndpoints:
    """Classification service endpoint per pipeline stage."""

    QUICK = "quick-psyop-detection"
    DEEP = "analyze-post-deepseek"
    DEEPEST = "deepest-analysis"


class BenignSkipPhrases:
    """Response body phrases that mark a non-error skip (matched case-insensitively)."""

    NOT_FOUND = ("post not found",)
    DEEPEST_NOT_READY = ("not ready for deepest analysis", "not yet eligible")


class RetentionDefaults:
    """Data retention and lifecycle constants."""

    POSTS_RETENTION_HOURS = 24          # Overridden by auto_analysis_config.posts_retention_hours
    MUTATION_CHUNK_SIZE = 200           # Max ids per archive/delete/reset statement
    QUEUE_RETENTION_DAYS = 7            # Finished queue entries older than this are purged


class UsagePricing:
    """Classification model pricing (USD per 1M tokens)."""

    MODEL = "deepseek-chat"
    INPUT_PRICE_PER_M = 0.14
    OUTPUT_PRICE_PER_M = 0.28
    QUESTION_SNIPPET_CHARS = 200        # Stored prefix of a direct-interaction question


class ConfigKeys:
    """Keys in the auto_analysis_config table."""

    ENABLED = "enabled"
    BATCH_SIZE = "batch_size"
    POSTS_RETENTION_HOURS = "posts_retention_hours"
    LAST_COUNTER_RESET = "last_counter_reset"
