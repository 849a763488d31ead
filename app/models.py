# app/models.py
"""
Psyop pipeline database models

Tables:
- Post: Content items moving through the quick -> deep -> deepest pipeline
- JobRun: One row per scheduled pipeline or retention invocation
- CleanupHistory: Append-only audit row per retention run
- ApiUsageLog: Append-only token/cost row per classification call
- AutoAnalysisConfig: Key/value run configuration
- AutoAnalysisStats: Rolling daily succeeded/failed counters
- SourceProfile, SocialMediaChannel: Auxiliary stats with rolling 30-day counters
- AnalysisQueueItem: Secondary work queue purged by retention
"""

from datetime import UTC, datetime
from enum import Enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the store records times."""
    return datetime.now(UTC).replace(tzinfo=None)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class PostStatus(str, Enum):
    """Lifecycle status of a post."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class PsyopFlag(str, Enum):
    """
    Tri-state classification flag.

    Stored as a nullable boolean (is_psyop); NULL means the quick stage
    has not classified the post yet.
    """
    UNCLASSIFIED = "unclassified"
    POSITIVE = "positive"
    NEGATIVE = "negative"

    @classmethod
    def from_column(cls, value: bool | None) -> "PsyopFlag":
        if value is None:
            return cls.UNCLASSIFIED
        return cls.POSITIVE if value is True else cls.NEGATIVE


class ThreatLevel(str, Enum):
    """Ordered threat level: Low < Medium < High < Critical."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _THREAT_RANK[self]

    @classmethod
    def parse(cls, value: str | None) -> "ThreatLevel | None":
        """Return the enum member for a stored value, or None if unset/unknown."""
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


_THREAT_RANK = {
    ThreatLevel.LOW: 0,
    ThreatLevel.MEDIUM: 1,
    ThreatLevel.HIGH: 2,
    ThreatLevel.CRITICAL: 3,
}

ELEVATED_THREAT_LEVELS = frozenset({ThreatLevel.HIGH, ThreatLevel.CRITICAL})
ROUTINE_THREAT_LEVELS = frozenset({ThreatLevel.LOW, ThreatLevel.MEDIUM})


class AnalysisStage(str, Enum):
    """Pipeline stages, in execution order."""
    QUICK = "quick"
    DEEP = "deep"
    DEEPEST = "deepest"


class JobRunStatus(str, Enum):
    """Job run lifecycle: running -> success | failed."""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class QueueStatus(str, Enum):
    """Status of a secondary analysis queue entry."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# -----------------------------------------------------------------------------
# Post
# -----------------------------------------------------------------------------

class Post(Base):
    """
    A content item moving through the classification pipeline.

    Stage timestamps are written by the classification service, never by
    this service. Each is set at most once and later than the previous one.
    """
    __tablename__ = "posts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Content
    title = Column(Text, nullable=True)
    contents = Column(Text, nullable=True)
    source = Column(String(255), nullable=True)
    language = Column(String(32), nullable=True)
    article_url = Column(Text, nullable=True)

    # Lifecycle
    status = Column(String(32), default=PostStatus.ACTIVE.value, nullable=False)
    is_psyop = Column(Boolean, nullable=True)  # NULL = unclassified

    # Results (written by the classification service)
    threat_level = Column(String(16), nullable=True)  # ThreatLevel enum
    psyop_risk_score = Column(Float, nullable=True)
    psyop_confidence = Column(Float, nullable=True)
    psyop_category = Column(String(64), nullable=True)
    stance_type = Column(String(64), nullable=True)
    analysis_stage = Column(String(16), nullable=True)
    analysis_summary = Column(Text, nullable=True)

    # Stage timestamps
    quick_analyzed_at = Column(DateTime, nullable=True)
    deep_analyzed_at = Column(DateTime, nullable=True)
    deepest_analysis_completed_at = Column(DateTime, nullable=True)

    # Time
    published_at = Column(DateTime, nullable=True)  # Business time
    created_at = Column(DateTime, default=utcnow, nullable=False)  # Ingestion time
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_posts_is_psyop", "is_psyop"),
        Index("ix_posts_status", "status"),
        Index("ix_posts_created_at", "created_at"),
        Index("ix_posts_published_at", "published_at"),
        Index("ix_posts_deep_analyzed_at", "deep_analyzed_at"),
    )

    @property
    def psyop_flag(self) -> PsyopFlag:
        return PsyopFlag.from_column(self.is_psyop)

    @property
    def threat(self) -> ThreatLevel | None:
        return ThreatLevel.parse(self.threat_level)

    @property
    def has_content(self) -> bool:
        return bool(self.contents and self.contents.strip())

    @property
    def is_archived(self) -> bool:
        return self.status == PostStatus.ARCHIVED.value


# -----------------------------------------------------------------------------
# JobRun
# -----------------------------------------------------------------------------

class JobRun(Base):
    """One tracked execution of a scheduled batch (pipeline or retention)."""
    __tablename__ = "scheduled_job_runs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_name = Column(String(64), nullable=False)
    trigger_source = Column(String(64), nullable=False)
    status = Column(String(16), default=JobRunStatus.RUNNING.value, nullable=False)

    started_at = Column(DateTime, default=utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    http_status = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    payload = Column(JSONType, nullable=True)
    run_metadata = Column("metadata", JSONType, nullable=True)

    __table_args__ = (
        Index("ix_scheduled_job_runs_job_name", "job_name"),
        Index("ix_scheduled_job_runs_started_at", "started_at"),
    )


# -----------------------------------------------------------------------------
# CleanupHistory
# -----------------------------------------------------------------------------

class CleanupHistory(Base):
    """Audit row written at the end of each retention run. Never updated."""
    __tablename__ = "cleanup_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    executed_at = Column(DateTime, default=utcnow, nullable=False)

    posts_deleted = Column(Integer, default=0, nullable=False)
    posts_archived = Column(Integer, default=0, nullable=False)
    queue_cleaned = Column(Integer, default=0, nullable=False)

    # Diagnostics
    total_posts = Column(Integer, default=0, nullable=False)
    old_posts = Column(Integer, default=0, nullable=False)
    retention_hours = Column(Integer, nullable=False)
    cutoff_date = Column(DateTime, nullable=False)

    success = Column(Boolean, default=True, nullable=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_cleanup_history_executed_at", "executed_at"),
    )


# -----------------------------------------------------------------------------
# ApiUsageLog
# -----------------------------------------------------------------------------

class ApiUsageLog(Base):
    """Token usage and derived cost of one classification call."""
    __tablename__ = "api_usage_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    endpoint = Column(String(64), nullable=False)
    function_name = Column(String(64), nullable=True)
    model_used = Column(String(64), nullable=False)

    input_tokens = Column(Integer, default=0, nullable=False)
    output_tokens = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)

    cost_input_usd = Column(Float, default=0.0, nullable=False)
    cost_output_usd = Column(Float, default=0.0, nullable=False)
    cost_usd = Column(Float, default=0.0, nullable=False)

    response_time_ms = Column(Integer, nullable=True)
    status = Column(String(16), default="success", nullable=False)
    error_message = Column(Text, nullable=True)
    post_id = Column(Uuid, nullable=True)
    question = Column(Text, nullable=True)              # Snippet of the user question (chat flows)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_api_usage_logs_created_at", "created_at"),
    )


# -----------------------------------------------------------------------------
# Configuration and rolling stats
# -----------------------------------------------------------------------------

class AutoAnalysisConfig(Base):
    """Key/value run configuration (enabled, batch_size, posts_retention_hours, ...)."""
    __tablename__ = "auto_analysis_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    config_key = Column(String(64), unique=True, nullable=False)
    config_value = Column(JSONType, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AutoAnalysisStats(Base):
    """Per-day pipeline counters."""
    __tablename__ = "auto_analysis_stats"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    stat_date = Column(Date, unique=True, nullable=False)
    posts_analyzed = Column(Integer, default=0, nullable=False)
    posts_failed = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SourceProfile(Base):
    """Per-source statistics with a rolling 30-day psyop counter."""
    __tablename__ = "source_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_name = Column(String(255), nullable=False)
    historical_psyop_count = Column(Integer, default=0, nullable=False)
    last_30days_psyop_count = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class SocialMediaChannel(Base):
    """Per-channel statistics with a rolling 30-day psyop counter."""
    __tablename__ = "social_media_channels"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    channel_name = Column(String(255), nullable=False)
    platform = Column(String(64), nullable=True)
    historical_psyop_count = Column(Integer, default=0, nullable=False)
    last_30days_psyop_count = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# -----------------------------------------------------------------------------
# AnalysisQueueItem
# -----------------------------------------------------------------------------

class AnalysisQueueItem(Base):
    """Secondary work queue. Stale finished entries are purged by retention."""
    __tablename__ = "analysis_queue"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    status = Column(String(16), default=QueueStatus.PENDING.value, nullable=False)
    priority = Column(Integer, default=5, nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    max_retries = Column(Integer, default=3, nullable=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_analysis_queue_status", "status"),
    )
