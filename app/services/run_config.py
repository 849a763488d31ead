# app/services/run_config.py
"""
Per-invocation run configuration.

The auto_analysis_config table is read exactly once at the start of each
pipeline or retention run and frozen into a RunConfig that is passed
explicitly to every component.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.config import Settings
from app.constants import ConfigKeys, PipelineDefaults, RetentionDefaults
from app.models import AutoAnalysisConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunConfig:
    """Configuration snapshot for one invocation."""

    enabled: bool = True
    batch_size: int = PipelineDefaults.QUICK_BATCH_SIZE
    posts_retention_hours: int = RetentionDefaults.POSTS_RETENTION_HOURS
    last_counter_reset: str | None = None
    retention_timestamp_field: str = "created_at"


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().strip('"').lower()
        if normalized in ("false", "0", "no", "off"):
            return False
        if normalized in ("true", "1", "yes", "on"):
            return True
    logger.warning(f"Unrecognized boolean config value {value!r}, using {default}")
    return default


def _as_positive_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        parsed = int(str(value).strip().strip('"'))
    except ValueError:
        logger.warning(f"Unrecognized integer config value {value!r}, using {default}")
        return default
    return parsed if parsed > 0 else default


def _as_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().strip('"')
    return text or None


def load_run_config(db: Session, settings: Settings | None = None) -> RunConfig:
    """
    Read the configuration table once and build a RunConfig.

    Missing keys fall back to defaults. Database errors propagate: a run
    that cannot read its configuration fails.
    """
    rows = db.query(AutoAnalysisConfig).all()
    values = {row.config_key: row.config_value for row in rows}

    config = RunConfig(
        enabled=_as_bool(values.get(ConfigKeys.ENABLED), True),
        batch_size=_as_positive_int(values.get(ConfigKeys.BATCH_SIZE), PipelineDefaults.QUICK_BATCH_SIZE),
        posts_retention_hours=_as_positive_int(
            values.get(ConfigKeys.POSTS_RETENTION_HOURS), RetentionDefaults.POSTS_RETENTION_HOURS
        ),
        last_counter_reset=_as_optional_str(values.get(ConfigKeys.LAST_COUNTER_RESET)),
        retention_timestamp_field=settings.RETENTION_TIMESTAMP_FIELD if settings else "created_at",
    )

    logger.debug(f"Loaded run config: {config}")
    return config


def set_config_value(db: Session, key: str, value: Any) -> AutoAnalysisConfig:
    """Insert or update a single configuration key. Caller commits."""
    row = db.query(AutoAnalysisConfig).filter(AutoAnalysisConfig.config_key == key).first()
    if row is None:
        row = AutoAnalysisConfig(config_key=key, config_value=value)
    else:
        row.config_value = value
    db.add(row)
    return row
