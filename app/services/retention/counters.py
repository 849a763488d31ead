# app/services/retention/counters.py
"""Daily reset of rolling 30-day psyop counters."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from app.constants import ConfigKeys
from app.models import SocialMediaChannel, SourceProfile, utcnow
from app.services.retention.policy import chunk_ids
from app.services.run_config import RunConfig, set_config_value

logger = logging.getLogger(__name__)

_COUNTER_TABLES = (SourceProfile, SocialMediaChannel)


def reset_rolling_counters(db: Session, config: RunConfig, today: date) -> bool:
    """
    Zero last_30days_psyop_count on source profiles and channels.

    Runs at most once per calendar day, tracked by the last_counter_reset
    config value.

    Returns:
        True if the reset ran, False if it already ran today
    """
    marker = today.isoformat()
    if config.last_counter_reset == marker:
        logger.debug(f"Rolling counters already reset on {marker}")
        return False

    reset = 0
    now = utcnow()
    for model in _COUNTER_TABLES:
        ids = [
            row.id
            for row in db.query(model.id).filter(model.last_30days_psyop_count != 0).all()
        ]
        for chunk in chunk_ids(ids):
            db.query(model).filter(model.id.in_(chunk)).update(
                {model.last_30days_psyop_count: 0, model.updated_at: now},
                synchronize_session=False,
            )
        reset += len(ids)

    set_config_value(db, ConfigKeys.LAST_COUNTER_RESET, marker)
    db.commit()

    logger.info(
        f"Reset rolling counters on {reset} rows",
        extra={"event": "counters_reset", "count": reset},
    )
    return True
