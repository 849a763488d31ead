# app/services/retention/policy.py
"""
Retention policy decisions for a single post.

| Age vs. cutoff | Status   | Flag  | Threat        | Outcome   |
|----------------|----------|-------|---------------|-----------|
| younger        | any      | any   | any           | untouched |
| older          | archived | any   | any           | untouched |
| older          | active   | true  | any           | archive   |
| older          | active   | any   | High/Critical | archive   |
| older          | active   | false | Low/Medium    | delete    |
| older          | active   | unset | not elevated  | untouched |

Importance is decided here rather than in SQL: the flag is tri-state and
only a strict POSITIVE counts, never a merely truthy value.
"""

from collections.abc import Iterator, Sequence
from datetime import datetime
from enum import Enum

from app.constants import RetentionDefaults
from app.models import ELEVATED_THREAT_LEVELS, ROUTINE_THREAT_LEVELS, Post, PsyopFlag


class RetentionAction(str, Enum):
    UNTOUCHED = "untouched"
    ARCHIVE = "archive"
    DELETE = "delete"


def is_important(post: Post) -> bool:
    """Positively flagged, or elevated threat level."""
    return post.psyop_flag is PsyopFlag.POSITIVE or post.threat in ELEVATED_THREAT_LEVELS


def is_disposable(post: Post) -> bool:
    """Negatively flagged with a routine threat level."""
    return post.psyop_flag is PsyopFlag.NEGATIVE and post.threat in ROUTINE_THREAT_LEVELS


def is_aged(post: Post, cutoff: datetime, timestamp_field: str = "created_at") -> bool:
    """A post without the chosen timestamp is never aged."""
    value = getattr(post, timestamp_field)
    return value is not None and value < cutoff


def decide(post: Post, cutoff: datetime, timestamp_field: str = "created_at") -> RetentionAction:
    """Apply the policy table to one post."""
    if not is_aged(post, cutoff, timestamp_field) or post.is_archived:
        return RetentionAction.UNTOUCHED
    if is_important(post):
        return RetentionAction.ARCHIVE
    if is_disposable(post):
        return RetentionAction.DELETE
    return RetentionAction.UNTOUCHED


def chunk_ids(ids: Sequence, size: int = RetentionDefaults.MUTATION_CHUNK_SIZE) -> Iterator[list]:
    """Split an id list into bounded chunks for scoped mutations."""
    for start in range(0, len(ids), size):
        yield list(ids[start : start + size])
