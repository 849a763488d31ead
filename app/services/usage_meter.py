# app/services/usage_meter.py
"""
Token usage to cost conversion and usage logging.

Usage rows are accounting artifacts only: writing one never affects
pipeline state, and a failed write is logged and dropped.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.constants import UsagePricing
from app.models import ApiUsageLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostBreakdown:
    """Token counts and USD cost of one call."""

    input_tokens: int
    output_tokens: int
    total_tokens: int
    cost_input_usd: float
    cost_output_usd: float
    cost_usd: float


def _token_count(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def calculate_costs(usage: dict[str, Any] | None) -> CostBreakdown:
    """
    Convert a usage object ({prompt_tokens, completion_tokens, total_tokens})
    into a cost breakdown at fixed per-million-token rates.

    Missing counts are treated as zero; total_tokens falls back to
    input + output.
    """
    usage = usage or {}
    input_tokens = _token_count(usage.get("prompt_tokens"))
    output_tokens = _token_count(usage.get("completion_tokens"))
    total = usage.get("total_tokens")
    total_tokens = _token_count(total) if total is not None else input_tokens + output_tokens

    cost_input_usd = (input_tokens / 1_000_000) * UsagePricing.INPUT_PRICE_PER_M
    cost_output_usd = (output_tokens / 1_000_000) * UsagePricing.OUTPUT_PRICE_PER_M

    return CostBreakdown(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
        cost_input_usd=cost_input_usd,
        cost_output_usd=cost_output_usd,
        cost_usd=cost_input_usd + cost_output_usd,
    )


def log_usage(
    db: Session,
    endpoint: str,
    usage: dict[str, Any] | None,
    response_time_ms: int | None = None,
    post_id: uuid.UUID | str | None = None,
    function_name: str | None = None,
    status: str = "success",
    error_message: str | None = None,
    question_snippet: str | None = None,
) -> ApiUsageLog | None:
    """
    Append one usage row. Returns the row, or None if the write failed.

    Direct-interaction (chat) callers pass question_snippet; it is stored
    truncated. Batch stage calls leave it empty.
    """
    costs = calculate_costs(usage)
    if isinstance(post_id, str):
        try:
            post_id = uuid.UUID(post_id)
        except ValueError:
            post_id = None

    row = ApiUsageLog(
        endpoint=endpoint,
        function_name=function_name or endpoint,
        model_used=UsagePricing.MODEL,
        input_tokens=costs.input_tokens,
        output_tokens=costs.output_tokens,
        total_tokens=costs.total_tokens,
        cost_input_usd=costs.cost_input_usd,
        cost_output_usd=costs.cost_output_usd,
        cost_usd=costs.cost_usd,
        response_time_ms=response_time_ms,
        status=status,
        error_message=error_message,
        post_id=post_id,
        question=question_snippet[: UsagePricing.QUESTION_SNIPPET_CHARS] if question_snippet else None,
    )

    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            f"Failed to log usage for {endpoint}: {e}",
            extra={"event": "usage_log_failed", "endpoint": endpoint},
        )
        return None

    logger.info(
        f"Usage logged for {endpoint}: {costs.total_tokens} tokens, ${costs.cost_usd:.6f}",
        extra={
            "event": "usage_logged",
            "endpoint": endpoint,
            "tokens_in": costs.input_tokens,
            "tokens_out": costs.output_tokens,
            "cost_usd": round(costs.cost_usd, 6),
        },
    )
    return row
