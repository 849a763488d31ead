# app/services/classifier_client.py
"""
HTTP client for the external classification service.

One POST per post per stage. The service loads the post itself, runs the
model and writes the stage result fields and timestamp as a side effect;
this client only reports whether the call succeeded.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.config import Settings
from app.constants import StageEndpoints
from app.models import AnalysisStage, Post

logger = logging.getLogger(__name__)

STAGE_ENDPOINTS = {
    AnalysisStage.QUICK: StageEndpoints.QUICK,
    AnalysisStage.DEEP: StageEndpoints.DEEP,
    AnalysisStage.DEEPEST: StageEndpoints.DEEPEST,
}


@dataclass
class ClassificationResponse:
    """Outcome of one classification call."""

    ok: bool
    status_code: int
    body_text: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    latency_ms: int = 0

    @property
    def usage(self) -> dict[str, Any] | None:
        usage = self.payload.get("usage")
        return usage if isinstance(usage, dict) else None


def build_request_body(stage: AnalysisStage, post: Post) -> dict[str, Any]:
    """Request body for a stage. The deep stage also carries the post context."""
    body: dict[str, Any] = {"postId": str(post.id)}
    if stage == AnalysisStage.DEEP:
        body.update(
            {
                "title": post.title,
                "contents": post.contents,
                "source": post.source,
                "language": post.language,
                "published_at": post.published_at.isoformat() if post.published_at else None,
            }
        )
    return body


def _parse_payload(text: str) -> dict[str, Any]:
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ClassificationClient:
    """
    Synchronous client for the stage endpoints.

    Usage:
        with ClassificationClient.from_settings(settings) as client:
            response = client.invoke(AnalysisStage.QUICK, post)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClassificationClient":
        return cls(
            base_url=settings.CLASSIFIER_BASE_URL,
            api_key=settings.CLASSIFIER_API_KEY,
            timeout=settings.CLASSIFIER_TIMEOUT_SECONDS,
        )

    def invoke(self, stage: AnalysisStage, post: Post) -> ClassificationResponse:
        """
        Call the stage endpoint for one post.

        Non-2xx responses are returned, not raised. Transport failures
        raise httpx.HTTPError.
        """
        endpoint = STAGE_ENDPOINTS[stage]
        start_time = time.time()
        response = self._client.post(f"/{endpoint}", json=build_request_body(stage, post))
        latency_ms = int((time.time() - start_time) * 1000)

        text = response.text
        logger.debug(
            f"{endpoint} responded {response.status_code} for post {post.id} in {latency_ms}ms",
            extra={
                "event": "classifier_response",
                "endpoint": endpoint,
                "post_id": str(post.id),
                "status_code": response.status_code,
                "duration_ms": latency_ms,
            },
        )
        return ClassificationResponse(
            ok=response.is_success,
            status_code=response.status_code,
            body_text=text,
            payload=_parse_payload(text),
            latency_ms=latency_ms,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ClassificationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
