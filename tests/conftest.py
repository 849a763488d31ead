# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import timedelta

import pytest

# Set test environment
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.models import AnalysisStage, Post, ThreatLevel, utcnow  # noqa: E402
from app.services.classifier_client import ClassificationResponse  # noqa: E402


@pytest.fixture
def db():
    """Fresh in-memory schema per test."""
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def settings():
    from app.config import Settings

    return Settings(DATABASE_URL="sqlite:///:memory:", LOG_JSON=False)


@pytest.fixture
def make_post(db):
    """
    Create a committed post. Defaults to an active, unclassified post with
    content, ingested now. Use age_hours to backdate created_at.
    """

    def _make(age_hours: float | None = None, **fields) -> Post:
        fields.setdefault("title", "Sample post")
        fields.setdefault("contents", "Some post content")
        if age_hours is not None:
            fields.setdefault("created_at", utcnow() - timedelta(hours=age_hours))
        post = Post(**fields)
        db.add(post)
        db.commit()
        return post

    return _make


class FakeClassifier:
    """
    Stands in for the classification service.

    On success it writes the stage result and timestamp the way the real
    service does, then returns a 200. Per-post overrides in `responses` are
    either a ClassificationResponse to return or an exception to raise.
    """

    def __init__(self, db, is_psyop: bool = True, threat_level: str = ThreatLevel.MEDIUM.value, usage=None):
        self.db = db
        self.is_psyop = is_psyop
        self.threat_level = threat_level
        self.usage = usage
        self.responses: dict = {}
        self.calls: list[tuple[AnalysisStage, object]] = []

    def invoke(self, stage: AnalysisStage, post: Post) -> ClassificationResponse:
        self.calls.append((stage, post.id))
        override = self.responses.get(post.id)
        if isinstance(override, Exception):
            raise override
        if override is not None:
            return override

        now = utcnow()
        if stage == AnalysisStage.QUICK:
            values = {Post.is_psyop: self.is_psyop, Post.quick_analyzed_at: now, Post.analysis_stage: "quick"}
        elif stage == AnalysisStage.DEEP:
            values = {Post.deep_analyzed_at: now, Post.threat_level: self.threat_level, Post.analysis_stage: "deep"}
        else:
            values = {Post.deepest_analysis_completed_at: now, Post.analysis_stage: "deepest"}
        self.db.query(Post).filter(Post.id == post.id).update(values, synchronize_session=False)
        self.db.commit()

        payload = {"success": True}
        if self.usage is not None:
            payload["usage"] = self.usage
        return ClassificationResponse(ok=True, status_code=200, body_text='{"success": true}', payload=payload)

    def calls_for(self, stage: AnalysisStage) -> list:
        return [post_id for called_stage, post_id in self.calls if called_stage == stage]


@pytest.fixture
def fake_classifier(db):
    return FakeClassifier(db)


def error_response(status_code: int, body: str) -> ClassificationResponse:
    return ClassificationResponse(ok=False, status_code=status_code, body_text=body)


@pytest.fixture
def make_error_response():
    return error_response
