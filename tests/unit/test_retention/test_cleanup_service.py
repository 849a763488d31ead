# tests/unit/test_retention/test_cleanup_service.py
"""
Unit tests for the retention pass.

Runs against an in-memory store: archive phase, fresh re-read delete
phase, no-op shortcut, audit row and job run wrapper.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from app.constants import JobNames
from app.models import CleanupHistory, JobRun, JobRunStatus, Post, PostStatus, utcnow
from app.services.errors import RetentionRunError
from app.services.job_monitor import JobRunMonitor
from app.services.retention import preview_retention, run_retention, run_retention_job
from app.services.retention.cleanup_service import NOTHING_TO_DO
from app.services.run_config import RunConfig

CONFIG = RunConfig(posts_retention_hours=24)


def _status(db, post_id):
    db.expire_all()
    post = db.get(Post, post_id)
    return None if post is None else post.status


class TestPolicyTable:
    """Each row of the policy table, applied by a real retention run."""

    def test_younger_untouched(self, db, make_post):
        post = make_post(age_hours=1, is_psyop=False, threat_level="Low")

        run_retention(db, CONFIG)

        assert _status(db, post.id) == PostStatus.ACTIVE.value

    def test_old_archived_never_deleted(self, db, make_post):
        post = make_post(age_hours=500, status=PostStatus.ARCHIVED.value, is_psyop=False, threat_level="Low")

        result = run_retention(db, CONFIG)

        assert _status(db, post.id) == PostStatus.ARCHIVED.value
        assert result.posts_deleted == 0

    def test_positive_medium_archived(self, db, make_post):
        """Flag true, Medium threat, 48h old, 24h window -> archived, not deleted."""
        post = make_post(age_hours=48, is_psyop=True, threat_level="Medium")

        result = run_retention(db, CONFIG)

        assert _status(db, post.id) == PostStatus.ARCHIVED.value
        assert result.posts_archived == 1
        assert result.posts_deleted == 0

    def test_elevated_threat_archived(self, db, make_post):
        post = make_post(age_hours=48, is_psyop=None, threat_level="Critical")

        run_retention(db, CONFIG)

        assert _status(db, post.id) == PostStatus.ARCHIVED.value

    def test_negative_low_deleted(self, db, make_post):
        """Flag false, Low threat, 48h old, 24h window -> deleted."""
        post = make_post(age_hours=48, is_psyop=False, threat_level="Low")

        result = run_retention(db, CONFIG)

        assert _status(db, post.id) is None
        assert result.posts_deleted == 1

    def test_unclassified_untouched(self, db, make_post):
        post = make_post(age_hours=48, is_psyop=None, threat_level="Medium")

        result = run_retention(db, CONFIG)

        assert _status(db, post.id) == PostStatus.ACTIVE.value
        assert result.posts_archived == 0
        assert result.posts_deleted == 0


class TestRunRetention:
    def test_archive_and_delete_are_mutually_exclusive(self, db, make_post):
        posts = []
        for is_psyop in (True, False, None):
            for threat_level in ("Low", "Medium", "High", "Critical", None):
                posts.append(make_post(age_hours=72, is_psyop=is_psyop, threat_level=threat_level))

        result = run_retention(db, CONFIG)

        statuses = {post.id: _status(db, post.id) for post in posts}
        archived = {pid for pid, status in statuses.items() if status == PostStatus.ARCHIVED.value}
        deleted = {pid for pid, status in statuses.items() if status is None}
        assert archived.isdisjoint(deleted)
        assert len(archived) == result.posts_archived == 9
        assert len(deleted) == result.posts_deleted == 2

    def test_noop_shortcut_still_writes_history(self, db, make_post):
        make_post(age_hours=1, is_psyop=False, threat_level="Low")

        result = run_retention(db, CONFIG)

        assert result.noop is True
        assert result.message == NOTHING_TO_DO
        assert result.posts_deleted == 0
        assert result.posts_archived == 0
        row = db.query(CleanupHistory).one()
        assert row.success is True
        assert row.posts_deleted == 0
        assert row.posts_archived == 0
        assert row.retention_hours == 24

    def test_noop_skips_archive_and_delete_queries(self, db):
        with patch("app.services.retention.cleanup_service._old_active_posts") as old_active:
            run_retention(db, CONFIG)

        old_active.assert_not_called()

    def test_history_records_counts_and_cutoff(self, db, make_post):
        now = utcnow()
        make_post(age_hours=48, is_psyop=True)
        make_post(age_hours=48, is_psyop=False, threat_level="Low")
        make_post(age_hours=2)

        result = run_retention(db, CONFIG, now=now)

        row = db.query(CleanupHistory).one()
        assert row.total_posts == 3
        assert row.old_posts == 2
        assert row.posts_archived == 1
        assert row.posts_deleted == 1
        assert row.cutoff_date == now - timedelta(hours=24)
        assert result.history_recorded is True

    def test_history_failure_does_not_fail_run(self, db, make_post):
        make_post(age_hours=48, is_psyop=False, threat_level="Low")

        with patch(
            "app.services.retention.cleanup_service.record_cleanup_history",
            return_value=None,
        ):
            result = run_retention(db, CONFIG)

        assert result.success is True
        assert result.history_recorded is False
        assert result.posts_deleted == 1

    def test_phase_failure_records_failed_history_and_raises(self, db, make_post):
        make_post(age_hours=48, is_psyop=True)

        with patch(
            "app.services.retention.cleanup_service._archive_posts",
            side_effect=OperationalError("UPDATE", {}, Exception("lock timeout")),
        ):
            with pytest.raises(OperationalError):
                run_retention(db, CONFIG)

        row = db.query(CleanupHistory).one()
        assert row.success is False
        assert "lock timeout" in row.error_message

    def test_published_at_timestamp_field(self, db, make_post):
        now = utcnow()
        post = make_post(age_hours=48, published_at=now, is_psyop=False, threat_level="Low")

        result = run_retention(db, RunConfig(retention_timestamp_field="published_at"), now=now)

        assert result.noop is True
        assert _status(db, post.id) == PostStatus.ACTIVE.value


class TestPreviewRetention:
    def test_counts_without_mutating(self, db, make_post):
        make_post(age_hours=48, is_psyop=True)
        make_post(age_hours=48, threat_level="High")
        make_post(age_hours=48, is_psyop=False, threat_level="Medium")
        make_post(age_hours=1)

        preview = preview_retention(db, CONFIG)

        assert preview.old_posts == 3
        assert preview.would_archive == 2
        assert preview.would_delete == 1
        assert preview.untouched == 1
        assert db.query(Post).filter(Post.status == PostStatus.ARCHIVED.value).count() == 0
        assert db.query(Post).count() == 4


class TestRunRetentionJob:
    @pytest.fixture
    def alerts(self):
        return MagicMock()

    def test_success_closes_job_run(self, db, make_post, settings, alerts):
        make_post(age_hours=48, is_psyop=False, threat_level="Low")

        result = run_retention_job(db, settings, trigger_source="cron", monitor=JobRunMonitor(alerts))

        run = db.query(JobRun).one()
        assert run.job_name == JobNames.RETENTION
        assert run.status == JobRunStatus.SUCCESS.value
        assert run.run_metadata["posts_deleted"] == 1
        assert result.job_run_id == run.id
        alerts.dispatch.assert_not_called()

    def test_failure_marks_run_failed_and_alerts(self, db, make_post, settings, alerts):
        make_post(age_hours=48, is_psyop=True)

        with patch(
            "app.services.retention.cleanup_service.run_retention",
            side_effect=RuntimeError("posts table missing"),
        ):
            with pytest.raises(RetentionRunError) as exc_info:
                run_retention_job(db, settings, monitor=JobRunMonitor(alerts))

        run = db.query(JobRun).one()
        assert run.status == JobRunStatus.FAILED.value
        assert run.http_status == 500
        assert run.error_message == "posts table missing"
        assert exc_info.value.job_run_id == run.id
        alerts.dispatch.assert_called_once()
