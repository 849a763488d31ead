# tests/unit/test_retention/test_policy.py
"""Unit tests for the per-post retention decision."""

from datetime import timedelta

import pytest

from app.models import Post, PostStatus, utcnow
from app.services.retention.policy import RetentionAction, chunk_ids, decide, is_disposable, is_important

NOW = utcnow()
CUTOFF = NOW - timedelta(hours=24)
OLD = NOW - timedelta(hours=48)
YOUNG = NOW - timedelta(hours=1)


def _post(created_at=OLD, status=PostStatus.ACTIVE.value, is_psyop=None, threat_level=None, published_at=None):
    return Post(
        created_at=created_at,
        published_at=published_at,
        status=status,
        is_psyop=is_psyop,
        threat_level=threat_level,
        contents="content",
    )


class TestDecide:
    """One case per row of the retention policy table."""

    @pytest.mark.parametrize("is_psyop", [True, False, None])
    @pytest.mark.parametrize("threat_level", ["Low", "Critical", None])
    def test_younger_is_untouched(self, is_psyop, threat_level):
        post = _post(created_at=YOUNG, is_psyop=is_psyop, threat_level=threat_level)

        assert decide(post, CUTOFF) == RetentionAction.UNTOUCHED

    @pytest.mark.parametrize("is_psyop,threat_level", [(True, "High"), (False, "Low"), (None, None)])
    def test_archived_is_never_touched(self, is_psyop, threat_level):
        post = _post(status=PostStatus.ARCHIVED.value, is_psyop=is_psyop, threat_level=threat_level)

        assert decide(post, CUTOFF) == RetentionAction.UNTOUCHED

    @pytest.mark.parametrize("threat_level", ["Low", "Medium", "High", "Critical", None])
    def test_positive_flag_is_archived(self, threat_level):
        assert decide(_post(is_psyop=True, threat_level=threat_level), CUTOFF) == RetentionAction.ARCHIVE

    @pytest.mark.parametrize("is_psyop", [True, False, None])
    @pytest.mark.parametrize("threat_level", ["High", "Critical"])
    def test_elevated_threat_is_archived(self, is_psyop, threat_level):
        assert decide(_post(is_psyop=is_psyop, threat_level=threat_level), CUTOFF) == RetentionAction.ARCHIVE

    @pytest.mark.parametrize("threat_level", ["Low", "Medium"])
    def test_negative_routine_is_deleted(self, threat_level):
        assert decide(_post(is_psyop=False, threat_level=threat_level), CUTOFF) == RetentionAction.DELETE

    @pytest.mark.parametrize("threat_level", ["Low", "Medium", None])
    def test_unclassified_is_untouched(self, threat_level):
        assert decide(_post(is_psyop=None, threat_level=threat_level), CUTOFF) == RetentionAction.UNTOUCHED

    def test_negative_without_threat_is_untouched(self):
        assert decide(_post(is_psyop=False, threat_level=None), CUTOFF) == RetentionAction.UNTOUCHED

    def test_published_at_field(self):
        post = _post(created_at=OLD, published_at=YOUNG, is_psyop=False, threat_level="Low")

        assert decide(post, CUTOFF, "created_at") == RetentionAction.DELETE
        assert decide(post, CUTOFF, "published_at") == RetentionAction.UNTOUCHED

    def test_missing_timestamp_is_never_aged(self):
        post = _post(is_psyop=False, threat_level="Low", published_at=None)

        assert decide(post, CUTOFF, "published_at") == RetentionAction.UNTOUCHED


class TestImportance:
    def test_unclassified_routine_is_neither(self):
        """An unset flag is never treated as negative."""
        post = _post(is_psyop=None, threat_level="Low")

        assert is_important(post) is False
        assert is_disposable(post) is False

    def test_important_and_disposable_are_exclusive(self):
        for is_psyop in (True, False, None):
            for threat_level in ("Low", "Medium", "High", "Critical", None):
                post = _post(is_psyop=is_psyop, threat_level=threat_level)
                assert not (is_important(post) and is_disposable(post))

    def test_unknown_threat_level_is_neither(self):
        post = _post(is_psyop=False, threat_level="Severe")

        assert is_important(post) is False
        assert is_disposable(post) is False


class TestChunkIds:
    def test_splits_into_bounded_chunks(self):
        chunks = list(chunk_ids(list(range(450)), size=200))

        assert [len(chunk) for chunk in chunks] == [200, 200, 50]

    def test_empty(self):
        assert list(chunk_ids([])) == []
