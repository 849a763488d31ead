# tests/unit/test_run_config.py
"""Unit tests for per-run configuration loading."""

from app.constants import ConfigKeys
from app.models import AutoAnalysisConfig
from app.services.run_config import RunConfig, load_run_config, set_config_value


class TestLoadRunConfig:
    def test_defaults_when_table_empty(self, db):
        config = load_run_config(db)

        assert config == RunConfig()
        assert config.enabled is True
        assert config.batch_size == 20
        assert config.posts_retention_hours == 24

    def test_reads_values(self, db):
        set_config_value(db, ConfigKeys.ENABLED, True)
        set_config_value(db, ConfigKeys.BATCH_SIZE, "5")
        set_config_value(db, ConfigKeys.POSTS_RETENTION_HOURS, 48)
        set_config_value(db, ConfigKeys.LAST_COUNTER_RESET, "2026-01-02")
        db.commit()

        config = load_run_config(db)

        assert config.batch_size == 5
        assert config.posts_retention_hours == 48
        assert config.last_counter_reset == "2026-01-02"

    def test_invalid_values_fall_back(self, db):
        set_config_value(db, ConfigKeys.BATCH_SIZE, "lots")
        set_config_value(db, ConfigKeys.POSTS_RETENTION_HOURS, 0)
        set_config_value(db, ConfigKeys.ENABLED, "maybe")
        db.commit()

        config = load_run_config(db)

        assert config.batch_size == 20
        assert config.posts_retention_hours == 24
        assert config.enabled is True

    def test_retention_field_from_settings(self, db, settings):
        settings.RETENTION_TIMESTAMP_FIELD = "published_at"

        assert load_run_config(db, settings).retention_timestamp_field == "published_at"

    def test_read_once(self, db):
        set_config_value(db, ConfigKeys.BATCH_SIZE, 7)
        db.commit()
        config = load_run_config(db)

        set_config_value(db, ConfigKeys.BATCH_SIZE, 9)
        db.commit()

        # The snapshot does not follow later writes
        assert config.batch_size == 7


class TestSetConfigValue:
    def test_upsert(self, db):
        set_config_value(db, ConfigKeys.BATCH_SIZE, 10)
        db.commit()
        set_config_value(db, ConfigKeys.BATCH_SIZE, 12)
        db.commit()

        rows = db.query(AutoAnalysisConfig).all()
        assert len(rows) == 1
        assert rows[0].config_value == 12
