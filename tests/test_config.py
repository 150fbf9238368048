"""
Tests for config.py - settings from the environment.
"""

import os
from pathlib import Path

import pytest

from stale_entities.config import Settings, load_env, load_log_settings, load_settings


class TestLoadSettings:
    """Test environment parsing."""

    def test_defaults(self):
        settings = load_settings({})

        assert settings == Settings()
        assert settings.batch_size == 20
        assert settings.time_limit == 60.0
        assert settings.alert_after_attempts is None
        assert settings.max_batches_per_tick is None

    def test_overrides(self):
        settings = load_settings({
            "STALE_ENTITIES_DB_PATH": "/tmp/q.db",
            "STALE_ENTITIES_BATCH_SIZE": "5",
            "STALE_ENTITIES_TIME_LIMIT": "2.5",
            "STALE_ENTITIES_ALERT_AFTER": "3",
            "STALE_ENTITIES_MAX_BATCHES": "1",
            "STALE_ENTITIES_LOG_LEVEL": "debug",
            "STALE_ENTITIES_LOG_DIR": "/tmp/logs",
            "STALE_ENTITIES_LOG_FILE": "off",
            "STALE_ENTITIES_STORE_RETRIES": "0",
            "STALE_ENTITIES_STORE_RETRY_DELAY": "0",
        })

        assert settings.db_path == Path("/tmp/q.db")
        assert settings.batch_size == 5
        assert settings.time_limit == 2.5
        assert settings.alert_after_attempts == 3
        assert settings.max_batches_per_tick == 1
        assert settings.log_level == "DEBUG"
        assert settings.log_dir == Path("/tmp/logs")
        assert settings.log_to_file is False
        assert settings.store_max_retries == 0
        assert settings.store_retry_delay == 0.0

    def test_zero_time_limit_disables(self):
        assert load_settings({"STALE_ENTITIES_TIME_LIMIT": "0"}).time_limit is None

    @pytest.mark.parametrize("name,value", [
        ("STALE_ENTITIES_BATCH_SIZE", "lots"),
        ("STALE_ENTITIES_BATCH_SIZE", "0"),
        ("STALE_ENTITIES_TIME_LIMIT", "-1"),
        ("STALE_ENTITIES_LOG_LEVEL", "LOUD"),
        ("STALE_ENTITIES_LOG_FILE", "maybe"),
        ("STALE_ENTITIES_ALERT_AFTER", "0"),
    ])
    def test_invalid_values(self, name, value):
        with pytest.raises(ValueError, match=name):
            load_settings({name: value})

    def test_reads_os_environ(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("STALE_ENTITIES_BATCH_SIZE", "7")
        assert load_settings().batch_size == 7


class TestLoadLogSettings:
    """Test the logging-only settings used by the global logger."""

    def test_defaults(self):
        assert load_log_settings({}) == ("INFO", Path("logs"), True)

    def test_overrides(self):
        env = {
            "STALE_ENTITIES_LOG_LEVEL": "debug",
            "STALE_ENTITIES_LOG_DIR": "/var/log/stale",
            "STALE_ENTITIES_LOG_FILE": "0",
        }
        assert load_log_settings(env) == ("DEBUG", Path("/var/log/stale"), False)

    def test_invalid_values_fall_back(self):
        env = {
            "STALE_ENTITIES_LOG_LEVEL": "loud",
            "STALE_ENTITIES_LOG_FILE": "maybe",
            "STALE_ENTITIES_BATCH_SIZE": "abc",
        }
        assert load_log_settings(env) == ("INFO", Path("logs"), True)

    def test_ignores_other_variables(self):
        with pytest.raises(ValueError):
            load_settings({"STALE_ENTITIES_BATCH_SIZE": "abc"})
        assert load_log_settings({"STALE_ENTITIES_BATCH_SIZE": "abc"})[0] == "INFO"


class TestLoadEnv:
    """Test .env loading."""

    def test_loads_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        # load_dotenv writes into os.environ; keep that out of other tests
        env = {k: v for k, v in os.environ.items() if k != "STALE_ENTITIES_MAX_BATCHES"}
        monkeypatch.setattr(os, "environ", env)
        (tmp_path / ".env").write_text("STALE_ENTITIES_MAX_BATCHES=4\n")

        settings = load_settings()

        assert settings.max_batches_per_tick == 4

    def test_existing_variables_win(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(os, "environ", dict(os.environ))
        monkeypatch.setenv("STALE_ENTITIES_BATCH_SIZE", "9")
        (tmp_path / ".env").write_text("STALE_ENTITIES_BATCH_SIZE=3\n")

        load_env()

        assert load_settings().batch_size == 9

    def test_missing_dotenv_is_fine(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        load_env()
