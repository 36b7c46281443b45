"""Settings loading: defaults, YAML layer, environment layer."""

from pathlib import Path

import pytest

from inventory_config import compute_checksum, get_settings, load_settings
from inventory_config.settings import LedgerSettings

EXAMPLE_YAML = Path(__file__).resolve().parents[2] / "inventory_config" / "ledger.example.yaml"


def _write(tmp_path, text: str) -> Path:
    path = tmp_path / "ledger.yaml"
    path.write_text(text)
    return path


class TestDefaults:
    def test_empty_environment_gives_defaults(self):
        settings = load_settings(environ={})
        assert settings == LedgerSettings()
        assert settings.database_url.startswith("sqlite")
        assert settings.max_retries == 3

    def test_example_file_parses(self):
        settings = load_settings(EXAMPLE_YAML, environ={})
        assert settings.is_postgres
        assert settings.lock_timeout_ms == 3000
        assert settings.retry_backoff_ms == 25


class TestYamlLayer:
    def test_values_are_coerced(self, tmp_path):
        path = _write(tmp_path, "ledger:\n  max_retries: '7'\n  publish_events: 'off'\n")
        settings = load_settings(path, environ={})
        assert settings.max_retries == 7
        assert settings.publish_events is False

    def test_unknown_key_is_rejected(self, tmp_path):
        path = _write(tmp_path, "ledger:\n  max_retry: 7\n")
        with pytest.raises(ValueError, match="max_retry"):
            load_settings(path, environ={})

    def test_ledger_section_must_be_a_mapping(self, tmp_path):
        path = _write(tmp_path, "ledger: [1, 2]\n")
        with pytest.raises(ValueError):
            load_settings(path, environ={})

    def test_path_from_environment(self, tmp_path):
        path = _write(tmp_path, "ledger:\n  pool_size: 3\n")
        settings = load_settings(environ={"INVENTORY_LEDGER_CONFIG": str(path)})
        assert settings.pool_size == 3

    def test_missing_file_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", environ={})


class TestEnvironmentLayer:
    def test_environment_wins_over_yaml(self, tmp_path):
        path = _write(tmp_path, "ledger:\n  lock_timeout_ms: 100\n")
        settings = load_settings(path, environ={"INVENTORY_LOCK_TIMEOUT_MS": "250"})
        assert settings.lock_timeout_ms == 250

    def test_database_url_fallback(self):
        settings = load_settings(environ={"DATABASE_URL": "postgresql://u:p@db/inv"})
        assert settings.database_url == "postgresql://u:p@db/inv"

    def test_specific_url_beats_fallback(self):
        settings = load_settings(environ={
            "DATABASE_URL": "postgresql://u:p@db/other",
            "INVENTORY_DATABASE_URL": "sqlite:///x.db",
        })
        assert settings.database_url == "sqlite:///x.db"

    def test_bad_integer(self):
        with pytest.raises(ValueError, match="max_retries"):
            load_settings(environ={"INVENTORY_MAX_RETRIES": "many"})


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"database_url": ""},
            {"lock_timeout_ms": 0},
            {"max_retries": -1},
            {"retry_backoff_ms": -5},
            {"cost_decimal_places": 12},
            {"publisher_max_workers": 0},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            LedgerSettings(**kwargs)


class TestChecksum:
    def test_credentials_do_not_affect_checksum(self):
        a = LedgerSettings(database_url="postgresql://a:secret1@db/inv")
        b = LedgerSettings(database_url="postgresql://b:secret2@db/inv")
        assert compute_checksum(a) == compute_checksum(b)

    def test_settings_changes_do(self):
        assert compute_checksum(LedgerSettings()) != compute_checksum(LedgerSettings(max_retries=9))

    def test_get_settings_logs_checksum(self, captured_logs):
        settings = get_settings(environ={})
        logs = [r for r in captured_logs() if r["message"] == "ledger_config_loaded"]
        assert logs and logs[0]["checksum"] == compute_checksum(settings)
