"""Tests for kernel settings loading (YAML file plus environment)."""

import pytest
import yaml

from procurement_kernel.config import (
    DEFAULT_DATABASE_URL,
    KernelSettings,
    load_settings,
    settings_checksum,
)


def _write_yaml(tmp_path, data, name="procurement.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:
    def test_defaults(self):
        settings = load_settings(env={})
        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.money_places == 2
        assert settings.scope_cache_enabled is True

    def test_invalid_money_places(self):
        with pytest.raises(ValueError):
            KernelSettings(money_places=12)

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError):
            KernelSettings(pool_size=0)


class TestYamlLoading:
    def test_flat_file(self, tmp_path):
        path = _write_yaml(tmp_path, {"database_url": "sqlite:///x.db", "pool_size": 3})
        settings = load_settings(path, env={})
        assert settings.database_url == "sqlite:///x.db"
        assert settings.pool_size == 3

    def test_nested_under_procurement_key(self, tmp_path):
        path = _write_yaml(tmp_path, {"procurement": {"echo_sql": True}})
        assert load_settings(path, env={}).echo_sql is True

    def test_unknown_key_rejected(self, tmp_path):
        path = _write_yaml(tmp_path, {"currency": "ETB"})
        with pytest.raises(ValueError, match="Unknown settings keys"):
            load_settings(path, env={})

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_settings(path, env={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml", env={})


class TestEnvironmentOverrides:
    def test_env_beats_file(self, tmp_path):
        path = _write_yaml(tmp_path, {"pool_size": 3, "scope_cache_enabled": True})
        settings = load_settings(
            path,
            env={"PROCUREMENT_POOL_SIZE": "7", "PROCUREMENT_SCOPE_CACHE_ENABLED": "false"},
        )
        assert settings.pool_size == 7
        assert settings.scope_cache_enabled is False

    def test_non_integer_rejected(self):
        with pytest.raises(ValueError, match="must be an integer"):
            load_settings(env={"PROCUREMENT_MAX_OVERFLOW": "many"})

    def test_unrelated_env_ignored(self):
        settings = load_settings(env={"PROCUREMENT": "x", "DATABASE_URL": "postgresql://elsewhere"})
        assert settings.database_url == DEFAULT_DATABASE_URL


class TestChecksum:
    def test_stable(self):
        assert settings_checksum(KernelSettings()) == settings_checksum(KernelSettings())

    def test_changes_with_values(self):
        assert settings_checksum(KernelSettings()) != settings_checksum(KernelSettings(pool_size=2))

    def test_logged_on_load(self, captured_logs):
        settings = load_settings(env={})
        records = [r for r in captured_logs() if r["message"] == "settings_loaded"]
        assert records[-1]["checksum"] == settings_checksum(settings)
