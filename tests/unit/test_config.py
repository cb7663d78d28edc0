"""PoolSettingsのユニットテスト。"""

from pathlib import Path

import pytest

from adbpool.config import PoolSettings
from adbpool.drivers.oracle import OracleConnectionFactory
from adbpool.models.errors import ConfigError


class TestPoolSettings:
    def test_defaults(self, clean_env: None) -> None:
        settings = PoolSettings()
        assert settings.initial_size == 5
        assert settings.min_size == 5
        assert settings.max_size == 20
        assert settings.pool_name == "ADB_POOL"
        assert settings.password.get_secret_value() == ""

    def test_reads_environment(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADBPOOL_DSN", "dbname_high")
        monkeypatch.setenv("ADBPOOL_MAX_SIZE", "8")
        settings = PoolSettings()
        assert settings.dsn == "dbname_high"
        assert settings.max_size == 8

    def test_password_is_not_shown(self, settings: PoolSettings) -> None:
        assert "secret" not in repr(settings)

    def test_to_pool_config(self, settings: PoolSettings, factory: object) -> None:
        config = settings.to_pool_config(factory)
        assert config.factory is factory
        assert (config.initial_size, config.min_size, config.max_size) == (2, 1, 3)
        assert config.name == "ADB_POOL"

    def test_to_pool_config_uses_oracle_factory(self, settings: PoolSettings) -> None:
        config = settings.to_pool_config()
        assert isinstance(config.factory, OracleConnectionFactory)
        assert config.factory.dsn == "dbname_medium"
        assert config.factory.user == "ADMIN"


class TestFromYaml:
    def test_load_yaml(self, clean_env: None, tmp_path: Path) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text("dsn: dbname_low\nuser: SH_READER\nmax_size: 10\n", encoding="utf-8")
        settings = PoolSettings.from_yaml(path)
        assert settings.dsn == "dbname_low"
        assert settings.user == "SH_READER"
        assert settings.max_size == 10

    def test_environment_overrides_yaml(self, clean_env: None, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text("dsn: dbname_low\nmax_size: 10\n", encoding="utf-8")
        monkeypatch.setenv("ADBPOOL_MAX_SIZE", "4")
        settings = PoolSettings.from_yaml(path)
        assert settings.dsn == "dbname_low"
        assert settings.max_size == 4

    def test_example_config_file_loads(self, clean_env: None) -> None:
        path = Path(__file__).parent.parent.parent / "config" / "pool.example.yaml"
        settings = PoolSettings.from_yaml(path)
        assert settings.max_size == 20

    def test_missing_file_raises_config_error(self, clean_env: None, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            PoolSettings.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_value_raises_config_error(self, clean_env: None, tmp_path: Path) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text("max_size: many\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            PoolSettings.from_yaml(path)

    def test_non_mapping_raises_config_error(self, clean_env: None, tmp_path: Path) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text("- dsn\n- user\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="mapping"):
            PoolSettings.from_yaml(path)
