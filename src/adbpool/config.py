"""adbpoolの設定管理。"""

from pathlib import Path

import yaml
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings

from adbpool.drivers.base import ConnectionFactory
from adbpool.drivers.oracle import OracleConnectionFactory
from adbpool.models.errors import ConfigError
from adbpool.models.pool import DEFAULT_POOL_NAME, PoolConfig


class PoolSettings(BaseSettings):
    """接続先とプールの設定。環境変数（ADBPOOL_*）から読み込み可能。"""

    model_config = {"env_prefix": "ADBPOOL_"}

    # 接続先（config_dirはウォレットを展開したTNS_ADMINディレクトリ）
    dsn: str = ""
    user: str = ""
    password: SecretStr = SecretStr("")
    config_dir: str | None = None
    wallet_location: str | None = None
    wallet_password: SecretStr | None = None

    # プール
    pool_name: str = DEFAULT_POOL_NAME
    initial_size: int = 5
    min_size: int = 5
    max_size: int = 20

    # 診断サーバー
    host: str = "127.0.0.1"
    port: int = 8000
    url_token: str = ""

    @classmethod
    def from_yaml(cls, path: Path) -> "PoolSettings":
        """YAML設定ファイルを読み込む。環境変数が設定されている項目は環境変数を優先する。

        Raises:
            ConfigError: ファイルが存在しない、または内容が不正な場合。
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {path}") from None
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        try:
            env = cls()
            overrides = {name: getattr(env, name) for name in env.model_fields_set}
            return cls(**{**data, **overrides})
        except ValidationError as e:
            raise ConfigError(f"Invalid settings in {path}: {e}") from e

    def create_factory(self) -> OracleConnectionFactory:
        """設定された接続先に対するOracle接続ファクトリを生成する。"""
        return OracleConnectionFactory(
            self.dsn,
            self.user,
            self.password.get_secret_value(),
            config_dir=self.config_dir,
            wallet_location=self.wallet_location,
            wallet_password=self.wallet_password.get_secret_value() if self.wallet_password else None,
        )

    def to_pool_config(self, factory: ConnectionFactory | None = None) -> PoolConfig:
        """プール設定を生成する。factoryを省略した場合はOracle接続ファクトリを使う。"""
        return PoolConfig(
            factory=factory if factory is not None else self.create_factory(),
            initial_size=self.initial_size,
            min_size=self.min_size,
            max_size=self.max_size,
            name=self.pool_name,
        )
