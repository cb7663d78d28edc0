"""adbpoolのコマンドラインエントリポイント。"""

import argparse
import getpass
import logging
import sys
from pathlib import Path

import oracledb
from pydantic import SecretStr

from adbpool.config import PoolSettings
from adbpool.models.errors import AdbPoolError, ConfigError
from adbpool.services.pool import ConnectionPoolManager
from adbpool.services.quickstart import print_pool_counts, run_quickstart

logger = logging.getLogger("adbpool")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="adbpool", description="Autonomous Database connection pool quick start")
    parser.add_argument("command", nargs="?", choices=("quickstart", "serve"), default="quickstart")
    parser.add_argument("--config", type=Path, help="YAML config file (ADBPOOL_* env vars take precedence)")
    parser.add_argument("--log-level", default="WARNING", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    return parser


def load_settings(config_path: Path | None) -> PoolSettings:
    settings = PoolSettings.from_yaml(config_path) if config_path else PoolSettings()
    if not settings.password.get_secret_value():
        # パスワードは設定ファイルに残さずコンソールから入力させる
        password = getpass.getpass("Enter the password for Autonomous Database: ")
        settings = settings.model_copy(update={"password": SecretStr(password)})
    return settings


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings(args.config)
        pool = ConnectionPoolManager()
        pool.initialize(settings.to_pool_config())
    except ConfigError as e:
        print(f"adbpool - configuration error: {e}", file=sys.stderr)
        return 2

    if args.command == "serve":
        import uvicorn

        from adbpool.server import create_app

        with pool:
            uvicorn.run(create_app(pool, url_token=settings.url_token), host=settings.host, port=settings.port)
        return 0

    print(f"adbpool - connecting to database: {settings.dsn}")
    with pool:
        try:
            run_quickstart(pool)
        except (AdbPoolError, oracledb.Error) as e:
            logger.debug("Quick start failed", exc_info=True)
            print(f"adbpool - query failed: {e}", file=sys.stderr)
            # 接続は返却済み。返却後のカウンタは失敗時も表示する
            print_pool_counts(pool, sys.stdout)
            return 1
    print("\nCongratulations! You have successfully used Oracle Autonomous Database")
    return 0


if __name__ == "__main__":
    sys.exit(main())
