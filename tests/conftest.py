"""テスト共通フィクスチャ。"""

import threading
from collections.abc import Iterator, Sequence
from typing import Any

import pytest

from adbpool.config import PoolSettings
from adbpool.models.errors import ConnectFailure, ConnectionLostError
from adbpool.models.pool import PoolConfig
from adbpool.services.pool import ConnectionPoolManager


class FakeConnection:
    """ドライバの代わりに使うインメモリ接続。"""

    def __init__(self, rows: list[tuple[Any, ...]] | None = None) -> None:
        self.rows = rows if rows is not None else [(1,)]
        self.closed = False
        self.lost = False
        self.queries: list[str] = []

    def execute(self, query: str, parameters: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        if self.closed:
            raise RuntimeError("connection is closed")
        if self.lost:
            raise ConnectionLostError("session dropped")
        self.queries.append(query)
        return list(self.rows)

    def close(self) -> None:
        self.closed = True


class FakeFactory:
    """生成した接続を記録するファクトリ。failuresに積んだ例外を順に送出する。"""

    def __init__(self, rows: list[tuple[Any, ...]] | None = None) -> None:
        self.rows = rows
        self.created: list[FakeConnection] = []
        self.failures: list[ConnectFailure] = []
        self._lock = threading.Lock()

    def create(self) -> FakeConnection:
        with self._lock:
            if self.failures:
                raise self.failures.pop(0)
            conn = FakeConnection(self.rows)
            self.created.append(conn)
            return conn


@pytest.fixture
def factory() -> FakeFactory:
    """テスト用接続ファクトリ。"""
    return FakeFactory()


@pytest.fixture
def pool_config(factory: FakeFactory) -> PoolConfig:
    """initial=5, min=5, max=20のプール設定。"""
    return PoolConfig(factory=factory, initial_size=5, min_size=5, max_size=20, name="TEST_POOL")


@pytest.fixture
def pool(pool_config: PoolConfig) -> Iterator[ConnectionPoolManager]:
    """初期化済みのプール。テスト終了時にシャットダウンする。"""
    manager = ConnectionPoolManager()
    manager.initialize(pool_config)
    yield manager
    manager.shutdown()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """ADBPOOL_* 環境変数を取り除く。"""
    import os

    for key in list(os.environ):
        if key.startswith("ADBPOOL_"):
            monkeypatch.delenv(key)


@pytest.fixture
def settings(clean_env: None) -> PoolSettings:
    """テスト用PoolSettings。"""
    return PoolSettings(dsn="dbname_medium", user="ADMIN", password="secret", initial_size=2, min_size=1, max_size=3)


@pytest.fixture
def make_factory() -> type[FakeFactory]:
    """追加のファクトリを生成するためのクラス。"""
    return FakeFactory
