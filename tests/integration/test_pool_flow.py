"""設定読み込み→プール初期化→クエリ実行→シャットダウンの統合テスト。"""

import io
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pytest

from adbpool.config import PoolSettings
from adbpool.models.errors import PoolClosedError, PoolExhausted
from adbpool.services.pool import ConnectionPoolManager
from adbpool.services.quickstart import run_quickstart

pytestmark = pytest.mark.integration


class TestPoolFlow:
    def test_yaml_config_to_quickstart(self, clean_env: None, tmp_path: Path, factory: Any) -> None:
        """YAML設定からプールを作り、クイックスタートを実行して閉じる。"""
        path = tmp_path / "pool.yaml"
        path.write_text("dsn: dbname_medium\nuser: ADMIN\ninitial_size: 2\nmin_size: 2\nmax_size: 4\n")
        settings = PoolSettings.from_yaml(path)

        with ConnectionPoolManager() as pool:
            pool.initialize(settings.to_pool_config(factory))
            assert pool.available_count() == 2

            out = io.StringIO()
            run_quickstart(pool, out)
            assert "Available connections: 1" in out.getvalue()
            assert pool.available_count() == 2

        assert all(conn.closed for conn in factory.created)
        with pytest.raises(PoolClosedError):
            pool.borrow()

    def test_parallel_workers_share_bounded_pool(self, settings: PoolSettings, factory: Any) -> None:
        """並列ワーカーが上限付きのプールを共有し、全接続が返却される。"""
        pool = ConnectionPoolManager()
        pool.initialize(settings.to_pool_config(factory))

        def work(i: int) -> str:
            for _ in range(100):
                try:
                    with pool.connection() as conn:
                        conn.execute(f"SELECT {i} FROM DUAL")
                        return "ok"
                except PoolExhausted:
                    continue
            return "exhausted"

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(work, range(32)))

        assert "ok" in results
        assert pool.borrowed_count() == 0
        assert pool.available_count() <= settings.max_size
        assert len(factory.created) <= settings.max_size
        stats = pool.statistics()
        assert stats.total == stats.available
        pool.shutdown()
        assert all(conn.closed for conn in factory.created)
