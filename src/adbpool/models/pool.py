"""コネクションプール関連のデータモデル。"""

from typing import Literal

from pydantic import BaseModel

from adbpool.drivers.base import ConnectionFactory

ConnectionState = Literal["idle", "borrowed", "closed"]

DEFAULT_POOL_NAME = "ADB_POOL"


class PoolConfig(BaseModel):
    """プール設定。

    サイズの整合性（0 <= min_size <= max_size, initial_size <= max_size）は
    ConnectionPoolManager.initializeで検証し、違反時はConfigErrorとなる。
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    factory: ConnectionFactory
    initial_size: int = 0
    min_size: int = 0
    max_size: int
    name: str = DEFAULT_POOL_NAME


class PoolStatistics(BaseModel):
    """プールの状態スナップショット。"""

    name: str
    available: int
    borrowed: int
    total: int
    max_size: int
    closed: bool
    created_total: int
    discarded_total: int
    close_failures: int = 0
