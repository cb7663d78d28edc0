"""adbpoolのカスタム例外クラス。"""


class AdbPoolError(Exception):
    """adbpoolの基底例外クラス。"""


class ConfigError(AdbPoolError):
    """プール設定が不正な場合の例外。"""


class ConnectFailure(AdbPoolError):
    """ファクトリが接続を生成できなかった場合の例外。

    transientがTrueの場合は一時的な障害（ネットワーク到達不可など）で再試行可能。
    Falseの場合は認証情報や接続先の誤りなど恒久的な障害。
    """

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class ConnectionLostError(AdbPoolError):
    """使用中の接続のセッションが切断された場合の例外。"""


class PoolExhausted(AdbPoolError):
    """空き接続がなく、プールが上限に達している場合の例外。"""

    def __init__(self, pool_name: str, max_size: int) -> None:
        super().__init__(f"Connection pool exhausted: {pool_name} (max_size={max_size})")
        self.pool_name = pool_name
        self.max_size = max_size


class NotOwnedError(AdbPoolError):
    """このプールから貸し出されていない接続が返却された場合の例外。"""

    def __init__(self, pool_name: str) -> None:
        super().__init__(f"Connection is not borrowed from pool: {pool_name}")
        self.pool_name = pool_name


class PoolClosedError(AdbPoolError):
    """シャットダウン済み、または未初期化のプールを操作した場合の例外。"""

    def __init__(self, pool_name: str) -> None:
        super().__init__(f"Connection pool is not open: {pool_name}")
        self.pool_name = pool_name
