"""python-oracledbを利用したAutonomous Database向けドライバ実装。"""

from collections.abc import Sequence
from typing import Any

import oracledb

from adbpool.models.errors import ConnectFailure, ConnectionLostError

# 再試行しても解決しない接続エラー（認証情報・接続先の誤り）
PERMANENT_CONNECT_ERRORS: frozenset[str] = frozenset(
    {
        "ORA-01017",  # ユーザー名/パスワードが無効
        "ORA-28000",  # アカウントがロックされている
        "ORA-12154",  # 接続識別子を解決できない
        "DPY-2049",  # DSNの形式が不正
        "DPY-4000",  # tnsnames.oraにエイリアスがない
        "DPY-4026",  # tnsnames.oraが見つからない
        "DPY-4027",  # config_dirが指定されていない
    }
)

# セッションが切断されたことを示すエラー
CONNECTION_LOST_ERRORS: frozenset[str] = frozenset(
    {
        "DPY-1001",  # 接続が閉じられている
        "DPY-4011",  # データベースまたはネットワークが接続を閉じた
        "ORA-02396",  # アイドル時間の上限超過
        "ORA-03113",  # 通信チャネルのEOF
        "ORA-03114",  # 接続されていない
        "ORA-03135",  # 接続が失われた
    }
)


def error_code(exc: oracledb.Error) -> str:
    """oracledbの例外から "ORA-01017" 形式のエラーコードを取り出す。"""
    if not exc.args:
        return ""
    return getattr(exc.args[0], "full_code", "") or ""


class OracleConnection:
    """oracledb.Connectionのラッパー。"""

    def __init__(self, raw: oracledb.Connection) -> None:
        self._raw = raw

    def execute(self, query: str, parameters: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        """SQLを実行し、全行を返す。

        Raises:
            ConnectionLostError: セッションが切断されていた場合。
        """
        try:
            with self._raw.cursor() as cursor:
                cursor.execute(query, parameters or [])
                if cursor.description is None:
                    return []
                return cursor.fetchall()
        except oracledb.Error as e:
            code = error_code(e)
            if code in CONNECTION_LOST_ERRORS:
                raise ConnectionLostError(f"Database session lost ({code}): {e}") from e
            raise

    def close(self) -> None:
        try:
            self._raw.close()
        except oracledb.Error as e:
            # 切断済みの接続は閉じられなくても問題ない
            if error_code(e) not in CONNECTION_LOST_ERRORS:
                raise


class OracleConnectionFactory:
    """oracledb.connectで新しい接続を生成するファクトリ。

    config_dirにはウォレット（tnsnames.ora）を展開したディレクトリを指定する。
    ウォレットを使わない場合はdsnに接続記述子をそのまま渡せばよい。
    """

    def __init__(
        self,
        dsn: str,
        user: str,
        password: str,
        *,
        config_dir: str | None = None,
        wallet_location: str | None = None,
        wallet_password: str | None = None,
    ) -> None:
        self.dsn = dsn
        self.user = user
        self._password = password
        self._config_dir = config_dir
        self._wallet_location = wallet_location
        self._wallet_password = wallet_password

    def _connect_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"user": self.user, "password": self._password, "dsn": self.dsn}
        if self._config_dir:
            params["config_dir"] = self._config_dir
        if self._wallet_location:
            params["wallet_location"] = self._wallet_location
        if self._wallet_password:
            params["wallet_password"] = self._wallet_password
        return params

    def create(self) -> OracleConnection:
        """新しい接続を開く。

        Raises:
            ConnectFailure: 接続に失敗した場合。
        """
        if not self.dsn:
            raise ConnectFailure("DSN is not set", transient=False)
        try:
            raw = oracledb.connect(**self._connect_params())
        except oracledb.Error as e:
            code = error_code(e)
            raise ConnectFailure(
                f"Could not connect to {self.dsn}: {e}",
                transient=code not in PERMANENT_CONNECT_ERRORS,
            ) from e
        raw.autocommit = False
        return OracleConnection(raw)

    def __repr__(self) -> str:
        return f"OracleConnectionFactory(dsn={self.dsn!r}, user={self.user!r})"
