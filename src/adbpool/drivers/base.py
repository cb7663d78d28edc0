"""データベースドライバとの境界となるプロトコル定義。"""

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """ドライバが提供する生の接続。

    セッション切断を検知した場合、executeはConnectionLostErrorを送出すること。
    """

    def execute(self, query: str, parameters: Sequence[Any] | None = None) -> list[tuple[Any, ...]]: ...

    def close(self) -> None: ...


@runtime_checkable
class ConnectionFactory(Protocol):
    """新しい生の接続を生成するファクトリ。

    失敗時はConnectFailureを送出すること。
    """

    def create(self) -> Connection: ...
