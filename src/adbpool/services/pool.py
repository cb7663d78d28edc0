"""接続の貸し出し・返却を管理するコネクションプール。"""

import asyncio
import itertools
import logging
import threading
from collections.abc import AsyncIterator, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from datetime import UTC, datetime
from types import TracebackType
from typing import Any

from adbpool.drivers.base import Connection
from adbpool.models.errors import (
    AdbPoolError,
    ConfigError,
    ConnectFailure,
    ConnectionLostError,
    NotOwnedError,
    PoolClosedError,
    PoolExhausted,
)
from adbpool.models.pool import ConnectionState, PoolConfig, PoolStatistics

logger = logging.getLogger(__name__)

_UNINITIALIZED_NAME = "<uninitialized>"

_connection_ids = itertools.count(1)


class PooledConnection:
    """プールが管理する1本の接続。

    状態遷移はプールのロック下でのみ行う。
    borrowed状態の間は借り手が排他的に所有する。
    """

    def __init__(self, raw: Connection, pool: "ConnectionPoolManager") -> None:
        self.id = next(_connection_ids)
        self.created_at = datetime.now(UTC)
        self.borrowed_at: datetime | None = None
        self._raw = raw
        self._pool = pool
        self._state: ConnectionState = "idle"
        self._invalidated = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    @property
    def raw(self) -> Connection:
        """ドライバ固有の操作が必要な場合に使う生の接続。"""
        return self._raw

    def execute(self, query: str, parameters: Sequence[Any] | None = None) -> list[tuple[Any, ...]]:
        """借用中の接続でSQLを実行する。

        セッション切断を検知した場合は接続を使用不可とし、返却時に破棄させる。

        Raises:
            AdbPoolError: 接続が借用中でない場合。
            ConnectionLostError: セッションが切断されていた場合。
        """
        if self._state != "borrowed":
            raise AdbPoolError(f"Connection {self.id} is not borrowed (state={self._state})")
        try:
            return self._raw.execute(query, parameters)
        except ConnectionLostError:
            self._invalidated = True
            raise

    def invalidate(self) -> None:
        """接続を使用不可にする。返却時にプールへ戻されず閉じられる。"""
        self._invalidated = True

    # 以下の状態遷移はプールのロック下で呼び出す
    def _mark_borrowed(self) -> None:
        self._state = "borrowed"
        self.borrowed_at = datetime.now(UTC)

    def _mark_idle(self) -> None:
        self._state = "idle"
        self.borrowed_at = None

    def _mark_closed(self) -> None:
        self._state = "closed"
        self.borrowed_at = None

    def __repr__(self) -> str:
        return f"PooledConnection(id={self.id}, state={self._state!r})"


def _validate_config(config: PoolConfig) -> None:
    if config.initial_size < 0 or config.min_size < 0 or config.max_size < 0:
        raise ConfigError(
            f"Pool sizes must not be negative: initial={config.initial_size}, "
            f"min={config.min_size}, max={config.max_size}"
        )
    if config.min_size > config.max_size:
        raise ConfigError(f"min_size ({config.min_size}) must not exceed max_size ({config.max_size})")
    if config.initial_size > config.max_size:
        raise ConfigError(f"initial_size ({config.initial_size}) must not exceed max_size ({config.max_size})")


class ConnectionPoolManager:
    """上限付きの接続集合を保持し、並行する貸し出し・返却要求に応える。

    カウンタと接続集合の変更はすべて単一のロック下で行う。
    接続の生成・クローズといったネットワークI/Oはロック外で行う。
    空きがない場合は待機せず、即座にPoolExhaustedを送出する。
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._config: PoolConfig | None = None
        self._idle: list[PooledConnection] = []
        self._borrowed: set[PooledConnection] = set()
        # 生成中の接続のために確保した枠
        self._pending = 0
        self._closed = False
        self._created_total = 0
        self._discarded_total = 0
        self._close_failures = 0

    @property
    def name(self) -> str:
        return self._config.name if self._config is not None else _UNINITIALIZED_NAME

    @property
    def config(self) -> PoolConfig | None:
        return self._config

    def _total(self) -> int:
        return len(self._idle) + len(self._borrowed) + self._pending

    def initialize(self, config: PoolConfig) -> None:
        """設定を検証し、initial_size本の接続を事前に生成する。

        事前生成中にConnectFailureが発生した場合はログに記録し、
        生成済みの接続だけでプールを開始する（不足分は貸し出し時に遅延生成される）。

        Raises:
            ConfigError: サイズ指定が不正な場合、または初期化済みの場合。
            PoolClosedError: シャットダウン済みの場合。
        """
        _validate_config(config)
        with self._lock:
            if self._closed:
                raise PoolClosedError(self.name)
            if self._config is not None:
                raise ConfigError(f"Connection pool already initialized: {self._config.name}")
            self._config = config
            self._pending += config.initial_size

        logger.info(
            "Creating connection pool %s: initial=%d, min=%d, max=%d",
            config.name,
            config.initial_size,
            config.min_size,
            config.max_size,
        )
        remaining = config.initial_size
        try:
            while remaining > 0:
                raw = config.factory.create()
                remaining -= 1
                self._adopt_idle(raw)
        except ConnectFailure as e:
            logger.warning(
                "Eager fill of pool %s stopped after %d of %d connections (transient=%s): %s",
                config.name,
                config.initial_size - remaining,
                config.initial_size,
                e.transient,
                e,
            )
        finally:
            with self._lock:
                self._pending -= remaining

    def _adopt_idle(self, raw: Connection) -> None:
        with self._lock:
            self._pending -= 1
            if not self._closed:
                self._idle.append(PooledConnection(raw, self))
                self._created_total += 1
                return
        raw.close()

    def borrow(self) -> PooledConnection:
        """接続を貸し出す。

        空き接続があれば再利用し、なければ上限の範囲内で新しく生成する。

        Raises:
            PoolClosedError: プールが未初期化またはシャットダウン済みの場合。
            PoolExhausted: 空きがなく上限に達している場合。
            ConnectFailure: 新しい接続の生成に失敗した場合。
        """
        with self._lock:
            if self._config is None or self._closed:
                raise PoolClosedError(self.name)
            config = self._config
            if self._idle:
                conn = self._idle.pop()
                self._lend(conn)
                logger.debug("Borrowed idle connection %d from %s", conn.id, config.name)
                return conn
            if self._total() >= config.max_size:
                raise PoolExhausted(config.name, config.max_size)
            self._pending += 1

        try:
            raw = config.factory.create()
        except Exception:
            with self._lock:
                self._pending -= 1
            raise

        with self._lock:
            self._pending -= 1
            if not self._closed:
                conn = PooledConnection(raw, self)
                self._created_total += 1
                self._lend(conn)
                logger.debug("Borrowed new connection %d from %s", conn.id, config.name)
                return conn
        raw.close()
        raise PoolClosedError(config.name)

    def _lend(self, conn: PooledConnection) -> None:
        conn._mark_borrowed()
        self._borrowed.add(conn)

    def return_connection(self, connection: PooledConnection) -> None:
        """借用した接続を返却し、再利用可能にする。

        使用不可となった接続はプールに戻さず閉じる。

        Raises:
            NotOwnedError: このプールから貸し出された接続でない場合。
        """
        self._release(connection, discard=False)

    def discard(self, connection: PooledConnection) -> None:
        """借用した接続をプールに戻さず閉じる。

        Raises:
            NotOwnedError: このプールから貸し出された接続でない場合。
        """
        self._release(connection, discard=True)

    def _release(self, connection: PooledConnection, *, discard: bool) -> None:
        with self._lock:
            if not isinstance(connection, PooledConnection) or connection._pool is not self:
                raise NotOwnedError(self.name)
            if connection not in self._borrowed:
                if self._closed and connection.state == "closed":
                    # シャットダウン時に閉じ済み
                    logger.debug("Connection %d returned after shutdown of %s", connection.id, self.name)
                    return
                raise NotOwnedError(self.name)
            self._borrowed.remove(connection)
            if discard or connection.invalidated:
                connection._mark_closed()
                self._discarded_total += 1
            else:
                connection._mark_idle()
                self._idle.append(connection)
                logger.debug("Returned connection %d to %s", connection.id, self.name)
                return

        logger.warning("Discarding connection %d from %s", connection.id, self.name)
        try:
            connection.raw.close()
        except Exception:
            # 破棄済みの接続なので、返却元の例外を上書きしない
            logger.warning("Failed to close discarded connection %d of %s", connection.id, self.name, exc_info=True)
            with self._lock:
                self._close_failures += 1

    def available_count(self) -> int:
        with self._lock:
            return len(self._idle)

    def borrowed_count(self) -> int:
        with self._lock:
            return len(self._borrowed)

    def statistics(self) -> PoolStatistics:
        """プールの状態スナップショットを返す。"""
        with self._lock:
            return PoolStatistics(
                name=self.name,
                available=len(self._idle),
                borrowed=len(self._borrowed),
                total=len(self._idle) + len(self._borrowed),
                max_size=self._config.max_size if self._config is not None else 0,
                closed=self._closed,
                created_total=self._created_total,
                discarded_total=self._discarded_total,
                close_failures=self._close_failures,
            )

    def shutdown(self) -> None:
        """状態にかかわらず全接続を閉じ、プールを空にする。2回目以降の呼び出しは何もしない。

        Raises:
            AdbPoolError: 一部の接続のクローズに失敗した場合（残りの接続は閉じられる）。
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            connections = [*self._idle, *self._borrowed]
            self._idle.clear()
            self._borrowed.clear()
            for conn in connections:
                conn._mark_closed()

        failures: list[Exception] = []
        for conn in connections:
            try:
                conn.raw.close()
            except Exception as e:
                logger.warning("Failed to close connection %d of %s: %s", conn.id, self.name, e)
                failures.append(e)
        logger.info("Connection pool %s shut down (%d connections closed)", self.name, len(connections))
        if failures:
            raise AdbPoolError(f"Failed to close {len(failures)} connection(s) of pool {self.name}") from failures[0]

    @contextmanager
    def connection(self) -> Iterator[PooledConnection]:
        """接続を借用し、どの経路で抜けても必ず返却するコンテキストマネージャ。"""
        conn = self.borrow()
        try:
            yield conn
        finally:
            self.return_connection(conn)

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[PooledConnection]:
        """connection()の非同期版。貸し出しと返却はスレッドで実行する。

        貸し出し待ちの間にキャンセルされた場合も、スレッド側で貸し出された接続は
        完了後に返却される。
        """
        borrowing = asyncio.ensure_future(asyncio.to_thread(self.borrow))
        try:
            conn = await asyncio.shield(borrowing)
        except asyncio.CancelledError:
            borrowing.add_done_callback(self._return_abandoned)
            raise
        try:
            yield conn
        finally:
            await asyncio.to_thread(self.return_connection, conn)

    def _return_abandoned(self, borrowing: "asyncio.Future[PooledConnection]") -> None:
        if borrowing.cancelled() or borrowing.exception() is not None:
            return
        conn = borrowing.result()
        logger.debug("Returning connection %d borrowed by a cancelled task", conn.id)
        self.return_connection(conn)

    def __enter__(self) -> "ConnectionPoolManager":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()
