"""プールの状態を公開するStarletteベースの診断サーバー。"""

import asyncio

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from adbpool.middleware import SessionTokenMiddleware
from adbpool.models.errors import AdbPoolError, ConnectFailure, PoolClosedError, PoolExhausted
from adbpool.services.pool import ConnectionPoolManager

PING_QUERY = "SELECT 1 FROM DUAL"


def _error_response(e: AdbPoolError, status_code: int) -> JSONResponse:
    return JSONResponse({"error": type(e).__name__, "message": str(e)}, status_code=status_code)


def create_app(pool: ConnectionPoolManager, *, url_token: str = "") -> Starlette:
    """診断用エンドポイントを登録したアプリケーションを作成する。

    Args:
        pool: 初期化済みのコネクションプール。
        url_token: 空でない場合、/pool/pingにトークンを要求する。

    Returns:
        設定済みのStarletteインスタンス。
    """

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    async def pool_status(request: Request) -> JSONResponse:
        return JSONResponse(pool.statistics().model_dump())

    async def pool_ping(request: Request) -> JSONResponse:
        """接続を1本借りて疎通確認クエリを実行する。"""
        try:
            async with pool.async_connection() as conn:
                await asyncio.to_thread(conn.execute, PING_QUERY)
                connection_id = conn.id
        except (PoolExhausted, PoolClosedError) as e:
            return _error_response(e, 503)
        except ConnectFailure as e:
            return _error_response(e, 502)
        except AdbPoolError as e:
            return _error_response(e, 500)
        return JSONResponse({"status": "ok", "connection_id": connection_id, "pool": pool.statistics().model_dump()})

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/pool", pool_status, methods=["GET"]),
        Route("/pool/ping", pool_ping, methods=["GET"]),
    ]
    return Starlette(routes=routes, middleware=[Middleware(SessionTokenMiddleware, token=url_token)])
