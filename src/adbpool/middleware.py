"""データベースセッションを開く診断エンドポイント向けのトークン認証。"""

import secrets

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp


def presented_token(request: Request) -> str:
    """Authorization: Bearer ヘッダ、なければtokenクエリパラメータの値を返す。"""
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return request.query_params.get("token", "")


class SessionTokenMiddleware(BaseHTTPMiddleware):
    """プールから接続を借りるエンドポイントにだけトークンを要求する。

    /health と /pool はプールのカウンタを読むだけなので常に公開する。
    /pool/ping は接続の生成やクエリ実行を伴うため、
    ADBPOOL_URL_TOKEN が設定されている場合はトークンの一致を要求する。
    """

    SESSION_PATHS = frozenset({"/pool/ping"})

    def __init__(self, app: ASGIApp, token: str = "") -> None:
        super().__init__(app)
        self.token = token

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.token or request.url.path not in self.SESSION_PATHS:
            return await call_next(request)

        if not secrets.compare_digest(presented_token(request).encode(), self.token.encode()):
            return JSONResponse(
                {"error": "Unauthorized", "message": f"Token required for {request.url.path}"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )
        return await call_next(request)
