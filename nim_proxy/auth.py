"""Bearer-token check guarding every route except the health check."""

import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from .config import Settings
from .errors import AuthenticationError
from .helpers import debug_log

PUBLIC_PATHS = frozenset({"/health"})

_BEARER_PREFIX = "Bearer "


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def check_bearer_token(authorization: Optional[str], secret: str) -> None:
    """
    校验 Authorization 头

    Raises:
        AuthenticationError: 缺少/格式错误的头，或密钥不匹配
    """
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise AuthenticationError("Unauthorized: Missing API key")

    provided = authorization[len(_BEARER_PREFIX):]
    if not hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8")):
        raise AuthenticationError("Unauthorized: Invalid API key")


async def require_bearer_token(
    request: Request,
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """FastAPI dependency; health check paths pass through untouched."""
    if request.url.path in PUBLIC_PATHS:
        return
    try:
        check_bearer_token(authorization, settings.PROXY_SECRET)
    except AuthenticationError as e:
        debug_log("[AUTH] 鉴权失败", path=request.url.path, reason=e.message)
        raise
