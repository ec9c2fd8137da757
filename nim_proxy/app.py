"""
Application factory - OpenAI to NVIDIA NIM proxy
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import PUBLIC_PATHS, check_bearer_token
from .config import SERVICE_NAME, Settings, get_settings
from .errors import AuthenticationError, EndpointNotFoundError, ProxyError, RequestValidationFailed
from .helpers import configure_structlog, error_log, info_log, warning_log
from .openai_api import router as openai_router
from .services.network_manager import NetworkManager
from .services.nim_service import ChatCompletionService


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()) if item != "body")
        parts.append(f"{location or 'body'}: {err.get('msg', 'invalid value')}")
    return "Invalid request: " + "; ".join(parts)


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    error_log(
        "[REQUEST] 请求失败",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=exc.error_type,
        error_message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await proxy_error_handler(request, RequestValidationFailed(_format_validation_errors(exc)))


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Router-level 404/405 for methods the catch-all route does not list."""
    if exc.status_code not in (404, 405):
        return await http_exception_handler(request, exc)

    error: ProxyError = EndpointNotFoundError(request.url.path)
    if request.url.path not in PUBLIC_PATHS:
        try:
            check_bearer_token(request.headers.get("authorization"), request.app.state.settings.PROXY_SECRET)
        except AuthenticationError as e:
            error = e
    return await proxy_error_handler(request, error)


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    构建 FastAPI 应用

    Args:
        settings: 启动配置，未传入时从环境变量读取（缺少 PROXY_SECRET 会抛出 ConfigurationError）
        transport: 可选的 httpx transport，替换真实上游（测试用）
    """
    settings = settings or get_settings()
    configure_structlog(settings.LOG_LEVEL)

    network_manager = NetworkManager(settings, transport=transport)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        info_log(
            f"{SERVICE_NAME} running",
            port=settings.PORT,
            upstream=settings.NIM_API_BASE,
            upstream_model=settings.NIM_MODEL,
            authentication="ENABLED",
        )
        if not settings.NIM_API_KEY:
            warning_log("[CONFIG] NIM_API_KEY 未配置，上游请求可能被拒绝")
        yield
        await network_manager.cleanup()

    app = FastAPI(
        title=SERVICE_NAME,
        description="OpenAI-compatible API server forwarding to NVIDIA NIM",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat_service = ChatCompletionService(settings, network_manager)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, not_found_handler)

    app.include_router(openai_router)
    return app
