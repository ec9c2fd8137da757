"""
OpenAI API endpoints
"""

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from .auth import get_app_settings, require_bearer_token
from .config import SERVICE_NAME, Settings
from .errors import EndpointNotFoundError, ProxyError, UpstreamError
from .helpers import (
    bind_request_context,
    error_log,
    request_stage_log,
    reset_request_context,
)
from .schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    HealthResponse,
    Model,
    ModelsResponse,
)
from .services.nim_service import ChatCompletionService, generate_completion_id

router = APIRouter(dependencies=[Depends(require_bearer_token)])

CATCH_ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def get_chat_service(request: Request) -> ChatCompletionService:
    return request.app.state.chat_service


@router.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint"""
    return HealthResponse(service=SERVICE_NAME)


@router.get("/v1/models", response_model=ModelsResponse)
async def list_models(settings: Settings = Depends(get_app_settings)):
    """List available models"""
    current_time = int(time.time())
    return ModelsResponse(
        data=[
            Model(id=model_id, created=current_time, owned_by=settings.MODEL_OWNER)
            for model_id in settings.EXPOSED_MODELS
        ]
    )


@router.post("/v1/chat/completions", response_model=ChatCompletionResponse)
async def chat_completions(
    request: ChatCompletionRequest,
    service: ChatCompletionService = Depends(get_chat_service),
):
    """处理 chat completion 请求，支持流式和非流式"""
    bind_request_context(request_id=generate_completion_id(), model=request.model)
    request_stage_log(
        "received",
        "收到客户端请求",
        stream=bool(request.stream),
        message_count=len(request.messages),
    )

    try:
        if not request.stream:
            completion = await service.create_completion(request)
            reset_request_context("request_id", "model")
            return completion

        chunks = await service.open_stream(request)
    except ProxyError:
        reset_request_context("request_id", "model")
        raise
    except Exception as e:
        reset_request_context("request_id", "model")
        error_log("处理请求时发生错误", error=str(e))
        raise UpstreamError(str(e) or "Internal server error") from e

    async def stream_response():
        try:
            request_stage_log("stream_dispatch", "开始推送流式响应数据")
            async for chunk in chunks:
                yield chunk
            request_stage_log("stream_finished", "流式响应生成器完成")
        finally:
            reset_request_context("request_id", "model")

    return StreamingResponse(
        stream_response(),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


# 必须最后注册：匹配所有未定义的路径和方法
@router.api_route("/{path:path}", methods=CATCH_ALL_METHODS, include_in_schema=False)
async def catch_all(request: Request):
    raise EndpointNotFoundError(request.url.path)
