"""Service layer translating OpenAI chat completions to NVIDIA NIM and back."""

from __future__ import annotations

import time
from typing import AsyncIterator, Dict, Optional

import httpx
import orjson
from fastuuid import uuid4
from pydantic import ValidationError

from ..config import Settings
from ..errors import UpstreamError
from ..helpers import (
    debug_log,
    error_log,
    info_log,
    is_debug_enabled,
    perf_timer,
    request_stage_log,
)
from ..schemas import (
    ChatCompletionChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChoiceMessage,
    UpstreamChoice,
    UpstreamMessage,
    UpstreamRequest,
    UpstreamResponse,
    Usage,
)
from .network_manager import NetworkManager


def generate_completion_id() -> str:
    return "chatcmpl-" + str(uuid4()).replace("-", "")


def build_upstream_request(request: ChatCompletionRequest, settings: Settings) -> UpstreamRequest:
    """
    构建上游请求体

    The upstream model is always ``settings.NIM_MODEL``; ``request.model`` is
    only echoed back in the response envelope. Defaults apply to missing
    values only, so an explicit ``temperature: 0`` is forwarded as is.
    """
    return UpstreamRequest(
        model=settings.NIM_MODEL,
        messages=[message.model_dump(exclude_unset=True) for message in request.messages],
        temperature=settings.DEFAULT_TEMPERATURE if request.temperature is None else request.temperature,
        max_tokens=settings.DEFAULT_MAX_TOKENS if request.max_tokens is None else request.max_tokens,
        stream=bool(request.stream),
    )


def merge_reasoning_content(message: UpstreamMessage) -> str:
    """Prepend reasoning content to the answer, separated by a blank line."""
    content = message.content or ""
    if message.reasoning_content:
        if content:
            return f"{message.reasoning_content}\n\n{content}"
        return message.reasoning_content
    return content


def translate_choice(choice: UpstreamChoice, position: int) -> ChatCompletionChoice:
    return ChatCompletionChoice(
        index=position if choice.index is None else choice.index,
        message=ChoiceMessage(
            role=choice.message.role or "assistant",
            content=merge_reasoning_content(choice.message),
        ),
        finish_reason=choice.finish_reason,
    )


def translate_response(upstream: UpstreamResponse, requested_model: str) -> ChatCompletionResponse:
    """将 NIM 响应转换为 OpenAI 格式，model 字段回显客户端请求的模型名"""
    return ChatCompletionResponse(
        id=generate_completion_id(),
        created=int(time.time()),
        model=requested_model,
        choices=[translate_choice(choice, i) for i, choice in enumerate(upstream.choices)],
        usage=upstream.usage if upstream.usage is not None else Usage(),
    )


def extract_upstream_error_message(body: bytes) -> Optional[str]:
    """Return ``error.message`` from an upstream error body, if it has one."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


class ChatCompletionService:
    """Encapsulate the NIM forwarding workflow independent of the FastAPI layer."""

    def __init__(self, settings: Settings, network_manager: NetworkManager) -> None:
        self.settings = settings
        self.network = network_manager

    @property
    def upstream_url(self) -> str:
        return self.settings.chat_completions_url

    def upstream_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.NIM_API_KEY}",
            "Content-Type": "application/json",
        }

    def _prepare(self, request: ChatCompletionRequest) -> UpstreamRequest:
        upstream_request = build_upstream_request(request, self.settings)
        if is_debug_enabled():
            debug_log(
                "上游请求体详情",
                request_body=orjson.dumps(upstream_request.model_dump()).decode("utf-8"),
            )
        request_stage_log(
            "upstream_request",
            "向上游发起请求",
            upstream=self.upstream_url,
            upstream_model=upstream_request.model,
            stream=upstream_request.stream,
        )
        return upstream_request

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return
        body = await response.aread()
        message = extract_upstream_error_message(body)
        error_log(
            "上游返回错误",
            status_code=response.status_code,
            error_detail=body[:200].decode("utf-8", errors="ignore"),
        )
        raise UpstreamError(
            message or f"Request failed with status code {response.status_code}",
            status_code=response.status_code,
        )

    @staticmethod
    def _transport_error(exc: httpx.HTTPError) -> UpstreamError:
        error_log("[UPSTREAM] 请求失败", error_type=type(exc).__name__, error=str(exc))
        return UpstreamError(str(exc) or "Internal server error")

    async def create_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """非流式：请求上游并转换完整响应"""
        upstream_request = self._prepare(request)
        client = await self.network.get_client()

        try:
            with perf_timer("非流式上游请求"):
                response = await client.post(
                    self.upstream_url,
                    json=upstream_request.model_dump(),
                    headers=self.upstream_headers(),
                )
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc

        await self._raise_for_status(response)

        try:
            upstream = UpstreamResponse.model_validate(orjson.loads(response.content))
        except (orjson.JSONDecodeError, ValidationError) as exc:
            error_log("[UPSTREAM] 响应格式无效", error=str(exc))
            raise UpstreamError(f"Invalid upstream response: {exc}") from exc

        request_stage_log(
            "upstream_response",
            "上游响应成功",
            status=response.status_code,
            choices=len(upstream.choices),
        )
        return translate_response(upstream, request.model)

    async def open_stream(self, request: ChatCompletionRequest) -> AsyncIterator[bytes]:
        """
        流式：打开上游连接并返回原样转发的字节迭代器

        The upstream status is checked before anything is returned, so errors
        reported by the upstream still reach the client as a JSON error body.
        """
        upstream_request = self._prepare(request)
        client = await self.network.get_client()
        outbound = client.build_request(
            "POST",
            self.upstream_url,
            json=upstream_request.model_dump(),
            headers=self.upstream_headers(),
        )

        try:
            response = await client.send(outbound, stream=True)
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc

        try:
            await self._raise_for_status(response)
        except UpstreamError:
            await response.aclose()
            raise
        except httpx.HTTPError as exc:
            await response.aclose()
            raise self._transport_error(exc) from exc

        request_stage_log("upstream_response", "上游流式响应已建立", status=response.status_code)
        return self._relay(response)

    async def _relay(self, response: httpx.Response) -> AsyncIterator[bytes]:
        relayed = 0
        try:
            async for chunk in response.aiter_bytes():
                relayed += len(chunk)
                yield chunk
        except httpx.HTTPError as exc:
            # 响应头已发送，只能记录错误并结束流
            error_log("[STREAM] 上游流中断", error_type=type(exc).__name__, error=str(exc))
        finally:
            await response.aclose()
            info_log("[STREAM] 流式转发结束", bytes=relayed)
