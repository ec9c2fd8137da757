import httpx
import pytest

from nim_proxy.errors import UpstreamError
from nim_proxy.schemas import ChatCompletionRequest, UpstreamMessage, UpstreamResponse
from nim_proxy.services.network_manager import NetworkManager
from nim_proxy.services.nim_service import (
    ChatCompletionService,
    build_upstream_request,
    extract_upstream_error_message,
    merge_reasoning_content,
    translate_response,
)


def _request(**overrides) -> ChatCompletionRequest:
    body = {"model": "gpt-4", "messages": [{"role": "user", "content": "hi"}]}
    body.update(overrides)
    return ChatCompletionRequest.model_validate(body)


@pytest.mark.parametrize(
    "message, expected",
    [
        ({"content": "answer", "reasoning_content": "think"}, "think\n\nanswer"),
        ({"content": "answer"}, "answer"),
        ({"content": "answer", "reasoning_content": ""}, "answer"),
        ({"content": "", "reasoning_content": "think"}, "think"),
        ({"content": None, "reasoning_content": "think"}, "think"),
        ({"content": None}, ""),
    ],
)
def test_merge_reasoning_content(message, expected):
    assert merge_reasoning_content(UpstreamMessage(**message)) == expected


def test_build_upstream_request_ignores_client_model(settings):
    upstream = build_upstream_request(_request(model="gpt-4", stream=None), settings)
    assert upstream.model == settings.NIM_MODEL
    assert upstream.stream is False
    assert upstream.temperature == 0.7
    assert upstream.max_tokens == 2048


def test_build_upstream_request_keeps_multipart_content(settings):
    content = [{"type": "text", "text": "describe"}]
    upstream = build_upstream_request(
        _request(messages=[{"role": "user", "content": content}]), settings
    )
    assert upstream.messages == [{"role": "user", "content": content}]


def test_translate_response_fills_missing_index_and_role():
    upstream = UpstreamResponse.model_validate(
        {"choices": [{"message": {"content": "a"}}, {"message": {"content": "b"}}]}
    )
    response = translate_response(upstream, "gpt-4")
    assert [choice.index for choice in response.choices] == [0, 1]
    assert {choice.message.role for choice in response.choices} == {"assistant"}
    assert response.model == "gpt-4"
    assert response.usage.total_tokens == 0


def test_completion_ids_are_unique():
    upstream = UpstreamResponse.model_validate({"choices": []})
    assert translate_response(upstream, "m").id != translate_response(upstream, "m").id


@pytest.mark.parametrize(
    "body, expected",
    [
        (b'{"error": {"message": "rate limited"}}', "rate limited"),
        (b'{"error": "plain string"}', None),
        (b'{"detail": "nope"}', None),
        (b"[1, 2]", None),
        (b"<html>oops</html>", None),
        (b"", None),
    ],
)
def test_extract_upstream_error_message(body, expected):
    assert extract_upstream_error_message(body) == expected


@pytest.mark.asyncio
async def test_open_stream_yields_upstream_chunks(settings):
    async def chunks():
        yield b"data: one\n\n"
        yield b"data: two\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=chunks())

    network = NetworkManager(settings, transport=httpx.MockTransport(handler))
    service = ChatCompletionService(settings, network)
    try:
        relay = await service.open_stream(_request(stream=True))
        received = [chunk async for chunk in relay]
    finally:
        await network.cleanup()

    assert b"".join(received) == b"data: one\n\ndata: two\n\n"


@pytest.mark.asyncio
async def test_open_stream_raises_before_relaying_on_upstream_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": {"message": "overloaded"}})

    network = NetworkManager(settings, transport=httpx.MockTransport(handler))
    service = ChatCompletionService(settings, network)
    try:
        with pytest.raises(UpstreamError) as excinfo:
            await service.open_stream(_request(stream=True))
    finally:
        await network.cleanup()

    assert excinfo.value.status_code == 503
    assert excinfo.value.to_dict() == {
        "error": {"message": "overloaded", "type": "invalid_request_error", "code": 503}
    }
