import json

import httpx
import pytest
from fastapi.testclient import TestClient

from nim_proxy.app import create_app
from nim_proxy.config import Settings

PROXY_SECRET = "test-secret"
NIM_API_KEY = "nim-test-key"
NIM_API_BASE = "https://nim.test/v1"

AUTH_HEADERS = {"Authorization": f"Bearer {PROXY_SECRET}"}


class FakeUpstream:
    """Records outbound requests and answers with a configurable response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(
            200,
            json={
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": "hello"},
                        "finish_reason": "stop",
                    }
                ]
            },
        )
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def last_payload(self) -> dict:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        PROXY_SECRET=PROXY_SECRET,
        NIM_API_KEY=NIM_API_KEY,
        NIM_API_BASE=NIM_API_BASE,
        EXPOSED_MODELS=["gpt-4o", "gpt-4"],
        LOG_LEVEL="false",
        HTTP2=False,
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(settings, upstream):
    app = create_app(settings, transport=httpx.MockTransport(upstream))
    with TestClient(app) as test_client:
        yield test_client
