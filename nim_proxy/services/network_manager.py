"""Shared HTTP client management for upstream calls."""

from __future__ import annotations

import asyncio
from typing import Optional

import httpx

from ..config import Settings
from ..helpers import info_log, error_log


def _connection_pool_config(settings: Settings) -> dict:
    return {
        "limits": httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30,
        ),
        # UPSTREAM_TIMEOUT 未配置时不设超时
        "timeout": httpx.Timeout(settings.UPSTREAM_TIMEOUT),
        "http2": settings.HTTP2,
    }


class NetworkManager:
    """Own the pooled ``httpx.AsyncClient`` used for every upstream call."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    @property
    def proxy(self) -> Optional[str]:
        return self._settings.OUTBOUND_PROXY

    async def get_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                config = _connection_pool_config(self._settings)
                if self._transport is not None:
                    config["transport"] = self._transport
                elif self.proxy:
                    config["proxy"] = self.proxy

                info_log("[CLIENT] 创建上游客户端", proxy=self.proxy or "direct")
                self._client = httpx.AsyncClient(**config)
            return self._client

    async def cleanup(self) -> None:
        async with self._client_lock:
            client = self._client
            self._client = None

        if client is None:
            return
        try:
            await client.aclose()
            info_log("[CLIENT] 上游客户端已关闭")
        except Exception as exc:  # pragma: no cover - 问题记录即可
            error_log("[CLIENT] 关闭上游客户端失败", error=str(exc))
