"""
全局HTTP客户端池管理
避免每次请求都创建新的AsyncClient,提高性能

按名称复用客户端（Keep-alive 连接减少 TCP 握手开销），
同一进程内创建的多个会话共享同一个 "openrouter" 客户端
"""

from __future__ import annotations

from typing import Any

import httpx

from src.config import Config, config
from src.core.logger import logger
from src.utils.ssl_utils import get_ssl_context


def build_client_kwargs(settings: Config | None = None, **overrides: Any) -> dict[str, Any]:
    """
    根据配置构建 httpx.AsyncClient 参数

    Args:
        settings: 配置对象，默认使用全局 config
        **overrides: 覆盖默认参数
    """
    settings = settings or config
    kwargs: dict[str, Any] = {
        "http2": False,
        "verify": get_ssl_context(),
        "timeout": httpx.Timeout(
            connect=settings.http_connect_timeout,
            read=settings.http_read_timeout,
            write=settings.http_write_timeout,
            pool=settings.http_pool_timeout,
        ),
        "limits": httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=settings.http_keepalive_connections,
            keepalive_expiry=settings.http_keepalive_expiry,
        ),
        "follow_redirects": True,
    }
    kwargs.update(overrides)
    return kwargs


class HTTPClientPool:
    """
    全局HTTP客户端池

    管理可重用的httpx.AsyncClient实例,避免频繁创建/销毁连接。
    客户端按 (名称, 连接池参数) 复用，不同连接池参数的配置各自拥有客户端。
    """

    _clients: dict[tuple[str, tuple[float | int, ...]], httpx.AsyncClient] = {}

    @classmethod
    def get_client(cls, name: str, settings: Config | None = None, **kwargs: Any) -> httpx.AsyncClient:
        """
        获取或创建命名的HTTP客户端

        Args:
            name: 客户端标识符
            settings: 配置对象
            **kwargs: httpx.AsyncClient的配置参数（仅在首次创建时生效）
        """
        settings = settings or config
        key = (name, settings.http_profile)
        client = cls._clients.get(key)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(**build_client_kwargs(settings, **kwargs))
            cls._clients[key] = client
            logger.debug(
                "创建命名HTTP客户端: {} (max_connections={}, keepalive={})",
                name,
                settings.http_max_connections,
                settings.http_keepalive_connections,
            )
        return client

    @classmethod
    async def close_all(cls) -> None:
        """关闭所有HTTP客户端"""
        for (name, _), client in list(cls._clients.items()):
            await client.aclose()
            logger.debug("命名HTTP客户端已关闭: {}", name)
        cls._clients.clear()
