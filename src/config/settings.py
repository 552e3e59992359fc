"""
配置加载

所有配置在构造时从环境变量读取，缺省值见 constants.py。
模块级 `config` 实例在导入时创建，测试可直接构造 Config(env=...)。
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from src.config.constants import AssistantDefaults, HTTPDefaults
from src.core.exceptions import ConfigurationError


class Config:
    """AI 助手配置"""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = os.environ if env is None else env

        # Provider
        self.openrouter_api_key = (self._get("OPENROUTER_API_KEY") or "").strip() or None
        self.openrouter_base_url = self._get(
            "OPENROUTER_BASE_URL", AssistantDefaults.BASE_URL
        ).rstrip("/")

        # 应用标识（用于 OpenRouter 排行统计）
        self.app_url = self._get("APP_URL", AssistantDefaults.APP_URL)
        self.app_name = self._get("APP_NAME", AssistantDefaults.APP_NAME)

        # 超时
        self.request_timeout = self._float("ASSISTANT_REQUEST_TIMEOUT", AssistantDefaults.REQUEST_TIMEOUT)
        self.attempt_timeout = self._float("ASSISTANT_ATTEMPT_TIMEOUT", AssistantDefaults.ATTEMPT_TIMEOUT)

        # 重试与级联
        self.max_retries = self._int("ASSISTANT_MAX_RETRIES", AssistantDefaults.MAX_RETRIES)
        self.retry_backoff = self._float("ASSISTANT_RETRY_BACKOFF", AssistantDefaults.RETRY_BACKOFF)
        self.max_backoff = self._float("ASSISTANT_MAX_BACKOFF", AssistantDefaults.MAX_BACKOFF)
        self.cascade_limit = self._int("ASSISTANT_CASCADE_LIMIT", AssistantDefaults.CASCADE_LIMIT)
        self.fallback_models = self._list("ASSISTANT_FALLBACK_MODELS")

        # HTTP 连接池
        self.http_connect_timeout = self._float("HTTP_CONNECT_TIMEOUT", HTTPDefaults.CONNECT_TIMEOUT)
        self.http_read_timeout = self._float("HTTP_READ_TIMEOUT", HTTPDefaults.READ_TIMEOUT)
        self.http_write_timeout = self._float("HTTP_WRITE_TIMEOUT", HTTPDefaults.WRITE_TIMEOUT)
        self.http_pool_timeout = self._float("HTTP_POOL_TIMEOUT", HTTPDefaults.POOL_TIMEOUT)
        self.http_max_connections = self._int("HTTP_MAX_CONNECTIONS", HTTPDefaults.MAX_CONNECTIONS)
        self.http_keepalive_connections = self._int(
            "HTTP_KEEPALIVE_CONNECTIONS", HTTPDefaults.KEEPALIVE_CONNECTIONS
        )
        self.http_keepalive_expiry = self._float("HTTP_KEEPALIVE_EXPIRY", HTTPDefaults.KEEPALIVE_EXPIRY)

    @property
    def app_headers(self) -> dict[str, str]:
        """OpenRouter 应用标识头"""
        return {"HTTP-Referer": self.app_url, "X-Title": self.app_name}

    @property
    def http_profile(self) -> tuple[float | int, ...]:
        """连接池参数，参数相同的配置共享同一个 httpx 客户端"""
        return (
            self.http_connect_timeout,
            self.http_read_timeout,
            self.http_write_timeout,
            self.http_pool_timeout,
            self.http_max_connections,
            self.http_keepalive_connections,
            self.http_keepalive_expiry,
        )

    def validate(self) -> None:
        """校验必需配置，缺失时抛出 ConfigurationError"""
        if not self.openrouter_api_key:
            raise ConfigurationError(
                "OPENROUTER_API_KEY environment variable is required. "
                "Get your key at https://openrouter.ai/keys"
            )
        if self.max_retries < 0:
            raise ConfigurationError("ASSISTANT_MAX_RETRIES must be >= 0")
        if self.cascade_limit < 1:
            raise ConfigurationError("ASSISTANT_CASCADE_LIMIT must be >= 1")

    def _get(self, name: str, default: str = "") -> str:
        value = self._env.get(name)
        return default if value is None or value == "" else value

    def _int(self, name: str, default: int) -> int:
        raw = self._env.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None

    def _float(self, name: str, default: float) -> float:
        raw = self._env.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None

    def _list(self, name: str) -> list[str]:
        raw = self._env.get(name) or ""
        return [item.strip() for item in raw.split(",") if item.strip()]


config = Config()
