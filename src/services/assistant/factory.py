"""
根据配置组装 AI 助手
"""

from __future__ import annotations

import httpx

from src.clients.http_client import HTTPClientPool
from src.clients.openrouter import OpenRouterClient
from src.config import Config, config
from src.services.assistant.session import ConversationSession
from src.services.orchestration.cascade import CascadeOrchestrator
from src.services.orchestration.model_selector import ModelSelector


def create_assistant(
    settings: Config | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    system_prompt: str | None = None,
) -> ConversationSession:
    """
    创建会话（客户端 + 选择器 + 编排器）

    Raises:
        ConfigurationError: 缺少 OPENROUTER_API_KEY 或配置非法
    """
    settings = settings or config
    settings.validate()

    client = OpenRouterClient(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        app_headers=settings.app_headers,
        timeout=settings.request_timeout,
        http_client=http_client or HTTPClientPool.get_client("openrouter", settings),
        settings=settings,
    )
    orchestrator = CascadeOrchestrator(
        client,
        ModelSelector(),
        max_retries=settings.max_retries,
        initial_backoff=settings.retry_backoff,
        max_backoff=settings.max_backoff,
        attempt_timeout=settings.attempt_timeout,
        cascade_limit=settings.cascade_limit,
        fallback_models=settings.fallback_models,
    )
    return ConversationSession(orchestrator, system_prompt=system_prompt)
