"""
OpenRouter (OpenAI 兼容) HTTP 客户端

负责两个上游操作：
- GET  {base}/models            -> 模型目录
- POST {base}/chat/completions  -> 对话补全

每次调用都受调用方给定的截止时间约束，超时会取消进行中的请求并抛出
NetworkError。这里不做任何重试，重试由级联编排器负责。
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from src.clients.http_client import build_client_kwargs
from src.config import Config, config
from src.core.error_utils import upstream_snippet
from src.core.exceptions import (
    ConfigurationError,
    InvalidResponseError,
    NetworkError,
    RateLimitError,
)
from src.core.logger import logger
from src.models.assistant import Message, ModelDescriptor
from src.models.openai import CatalogModel, ChatCompletionResponse, ModelListResponse, OpenAIMessage
from src.services.rate_limit.detector import RateLimitDetector

ChatMessage = Message | Mapping[str, Any]


@dataclass(frozen=True)
class ChatCompletion:
    """一次对话补全的结果"""

    text: str
    model: str
    raw: dict[str, Any]


class OpenRouterClient:
    """OpenRouter API 客户端（也适用于其他 OpenAI 兼容网关）"""

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str | None = None,
        app_headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Config | None = None,
    ) -> None:
        settings = settings or config
        self.api_key = (api_key or "").strip()
        if not self.api_key:
            raise ConfigurationError("OpenRouter API key is required")

        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self.app_headers = dict(settings.app_headers if app_headers is None else app_headers)
        self.timeout = timeout if timeout is not None else settings.request_timeout

        # 注入的客户端由调用方负责关闭
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(**build_client_kwargs(settings))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "OpenRouterClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            **self.app_headers,
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def list_models(self, timeout: float | None = None) -> list[ModelDescriptor]:
        """
        获取模型目录

        Raises:
            RateLimitError: 429
            NetworkError: 传输失败、非 2xx 或超时
            InvalidResponseError: 响应缺少 data 数组
        """
        response = await self._request("GET", "/models", timeout=timeout, label="models")
        payload = self._decode_json(response)

        try:
            listing = ModelListResponse.model_validate(payload)
        except ValidationError as e:
            raise InvalidResponseError(
                "Invalid response format: expected { data: [...] }",
                upstream_response=upstream_snippet(response.text),
            ) from e

        models: list[ModelDescriptor] = []
        for row in listing.data:
            try:
                models.append(CatalogModel.model_validate(row).to_descriptor())
            except ValidationError as e:
                row_id = row.get("id") if isinstance(row, dict) else None
                logger.debug("跳过无效的模型目录条目 {}: {}", row_id, e.errors()[0].get("msg"))
        logger.debug("模型目录共 {} 项，有效 {} 项", len(listing.data), len(models))
        return models

    async def send_chat(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatCompletion:
        """
        发送对话补全请求

        Args:
            model_id: 模型 ID（如 "meta-llama/llama-3.3-70b-instruct:free"）
            messages: 消息列表
            options: 透传给上游的额外参数（temperature、max_tokens 等）
            timeout: 本次调用的截止时间（秒）

        Raises:
            RateLimitError / NetworkError / InvalidResponseError
        """
        body: dict[str, Any] = {
            **dict(options or {}),
            "model": model_id,
            "messages": [_message_payload(m) for m in messages],
        }
        response = await self._request(
            "POST", "/chat/completions", json=body, timeout=timeout, label=model_id
        )
        payload = self._decode_json(response)

        try:
            completion = ChatCompletionResponse.model_validate(payload)
        except ValidationError as e:
            raise InvalidResponseError(
                "Invalid response format: expected { choices: [...] }",
                upstream_response=upstream_snippet(response.text),
            ) from e
        if not completion.choices:
            raise InvalidResponseError("Invalid response format: expected { choices: [...] }")

        content = completion.choices[0].message.content
        if isinstance(content, list):
            # 多段内容只取文本部分
            content = "".join(
                str(part.get("text") or "") for part in content if part.get("type") == "text"
            )
        return ChatCompletion(
            text=content or "",
            model=completion.model or model_id,
            raw=payload,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        timeout: float | None,
        label: str,
    ) -> httpx.Response:
        """执行请求并把传输层/HTTP 结果映射为异常体系"""
        deadline = timeout if timeout is not None else self.timeout
        url = self._url(path)

        try:
            response = await asyncio.wait_for(
                self._client.request(
                    method,
                    url,
                    headers=self._headers(),
                    json=json,
                    # 单次请求的 httpx 超时随截止时间放宽，连接池默认的读超时不会提前打断
                    timeout=httpx.Timeout(deadline),
                ),
                timeout=deadline,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise NetworkError(f"Request to {path} timed out after {deadline:g}s") from None
        except httpx.HTTPError as e:
            raise NetworkError(f"Network error: {str(e) or type(e).__name__}") from e

        if response.status_code == 429:
            info = RateLimitDetector.detect_from_headers(response.headers)
            target = "/models endpoint" if label == "models" else f"model: {label}"
            raise RateLimitError(
                f"Rate limit exceeded for {target}",
                retry_after=info.retry_after,
                retry_after_explicit=info.explicit,
            )

        if not response.is_success:
            raise NetworkError(
                f"Request to {path} failed ({response.status_code}): {_error_detail(response)}",
                status_code=response.status_code,
                upstream_response=upstream_snippet(response.text),
            )
        return response

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Response is not valid JSON", upstream_response=upstream_snippet(response.text)
            ) from e


def _message_payload(message: ChatMessage) -> dict[str, Any]:
    if isinstance(message, Message):
        return message.to_payload()
    return OpenAIMessage.model_validate(dict(message)).model_dump(exclude_none=True)


def _error_detail(response: httpx.Response) -> str:
    """提取上游错误信息：优先 error.message，否则状态描述"""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return response.reason_phrase or "unknown error"
