"""
AI 助手异常体系

所有异常均继承 AssistantError，按处理方式分为三类：
- 致命错误：ConfigurationError（构造时）、NoAvailableModelsError（无候选）
- 候选级可恢复错误：NetworkError / ModelTimeoutError / InvalidResponseError，
  级联编排器记录后直接切换到下一个候选
- 限流错误：RateLimitError，对同一候选做有限次退避重试
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.models.assistant import AttemptRecord


class AssistantError(Exception):
    """AI 助手异常基类"""

    default_message = "AI assistant request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(AssistantError):
    """缺少必需配置（如 API Key），构造阶段即失败"""

    default_message = "Assistant is not configured"


class NoAvailableModelsError(AssistantError):
    """过滤后没有任何可用的免费模型"""

    default_message = "No available models found"


class RateLimitError(AssistantError):
    """上游返回 429"""

    default_message = "Rate limit exceeded"

    def __init__(
        self,
        message: str | None = None,
        retry_after: float = 60.0,
        retry_after_explicit: bool = False,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after  # 秒
        # 上游是否显式给出了 Retry-After（否则 retry_after 为默认值）
        self.retry_after_explicit = retry_after_explicit


class ModelTimeoutError(AssistantError):
    """单个候选在其时间预算内未完成"""

    def __init__(self, model_id: str, timeout: float) -> None:
        super().__init__(f"Model {model_id} timed out after {timeout:g}s")
        self.model_id = model_id
        self.timeout = timeout


class InvalidResponseError(AssistantError):
    """上游响应结构不符合预期"""

    default_message = "Invalid response from API"

    def __init__(self, message: str | None = None, upstream_response: str | None = None) -> None:
        super().__init__(message)
        self.upstream_response = upstream_response


class NetworkError(AssistantError):
    """传输失败、非 2xx 状态或请求超时被取消"""

    default_message = "Network request failed"

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        upstream_response: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.upstream_response = upstream_response


class AllModelsFailedError(AssistantError):
    """级联中的所有候选均失败，按级联顺序携带每一次失败记录"""

    def __init__(self, attempts: list[AttemptRecord], message: str | None = None) -> None:
        self.attempts = list(attempts)
        if message is None:
            model_list = ", ".join(a.model_id for a in self.attempts)
            message = f"All {len(self.attempts)} models failed: {model_list}"
        super().__init__(message)


# 记录后切换到下一个候选的错误类型
RETRIABLE_ERRORS: tuple[type[AssistantError], ...] = (
    NetworkError,
    ModelTimeoutError,
    InvalidResponseError,
)


__all__ = [
    "AllModelsFailedError",
    "AssistantError",
    "ConfigurationError",
    "InvalidResponseError",
    "ModelTimeoutError",
    "NetworkError",
    "NoAvailableModelsError",
    "RETRIABLE_ERRORS",
    "RateLimitError",
]
