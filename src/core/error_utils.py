"""
错误消息处理工具函数

两种用途的消息分开提取：
- AttemptRecord.message: 面向排查，附带上游原始响应片段
- ChatFailure.message: 面向调用方，只用异常的友好消息
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.models.assistant import AttemptRecord

# 记录上游响应时保留的最大字符数
UPSTREAM_SNIPPET_LIMIT = 500


def upstream_snippet(text: str | None, limit: int = UPSTREAM_SNIPPET_LIMIT) -> str | None:
    """截取上游响应体，空白响应返回 None"""
    if not text or not text.strip():
        return None
    text = text.strip()
    return text if len(text) <= limit else text[:limit] + "..."


def extract_client_error_message(error: Exception) -> str:
    """
    从异常中提取调用方友好的错误消息

    优先使用 message 属性，否则回退到 str / repr（httpx 超时异常的 str 为空）
    """
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    return str(error) or repr(error)


def extract_error_message(error: Exception) -> str:
    """
    提取用于失败记录的错误消息

    Provider 返回了响应体时追加在后面，便于在级联失败汇总中看到原始错误。
    """
    message = extract_client_error_message(error)
    upstream = getattr(error, "upstream_response", None)
    if isinstance(upstream, str) and upstream.strip() and upstream.strip() != message:
        return f"{message} | upstream: {upstream.strip()}"
    return message


def summarize_attempts(attempts: Iterable[AttemptRecord]) -> str:
    """失败记录摘要，如 "b(NetworkError), a(RateLimitError)" """
    return ", ".join(f"{a.model_id}({a.error_kind})" for a in attempts)
