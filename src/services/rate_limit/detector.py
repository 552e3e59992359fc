"""
速率限制检测器 - 解析429响应头，得到重试等待时间
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from src.config.constants import AssistantDefaults
from src.core.logger import logger


class RateLimitInfo:
    """速率限制信息"""

    def __init__(
        self,
        retry_after: float,
        explicit: bool,
        limit_value: int | None = None,
        remaining: int | None = None,
        raw_headers: dict[str, str] | None = None,
    ):
        self.retry_after = retry_after  # 需要等待的秒数
        self.explicit = explicit  # 上游是否显式给出 Retry-After
        self.limit_value = limit_value  # 限制值
        self.remaining = remaining  # 剩余配额
        self.raw_headers = raw_headers or {}

    def __repr__(self) -> str:
        return (
            f"RateLimitInfo(retry_after={self.retry_after}, "
            f"explicit={self.explicit}, "
            f"limit={self.limit_value}, "
            f"remaining={self.remaining})"
        )


class RateLimitDetector:
    """
    速率限制检测器

    标准头部：
    - retry-after: 60 或 HTTP 日期
    - x-ratelimit-limit: 20
    - x-ratelimit-remaining: 0
    """

    @staticmethod
    def detect_from_headers(
        headers: Mapping[str, str],
        default_retry_after: float = AssistantDefaults.DEFAULT_RETRY_AFTER,
        now: datetime | None = None,
    ) -> RateLimitInfo:
        """
        从响应头中解析速率限制信息

        Args:
            headers: 429响应的HTTP头
            default_retry_after: 缺少 Retry-After 时使用的等待秒数
            now: 当前时间（解析 HTTP 日期格式时使用）

        Returns:
            RateLimitInfo对象
        """
        # 标准化header key (转小写)
        headers_lower = {k.lower(): v for k, v in headers.items()}

        retry_after = RateLimitDetector._parse_retry_after(headers_lower, now)
        info = RateLimitInfo(
            retry_after=retry_after if retry_after is not None else default_retry_after,
            explicit=retry_after is not None,
            limit_value=RateLimitDetector._parse_int(headers_lower.get("x-ratelimit-limit")),
            remaining=RateLimitDetector._parse_int(headers_lower.get("x-ratelimit-remaining")),
            raw_headers=headers_lower,
        )
        logger.debug("429 响应头解析结果: {}", info)
        return info

    @staticmethod
    def _parse_retry_after(headers: dict[str, str], now: datetime | None = None) -> float | None:
        """解析 Retry-After 头"""
        retry_after_str = (headers.get("retry-after") or "").strip()
        if not retry_after_str:
            return None

        try:
            # 尝试解析为秒数
            seconds = float(retry_after_str)
            return seconds if seconds >= 0 else None
        except ValueError:
            pass

        # 尝试解析为HTTP日期格式
        try:
            retry_date = parsedate_to_datetime(retry_after_str)
        except (TypeError, ValueError):
            return None
        if retry_date.tzinfo is None:
            retry_date = retry_date.replace(tzinfo=timezone.utc)
        delta = retry_date - (now or datetime.now(timezone.utc))
        return max(delta.total_seconds(), 0.0)

    @staticmethod
    def _parse_int(value: str | None) -> int | None:
        """安全解析整数"""
        if not value:
            return None
        try:
            return int(value)
        except (ValueError, TypeError):
            return None


# 便捷函数
def detect_rate_limit(
    headers: Mapping[str, str],
    default_retry_after: float = AssistantDefaults.DEFAULT_RETRY_AFTER,
) -> RateLimitInfo:
    """检测速率限制信息（便捷函数）"""
    return RateLimitDetector.detect_from_headers(headers, default_retry_after)
