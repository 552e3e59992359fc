"""
限流处理

- RateLimitDetector: 解析 429 响应头
- BackoffPolicy / retry_on_rate_limit: 退避重试
"""

from src.services.rate_limit.backoff import BackoffPolicy, retry_on_rate_limit
from src.services.rate_limit.detector import RateLimitDetector, RateLimitInfo, detect_rate_limit

__all__ = [
    "BackoffPolicy",
    "RateLimitDetector",
    "RateLimitInfo",
    "detect_rate_limit",
    "retry_on_rate_limit",
]
