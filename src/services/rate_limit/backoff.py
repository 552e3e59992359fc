"""
限流退避重试

退避策略（所有调用点共用同一策略）：
- 上游显式给出 Retry-After：按其等待
- 否则：initial * multiplier^(n-1)，n 为第几次重试
两种情况都受 max_delay 上限约束。
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from src.core.exceptions import RateLimitError
from src.core.logger import logger

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class BackoffPolicy:
    """指数退避策略"""

    def __init__(self, initial: float = 1.0, max_delay: float = 60.0, multiplier: float = 2.0):
        if initial < 0 or max_delay < 0:
            raise ValueError("backoff delays must be non-negative")
        self.initial = initial
        self.max_delay = max_delay
        self.multiplier = multiplier

    def delay(self, retry_number: int, retry_after: float | None = None) -> float:
        """
        第 retry_number 次重试前的等待秒数（从 1 开始）

        Args:
            retry_number: 第几次重试
            retry_after: 上游显式给出的等待时间
        """
        if retry_number < 1:
            raise ValueError("retry_number starts at 1")
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.max_delay)
        return min(self.initial * self.multiplier ** (retry_number - 1), self.max_delay)

    def delay_for(self, retry_number: int, error: RateLimitError) -> float:
        """根据 RateLimitError 计算等待时间（仅采信显式的 Retry-After）"""
        hint = error.retry_after if error.retry_after_explicit else None
        return self.delay(retry_number, hint)

    def schedule(self, retries: int) -> list[float]:
        """无上游提示时 retries 次重试的等待序列"""
        return [self.delay(n) for n in range(1, retries + 1)]


async def retry_on_rate_limit(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: BackoffPolicy,
    max_retries: int,
    sleep: SleepFunc = asyncio.sleep,
    label: str = "",
    on_retry: Callable[[int], None] | None = None,
) -> tuple[T, int]:
    """
    执行 operation，遇到 RateLimitError 时退避重试

    其他异常立即向上抛出；重试耗尽后抛出最后一次的 RateLimitError。
    on_retry 在每次重试等待前以重试序号调用。

    Returns:
        (结果, 实际重试次数)
    """
    retries = 0
    while True:
        try:
            return await operation(), retries
        except RateLimitError as e:
            if retries >= max_retries:
                logger.warning("[{}] 限流重试 {} 次后仍失败", label, retries)
                raise
            retries += 1
            if on_retry is not None:
                on_retry(retries)
            wait = policy.delay_for(retries, e)
            logger.info(
                "[{}] 429 限流，{:.2f}s 后进行第 {}/{} 次重试",
                label,
                wait,
                retries,
                max_retries,
            )
            await sleep(wait)
