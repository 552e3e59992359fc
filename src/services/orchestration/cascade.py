"""
级联编排器

按质量顺序依次尝试候选模型：
1. 每次尝试都有独立的截止时间，超时视为 ModelTimeoutError
2. 成功立即返回，不再尝试后续候选
3. 429 限流：对同一候选退避重试，最多 max_retries 次
4. 其他错误（网络 / 超时 / 响应无效）：记录后直接切换下一个候选
5. 全部失败：抛出 AllModelsFailedError，携带按级联顺序的失败记录

候选严格串行尝试，候选 k（含其重试）结束前不会开始候选 k+1。
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from src.clients.openrouter import ChatCompletion, ChatMessage
from src.config.constants import AssistantDefaults
from src.core.exceptions import (
    AllModelsFailedError,
    AssistantError,
    InvalidResponseError,
    ModelTimeoutError,
    NetworkError,
    NoAvailableModelsError,
    RateLimitError,
)
from src.core.logger import logger
from src.models.assistant import AttemptRecord, CascadeSuccess, ModelDescriptor
from src.services.orchestration.error_handler import (
    ErrorAction,
    ErrorHandlerService,
    classify_error,
)
from src.services.orchestration.model_selector import ModelSelector
from src.services.rate_limit.backoff import BackoffPolicy, SleepFunc, retry_on_rate_limit

# 传给客户端的截止时间在尝试预算之上的余量（秒）
CLIENT_DEADLINE_GRACE = 1.0


class ProviderClient(Protocol):
    async def list_models(self, timeout: float | None = None) -> list[ModelDescriptor]: ...

    async def send_chat(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatCompletion: ...


class CascadeOrchestrator:
    """按排序逐个尝试候选，直到某个候选成功"""

    def __init__(
        self,
        client: ProviderClient,
        selector: ModelSelector | None = None,
        *,
        max_retries: int = AssistantDefaults.MAX_RETRIES,
        initial_backoff: float = AssistantDefaults.RETRY_BACKOFF,
        max_backoff: float = AssistantDefaults.MAX_BACKOFF,
        attempt_timeout: float = AssistantDefaults.ATTEMPT_TIMEOUT,
        cascade_limit: int = AssistantDefaults.CASCADE_LIMIT,
        fallback_models: Sequence[str] = (),
        sleep: SleepFunc = asyncio.sleep,
        error_handler: ErrorHandlerService | None = None,
    ) -> None:
        self.client = client
        self.selector = selector or ModelSelector()
        self.max_retries = max_retries
        self.backoff = BackoffPolicy(initial=initial_backoff, max_delay=max_backoff)
        self.attempt_timeout = attempt_timeout
        self.cascade_limit = cascade_limit
        self.fallback_models = list(fallback_models)
        self.error_handler = error_handler or ErrorHandlerService()
        self._sleep = sleep

    async def send_with_cascade(
        self,
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CascadeSuccess:
        """
        从模型目录得到候选顺序，再执行级联

        Raises:
            NoAvailableModelsError: 没有可用的免费模型
            AllModelsFailedError: 所有候选均失败
            NetworkError / RateLimitError / InvalidResponseError: 目录获取失败且未配置备用模型
        """
        candidates = await self.resolve_candidates()
        return await self.run_cascade(candidates, messages, options, timeout)

    async def resolve_candidates(self) -> list[str]:
        """获取目录并排序；目录不可用时回退到配置的备用模型"""
        try:
            catalog = await self.client.list_models()
        except (NetworkError, RateLimitError, InvalidResponseError) as e:
            if not self.fallback_models:
                raise
            logger.warning(
                "模型目录获取失败 ({}: {})，使用备用模型列表: {}",
                e.kind,
                e.message,
                ", ".join(self.fallback_models),
            )
            return self.fallback_models[: self.cascade_limit]

        ranked = self.selector.cascade_order(catalog, limit=self.cascade_limit)
        return [s.id for s in ranked]

    async def run_cascade(
        self,
        candidates: Sequence[str],
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CascadeSuccess:
        """
        在给定候选顺序上执行级联

        Args:
            candidates: 按优先级排序的模型 ID
            messages: 发送给模型的消息
            options: 透传参数
            timeout: 单个候选的尝试预算（秒），默认 attempt_timeout
        """
        if not candidates:
            raise NoAvailableModelsError("No candidates to cascade through")

        attempts: list[AttemptRecord] = []
        total = len(candidates)

        for position, model_id in enumerate(candidates, start=1):
            retries_used = 0

            def _count_retry(n: int) -> None:
                nonlocal retries_used
                retries_used = n

            try:
                completion, retries_used = await retry_on_rate_limit(
                    functools.partial(self._attempt, model_id, messages, options, timeout),
                    policy=self.backoff,
                    max_retries=self.max_retries,
                    sleep=self._sleep,
                    label=model_id,
                    on_retry=_count_retry,
                )
            except AssistantError as e:
                if classify_error(e) is ErrorAction.ABORT:
                    raise
                attempts.append(
                    self.error_handler.record_failure(
                        model_id, e, position=position, total=total, retries=retries_used
                    )
                )
                continue

            logger.info(
                "候选 {} 成功 (第 {}/{} 个候选{})",
                model_id,
                position,
                total,
                f", 重试 {retries_used} 次" if retries_used else "",
            )
            return CascadeSuccess(
                model_id=model_id,
                response_text=completion.text,
                attempt_count=len(attempts) + 1,
                retried=retries_used > 0,
                raw=completion.raw,
            )

        error = AllModelsFailedError(attempts)
        self.error_handler.report_exhausted(error)
        raise error

    async def send_with_retry(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> CascadeSuccess:
        """
        指定单个模型发送（无级联），仅对限流做退避重试

        非限流错误直接抛出；重试耗尽后抛出最后一次的 RateLimitError。
        """
        completion, retries = await retry_on_rate_limit(
            functools.partial(self._attempt, model_id, messages, options, timeout),
            policy=self.backoff,
            max_retries=self.max_retries,
            sleep=self._sleep,
            label=model_id,
        )
        return CascadeSuccess(
            model_id=model_id,
            response_text=completion.text,
            attempt_count=retries + 1,
            retried=retries > 0,
            raw=completion.raw,
        )

    async def _attempt(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        options: Mapping[str, Any] | None,
        timeout: float | None,
    ) -> ChatCompletion:
        """单次尝试：请求与计时器竞争，超时则取消请求"""
        deadline = timeout if timeout is not None else self.attempt_timeout
        logger.debug("尝试候选 {} (timeout={}s)", model_id, deadline)
        try:
            return await asyncio.wait_for(
                # 客户端截止时间略长于尝试预算，超时统一由这里报告为 ModelTimeoutError
                self.client.send_chat(
                    model_id, messages, options, timeout=deadline + CLIENT_DEADLINE_GRACE
                ),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            raise ModelTimeoutError(model_id, deadline) from None
