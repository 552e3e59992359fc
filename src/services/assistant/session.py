"""
会话

调用方使用的入口：维护对话历史，通过级联编排器发送请求，根据结果提交或保留历史。

历史约束：
- 每次成功的 ask 追加恰好两条消息 [user, assistant]
- 失败的 ask 只保留已追加的 user 消息，调用方可直接重试
- 同一会话上的 ask 通过 asyncio.Lock 串行执行
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from typing import Any

from src.core.error_utils import extract_client_error_message
from src.core.exceptions import AllModelsFailedError, AssistantError
from src.core.logger import logger
from src.models.assistant import (
    ChatFailure,
    ChatReply,
    ChatResult,
    Message,
    MessageRole,
    ModelSummary,
)
from src.services.assistant.prompts import DEFAULT_SYSTEM_PROMPT
from src.services.orchestration.cascade import CascadeOrchestrator


class ConversationSession:
    """带历史的 AI 对话会话"""

    def __init__(self, orchestrator: CascadeOrchestrator, system_prompt: str | None = None) -> None:
        self.orchestrator = orchestrator
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self._history: list[Message] = []
        # clear_history 时递增，进行中的 ask 据此丢弃过期回复
        self._generation = 0
        self._lock = asyncio.Lock()

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def set_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    def get_history(self) -> list[Message]:
        """返回历史副本，修改返回值不影响会话"""
        return list(self._history)

    def clear_history(self) -> None:
        self._history = []
        self._generation += 1

    async def ask(
        self,
        text: str,
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatResult:
        """
        带历史发送一条用户消息

        Args:
            text: 用户消息
            options: 透传给上游的参数（temperature、max_tokens 等）
            timeout: 单个候选的尝试预算（秒）

        Returns:
            ChatReply 或 ChatFailure，不会因级联失败抛出异常
        """
        async with self._lock:
            generation = self._generation
            self._history.append(Message(role=MessageRole.USER, content=text))
            payload = [self._system_message(), *self._history]

            result = await self._dispatch(payload, options, timeout)

            if isinstance(result, ChatReply):
                if generation == self._generation:
                    self._history.append(Message(role=MessageRole.ASSISTANT, content=result.text))
                else:
                    logger.debug("会话历史在请求期间被清空，丢弃回复")
            return result

    async def ask_one_off(
        self,
        text: str,
        options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatResult:
        """单次提问，不读写历史"""
        payload = [self._system_message(), Message(role=MessageRole.USER, content=text)]
        return await self._dispatch(payload, options, timeout)

    async def get_available_models(self) -> list[ModelSummary]:
        """获取排序后的免费模型列表（调试/展示用）"""
        selector = self.orchestrator.selector
        catalog = await self.orchestrator.client.list_models()
        ranked = selector.rank(selector.filter_free(catalog))
        return [
            ModelSummary(
                id=s.id,
                name=s.descriptor.name or s.id,
                context_length=s.descriptor.context_window,
                score=s.score,
            )
            for s in ranked
        ]

    def _system_message(self) -> Message:
        return Message(role=MessageRole.SYSTEM, content=self._system_prompt)

    async def _dispatch(
        self,
        messages: Sequence[Message],
        options: Mapping[str, Any] | None,
        timeout: float | None,
    ) -> ChatResult:
        try:
            outcome = await self.orchestrator.send_with_cascade(messages, options, timeout)
        except AllModelsFailedError as e:
            return ChatFailure(
                error_kind=e.kind,
                message=extract_client_error_message(e),
                attempts=len(e.attempts),
                failures=e.attempts,
            )
        except AssistantError as e:
            logger.warning("AI 请求失败: {}: {}", e.kind, e.message)
            return ChatFailure(error_kind=e.kind, message=extract_client_error_message(e))

        return ChatReply(
            text=outcome.response_text,
            model_id=outcome.model_id,
            attempts=outcome.attempt_count,
            retried=outcome.retried,
        )
