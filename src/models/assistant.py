"""
AI 助手领域模型

- ModelDescriptor / ScoredModel: 模型目录条目及其评分
- AttemptRecord / CascadeSuccess: 一次级联调用的过程与结果
- Message: 会话消息
- ChatReply / ChatFailure: 返回给路由层的结果
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Capability(str, Enum):
    """模型能力"""

    TEXT = "text"
    MULTIMODAL = "multimodal"
    FUNCTION_CALLING = "function_calling"
    STRUCTURED_OUTPUT = "structured_output"


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ModelPricing:
    """每 token 价格；None 表示上游未提供"""

    prompt: Decimal | None = None
    completion: Decimal | None = None


@dataclass(frozen=True)
class ModelDescriptor:
    """Provider 目录中的一个模型（不可变）"""

    id: str
    name: str = ""
    context_window: int = 0
    capabilities: frozenset[Capability] = frozenset()
    pricing: ModelPricing = field(default_factory=ModelPricing)
    privacy_policy: str | None = None
    expiration_date: datetime | None = None

    @property
    def is_free(self) -> bool:
        return self.pricing.prompt is not None and self.pricing.prompt == 0


@dataclass(frozen=True)
class ScoredModel:
    descriptor: ModelDescriptor
    score: int

    @property
    def id(self) -> str:
        return self.descriptor.id


@dataclass(frozen=True)
class AttemptRecord:
    """级联中一个候选的失败记录"""

    model_id: str
    error_kind: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass
class CascadeSuccess:
    model_id: str
    response_text: str
    attempt_count: int
    retried: bool = False
    raw: dict[str, Any] | None = None


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_payload(self) -> dict[str, str]:
        """转换为 OpenAI 兼容的消息格式"""
        return {"role": self.role.value, "content": self.content}


# ============================================================================
# 路由层结果
# ============================================================================


class _ResultModel(BaseModel):
    # model_dump(by_alias=True) 输出 camelCase 字段名
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ChatReply(_ResultModel):
    """成功结果"""

    success: Literal[True] = True
    text: str
    model_id: str = Field(alias="modelId")
    attempts: int
    retried: bool = False


class ChatFailure(_ResultModel):
    """失败结果（不抛异常，由调用方转换为“服务暂不可用”）"""

    success: Literal[False] = False
    error_kind: str = Field(alias="errorKind")
    message: str
    attempts: int = 0
    failures: list[AttemptRecord] = Field(default_factory=list)


ChatResult = Union[ChatReply, ChatFailure]


class ModelSummary(_ResultModel):
    """排序后的模型概览（调试/展示用）"""

    id: str
    name: str
    context_length: int = Field(alias="contextLength")
    score: int
