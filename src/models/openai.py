"""
OpenAI 兼容 API 数据模型定义

Provider 返回的 JSON 先经过这里的模型校验，再转换为领域模型；
字段访问不会越过 Provider Client 边界。
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.models.assistant import Capability, ModelDescriptor, ModelPricing


# 配置允许额外字段，以支持 API 的新特性
class BaseModelWithExtras(BaseModel):
    model_config = ConfigDict(extra="allow")


class OpenAIMessage(BaseModelWithExtras):
    """OpenAI消息模型"""

    role: str
    content: str | list[dict[str, Any]] | None = None


class OpenAIChoice(BaseModelWithExtras):
    """OpenAI选择结果"""

    index: int = 0
    message: OpenAIMessage
    finish_reason: str | None = None


class OpenAIUsage(BaseModelWithExtras):
    """OpenAI使用统计"""

    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ChatCompletionResponse(BaseModelWithExtras):
    """/chat/completions 响应"""

    id: str | None = None
    model: str | None = None
    choices: list[OpenAIChoice]
    usage: OpenAIUsage | None = None


class ModelArchitecture(BaseModelWithExtras):
    modality: str | None = None
    input_modalities: list[str] | None = None


class ModelPricingInfo(BaseModelWithExtras):
    """价格以字符串形式返回，如 "0" / "0.000002" """

    prompt: str | float | None = None
    completion: str | float | None = None


class CatalogModel(BaseModelWithExtras):
    """/models 中的单个条目"""

    id: str = Field(min_length=1)
    name: str | None = None
    context_length: int | None = None
    architecture: ModelArchitecture | None = None
    pricing: ModelPricingInfo | None = None
    supported_parameters: list[str] | None = None
    function_calling: bool | None = None
    structured_outputs: bool | None = None
    privacy_policy: str | None = None
    expiration_date: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("expiration_date", "expirationDate"),
    )

    @field_validator("expiration_date", mode="before")
    @classmethod
    def _parse_expiration(cls, value: Any) -> Any:
        # 仅日期（如 "2026-03-01"）按当天 00:00 UTC 处理
        if isinstance(value, str) and len(value) == 10:
            return datetime.combine(date.fromisoformat(value), datetime.min.time(), timezone.utc)
        return value

    def to_descriptor(self) -> ModelDescriptor:
        expiration = self.expiration_date
        if expiration is not None and expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)

        return ModelDescriptor(
            id=self.id,
            name=self.name or self.id,
            context_window=self.context_length or 0,
            capabilities=self._capabilities(),
            pricing=ModelPricing(
                prompt=_parse_price(self.pricing.prompt if self.pricing else None),
                completion=_parse_price(self.pricing.completion if self.pricing else None),
            ),
            privacy_policy=self.privacy_policy,
            expiration_date=expiration,
        )

    def _capabilities(self) -> frozenset[Capability]:
        caps: set[Capability] = set()
        modality = (self.architecture.modality or "") if self.architecture else ""
        inputs = (self.architecture.input_modalities or []) if self.architecture else []
        params = set(self.supported_parameters or [])

        if "text" in modality or "text" in inputs:
            caps.add(Capability.TEXT)
        if "image" in modality or "image" in inputs:
            caps.add(Capability.MULTIMODAL)
        if self.function_calling or "tools" in params:
            caps.add(Capability.FUNCTION_CALLING)
        if self.structured_outputs or "structured_outputs" in params:
            caps.add(Capability.STRUCTURED_OUTPUT)
        return frozenset(caps)


class ModelListResponse(BaseModelWithExtras):
    """/models 响应，条目先保持原始 dict，逐条校验"""

    data: list[Any]


def _parse_price(value: str | float | None) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
