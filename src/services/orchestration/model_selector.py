"""
模型选择器

从 Provider 目录中筛选免费模型，按质量启发式打分并排序，得到级联候选顺序。

评分（满分 100）：
- 上下文窗口 0-40：>=100k 40, >=50k 30, >=32k 20, >=16k 10, 其他 5
- 能力 0-30：多模态 / 函数调用 / 结构化输出 各 +10
- 隐私 0-20：明确 no-log / anonymous +20；未提及 training +10；无策略 0
- 时效 0-10：无过期时间 +10；距过期 >90 天 +8, >30 天 +5, >7 天 +2
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from src.core.exceptions import NoAvailableModelsError
from src.core.logger import logger
from src.models.assistant import Capability, ModelDescriptor, ScoredModel

Clock = Callable[[], datetime]

# (最小上下文长度, 分数)，从高到低匹配
CONTEXT_BANDS: tuple[tuple[int, int], ...] = (
    (100_000, 40),
    (50_000, 30),
    (32_000, 20),
    (16_000, 10),
)
CONTEXT_FLOOR_SCORE = 5

CAPABILITY_BONUS = {
    Capability.MULTIMODAL: 10,
    Capability.FUNCTION_CALLING: 10,
    Capability.STRUCTURED_OUTPUT: 10,
}

# (距过期天数下限, 分数)
EXPIRY_BANDS: tuple[tuple[int, int], ...] = (
    (90, 8),
    (30, 5),
    (7, 2),
)
NO_EXPIRY_SCORE = 10

DEFAULT_CASCADE_LIMIT = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModelSelector:
    """免费模型筛选与排序"""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or _utc_now

    def filter_free(self, catalog: Iterable[ModelDescriptor] | None) -> list[ModelDescriptor]:
        """保留 prompt 价格为 0 且未过期的模型，保持原顺序"""
        if not catalog:
            return []
        now = self._clock()
        return [
            m
            for m in catalog
            if m.is_free and (m.expiration_date is None or m.expiration_date > now)
        ]

    def score(self, model: ModelDescriptor) -> int:
        """计算模型质量分（越高越好）"""
        return (
            self._context_score(model.context_window)
            + self._capability_score(model.capabilities)
            + self._privacy_score(model.privacy_policy)
            + self._freshness_score(model.expiration_date)
        )

    def rank(self, models: Iterable[ModelDescriptor] | None) -> list[ScoredModel]:
        """按分数降序排序；同分保持原相对顺序"""
        if not models:
            return []
        scored = [ScoredModel(descriptor=m, score=self.score(m)) for m in models]
        return sorted(scored, key=lambda s: s.score, reverse=True)

    def cascade_order(
        self,
        catalog: Iterable[ModelDescriptor] | None,
        limit: int = DEFAULT_CASCADE_LIMIT,
    ) -> list[ScoredModel]:
        """
        获取级联候选列表

        Raises:
            NoAvailableModelsError: 没有可用的免费模型
        """
        free_models = self.filter_free(catalog)
        if not free_models:
            raise NoAvailableModelsError("No free models available for cascade")

        ranked = self.rank(free_models)[: max(limit, 0)]
        logger.debug(
            "级联候选 ({} 个免费模型): {}",
            len(free_models),
            ", ".join(f"{s.id}={s.score}" for s in ranked),
        )
        return ranked

    def select_best(self, catalog: Iterable[ModelDescriptor] | None) -> ScoredModel:
        """选择最佳免费模型"""
        free_models = self.filter_free(catalog)
        if not free_models:
            raise NoAvailableModelsError("No free models available")
        return self.rank(free_models)[0]

    @staticmethod
    def _context_score(context_window: int) -> int:
        for threshold, points in CONTEXT_BANDS:
            if context_window >= threshold:
                return points
        return CONTEXT_FLOOR_SCORE

    @staticmethod
    def _capability_score(capabilities: frozenset[Capability]) -> int:
        return sum(CAPABILITY_BONUS.get(cap, 0) for cap in capabilities)

    @staticmethod
    def _privacy_score(policy: str | None) -> int:
        # 未公布隐私策略不加分
        if not policy:
            return 0
        text = policy.lower()
        if "no-log" in text or "anonymous" in text:
            return 20
        if "training" not in text:
            return 10
        return 0

    def _freshness_score(self, expiration_date: datetime | None) -> int:
        if expiration_date is None:
            return NO_EXPIRY_SCORE
        days_left = (expiration_date - self._clock()).days
        for threshold, points in EXPIRY_BANDS:
            if days_left > threshold:
                return points
        return 0
