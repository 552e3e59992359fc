"""
错误处理服务

负责候选失败后的分类与记录：
- classify_error: 纯分类，决定级联下一步动作（无副作用）
- ErrorHandlerService: 生成 AttemptRecord 并记录日志
"""

from __future__ import annotations

from enum import Enum

from src.core.error_utils import extract_error_message, summarize_attempts
from src.core.exceptions import (
    RETRIABLE_ERRORS,
    AllModelsFailedError,
    AssistantError,
    RateLimitError,
)
from src.core.logger import logger
from src.models.assistant import AttemptRecord


class ErrorAction(str, Enum):
    """候选失败后的动作"""

    RETRY_SAME = "retry_same"  # 退避后重试同一候选（仅限流）
    NEXT_CANDIDATE = "next_candidate"  # 记录并切换到下一个候选
    ABORT = "abort"  # 终止整个级联


def classify_error(error: Exception) -> ErrorAction:
    """错误分类（纯逻辑）"""
    if isinstance(error, RateLimitError):
        return ErrorAction.RETRY_SAME
    if isinstance(error, RETRIABLE_ERRORS):
        return ErrorAction.NEXT_CANDIDATE
    return ErrorAction.ABORT


class ErrorHandlerService:
    """
    错误处理服务 - 负责候选失败后的记录

    职责：
    1. 生成按级联顺序追加的 AttemptRecord
    2. 候选失败 / 级联耗尽时输出日志
    """

    def record_failure(
        self,
        model_id: str,
        error: AssistantError,
        *,
        position: int,
        total: int,
        retries: int = 0,
    ) -> AttemptRecord:
        """
        记录一个候选的失败

        Args:
            model_id: 候选模型 ID
            error: 最终导致放弃该候选的异常
            position: 候选在级联中的位置（从 1 开始）
            total: 候选总数
            retries: 该候选上已进行的限流重试次数
        """
        record = AttemptRecord(
            model_id=model_id,
            error_kind=error.kind,
            message=extract_error_message(error),
        )
        suffix = f" (after {retries} rate-limit retries)" if retries else ""
        logger.warning(
            "  [{}/{}] 候选 {} 失败: {}: {}{}",
            position,
            total,
            model_id,
            record.error_kind,
            error.message,
            suffix,
        )
        return record

    def report_exhausted(self, error: AllModelsFailedError) -> None:
        """所有候选耗尽"""
        logger.error(
            "所有 {} 个候选均失败: {}",
            len(error.attempts),
            summarize_attempts(error.attempts),
        )
