"""
Orchestration 模块

提供请求编排相关的组件：
- ModelSelector: 模型选择器，负责筛选免费模型并按质量排序
- CascadeOrchestrator: 级联编排器，按顺序尝试候选并处理超时与限流重试
- ErrorHandlerService: 错误处理服务，负责失败记录与日志
- classify_error / ErrorAction: 错误分类（纯逻辑，无副作用）
"""

from .cascade import CascadeOrchestrator, ProviderClient
from .error_handler import ErrorAction, ErrorHandlerService, classify_error
from .model_selector import ModelSelector

__all__ = [
    "CascadeOrchestrator",
    "ErrorAction",
    "ErrorHandlerService",
    "ModelSelector",
    "ProviderClient",
    "classify_error",
]
