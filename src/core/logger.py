"""
统一日志系统 - 基于 loguru

日志级别:
- DEBUG: 候选排序、每次尝试的细节
- INFO:  级联结果、使用的模型、限流重试
- WARNING: 候选失败、回退到备用模型列表
- ERROR: 所有候选耗尽

环境变量:
- LOG_LEVEL: 控制台级别，默认 INFO
- LOG_DIR: 设置后额外写入 {LOG_DIR}/assistant.log 与 error.log
- LOG_SERIALIZE: true 时控制台输出 JSON 行（便于日志采集）

使用方式:
    from src.core.logger import logger

    logger.warning("候选 {} 失败: {}", model_id, error)
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{message}</cyan>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"


def setup_logging(
    level: str | None = None,
    log_dir: str | Path | None = None,
    serialize: bool | None = None,
) -> None:
    """
    重新配置 loguru sink（导入时按环境变量自动调用一次）

    Args:
        level: 控制台日志级别
        log_dir: 文件日志目录，None 表示不写文件
        serialize: 控制台是否输出 JSON
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if serialize is None:
        serialize = os.getenv("LOG_SERIALIZE", "false").lower() == "true"

    logger.remove()
    if serialize:
        logger.add(sys.stderr, level=level, serialize=True, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=None)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        # enqueue=False: 同步写入，避免嵌入方多进程时的信号量泄漏
        file_options = {
            "format": FILE_FORMAT,
            "retention": "30 days",
            "compression": "gz",
            "enqueue": False,
            "encoding": "utf-8",
            "catch": True,
            # 消息内容可能包含用户对话，不展开变量
            "diagnose": False,
        }
        logger.add(path / "assistant.log", level="DEBUG", rotation="100 MB", **file_options)  # type: ignore[call-overload]
        logger.add(path / "error.log", level="ERROR", rotation="50 MB", **file_options)  # type: ignore[call-overload]


setup_logging(log_dir=os.getenv("LOG_DIR") or None)

# httpx 的请求日志与级联日志重复
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

__all__ = ["logger", "setup_logging"]
