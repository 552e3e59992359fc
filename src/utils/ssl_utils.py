"""
SSL 上下文（使用 certifi 证书包）
"""

from __future__ import annotations

import ssl
from functools import lru_cache

import certifi


@lru_cache(maxsize=1)
def get_ssl_context() -> ssl.SSLContext:
    """获取基于 certifi 的 SSL 上下文（进程内复用）"""
    return ssl.create_default_context(cafile=certifi.where())
