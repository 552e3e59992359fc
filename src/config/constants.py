"""
AI 助手默认参数

环境变量未设置时使用这里的值，见 src/config/settings.py。
"""


class AssistantDefaults:
    """级联调度默认值"""

    BASE_URL = "https://openrouter.ai/api/v1"
    APP_URL = "https://github.com/chf3198/home-harbor"
    APP_NAME = "HomeHarbor Real Estate Search"

    # 单次 HTTP 调用的截止时间（秒）
    REQUEST_TIMEOUT = 30.0
    # 单个候选的尝试预算（秒）
    ATTEMPT_TIMEOUT = 30.0

    # 429 重试
    MAX_RETRIES = 3
    RETRY_BACKOFF = 1.0  # 初始退避，每次翻倍
    MAX_BACKOFF = 60.0
    # 上游未给出 Retry-After 时的默认等待
    DEFAULT_RETRY_AFTER = 60.0

    # 每次级联最多尝试的候选数
    CASCADE_LIMIT = 5


class HTTPDefaults:
    """httpx 连接池默认值"""

    CONNECT_TIMEOUT = 10.0
    READ_TIMEOUT = 30.0
    WRITE_TIMEOUT = 30.0
    POOL_TIMEOUT = 10.0
    MAX_CONNECTIONS = 20
    KEEPALIVE_CONNECTIONS = 10
    KEEPALIVE_EXPIRY = 30.0
