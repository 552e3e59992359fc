"""
AI 助手

基于 OpenRouter 免费模型的对话能力，按质量级联回退并处理限流重试。

使用方式:
    from src.services.assistant import create_assistant

    assistant = create_assistant()
    result = await assistant.ask("Find me a 2-bedroom home in Hartford")
    if result.success:
        print(result.text, result.model_id)
"""

from src.services.assistant.factory import create_assistant
from src.services.assistant.session import ConversationSession

__all__ = ["ConversationSession", "create_assistant"]
