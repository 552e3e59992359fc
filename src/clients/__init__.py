from src.clients.http_client import HTTPClientPool
from src.clients.openrouter import ChatCompletion, OpenRouterClient

__all__ = ["ChatCompletion", "HTTPClientPool", "OpenRouterClient"]
