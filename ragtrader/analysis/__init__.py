from .chat_client import ChatCompletionClient
from .deepseek_analyzer import DeepSeekAnalyzer
from .openai_analyzer import OpenAIMarketAnalyzer

__all__ = [
    'ChatCompletionClient',
    'DeepSeekAnalyzer',
    'OpenAIMarketAnalyzer',
]
