"""Translation backends: Bing web session and chat-completion endpoints."""

from .ai_chat import AIChatTranslator, ChatConfig
from .bing import BingSessionCache, BingTranslator

__all__ = ["AIChatTranslator", "BingSessionCache", "BingTranslator", "ChatConfig"]
