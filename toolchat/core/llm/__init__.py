from toolchat.core.llm.errors import LLMConfigError, LLMError, LLMResponseError
from toolchat.core.llm.protocol import LLMConfig, LLMRequest, Message
from toolchat.core.llm.providers.base import ContextEditingProvider, LLMProvider, ProviderCapabilities

__all__ = [
    "ContextEditingProvider",
    "LLMConfig",
    "LLMConfigError",
    "LLMError",
    "LLMProvider",
    "LLMRequest",
    "LLMResponseError",
    "Message",
    "ProviderCapabilities",
]
