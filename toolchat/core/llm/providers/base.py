from abc import ABC, abstractmethod
from dataclasses import dataclass

from toolchat.core.llm.protocol import (
    ChatCompletion,
    ContextEditRequest,
    ContextEditResponse,
    LLMRequest,
)


@dataclass(frozen=True)
class ProviderCapabilities:
    supports_tools: bool = True
    supports_context_editing: bool = False


class LLMProvider(ABC):

    @property
    def capabilities(self) -> ProviderCapabilities:
        raise NotImplementedError

    @abstractmethod
    def call(self, request: LLMRequest) -> ChatCompletion:
        raise NotImplementedError


class ContextEditingProvider(LLMProvider):
    """支持 provider 端上下文编辑的 LLM Provider"""

    @abstractmethod
    def edit_context(self, request: ContextEditRequest) -> ContextEditResponse:
        raise NotImplementedError
