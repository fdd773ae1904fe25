from toolchat.core.llm.errors import LLMConfigError
from toolchat.core.llm.protocol import LLMConfig
from toolchat.core.llm.providers.base import LLMProvider


def create_provider(config: LLMConfig) -> LLMProvider:
    """根据配置创建 LLM Provider

    Args:
        config: LLM 配置

    Returns:
        LLMProvider: provider 实例

    Raises:
        LLMConfigError: 未知的 provider 或缺少凭据
    """
    if config.provider == "anthropic":
        from toolchat.core.llm.providers.anthropic import AnthropicProvider

        return AnthropicProvider(config)
    if config.provider == "openai":
        from toolchat.core.llm.providers.openai import OpenAiProvider

        return OpenAiProvider(config)
    raise LLMConfigError(f"未知的 provider: {config.provider}")
