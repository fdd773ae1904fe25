import os
import time
from typing import Any, Dict, List

import anthropic

from toolchat.core.constants import CONTEXT_EDITING_BETA
from toolchat.core.context.converter import from_anthropic, to_anthropic
from toolchat.core.llm.errors import LLMConfigError, LLMResponseError
from toolchat.core.llm.protocol import (
    ChatCompletion,
    ContextEditRequest,
    ContextEditResponse,
    LLMConfig,
    LLMRequest,
    Message,
    ToolDefinition,
    Usage,
)
from toolchat.core.llm.providers.base import ContextEditingProvider, ProviderCapabilities
from toolchat.core.utils.logger import logger

# Anthropic 要求显式传入 max_tokens
DEFAULT_ANTHROPIC_MAX_TOKENS = 4096


def _to_plain(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list, str, int, float, bool)):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump(exclude_none=True)
    return value


class AnthropicProvider(ContextEditingProvider):
    """基于 Anthropic Messages API 的 LLM Provider

    除普通对话外还支持 beta 的 context management 编辑
    """

    def __init__(self, config: LLMConfig):
        """初始化 Anthropic Provider

        Args:
            config: LLM 配置

        Raises:
            LLMConfigError: 缺少 API Key
        """
        api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMConfigError("Anthropic provider 缺少 API Key", "请配置 api_key 或 ANTHROPIC_API_KEY")
        self.config = config
        self.client = anthropic.Anthropic(
            api_key=api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_tools=True,
            supports_context_editing=True,
        )

    def call(self, request: LLMRequest) -> ChatCompletion:
        """调用 Anthropic Messages API

        Args:
            request: LLM 请求

        Returns:
            ChatCompletion: 转换后的响应
        """
        params = self._build_params(request)
        logger.debug(f"调用 Anthropic: model={request.model}, messages={len(params['messages'])}")
        try:
            response = self.client.messages.create(**params)
        except anthropic.APIError as e:
            raise LLMResponseError("Anthropic 请求失败", str(e)) from e

        converted = from_anthropic([{"role": "assistant", "content": response.content}])
        message = converted[0] if converted else Message(role="assistant", content="")

        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        return ChatCompletion(
            id=response.id,
            created=int(time.time()),
            model=response.model,
            message=message,
            finish_reason=response.stop_reason,
            usage=usage,
        )

    def edit_context(self, request: ContextEditRequest) -> ContextEditResponse:
        """提交上下文编辑请求

        Anthropic 不返回编辑后的消息，只返回 applied_edits 报告，
        因此 ContextEditResponse.messages 为 None

        Args:
            request: 上下文编辑请求

        Returns:
            ContextEditResponse: 编辑报告
        """
        params: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": request.messages,
            "betas": [CONTEXT_EDITING_BETA],
            "extra_body": {"context_management": {"edits": request.edits}},
        }
        if request.system:
            params["system"] = request.system
        if request.thinking_budget_tokens:
            params["thinking"] = {"type": "enabled", "budget_tokens": request.thinking_budget_tokens}
        if request.timeout:
            params["timeout"] = request.timeout

        logger.debug(f"提交上下文编辑: model={request.model}, edits={[e.get('type') for e in request.edits]}")
        try:
            response = self.client.beta.messages.create(**params)
        except anthropic.APIError as e:
            raise LLMResponseError("Anthropic 上下文编辑请求失败", str(e)) from e

        context_management = _to_plain(getattr(response, "context_management", None)) or {}
        if not isinstance(context_management, dict):
            raise LLMResponseError("无法解析 context_management 响应", repr(context_management))

        applied_edits: List[Dict[str, Any]] = [
            _to_plain(edit) for edit in context_management.get("applied_edits") or []
        ]
        logger.info(f"上下文编辑结果: applied_edits={applied_edits}")
        return ContextEditResponse(applied_edits=applied_edits)

    def _build_params(self, request: LLMRequest) -> Dict[str, Any]:
        generate_config = request.generate_config or {}
        system, messages = to_anthropic(request.messages)

        params: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": generate_config.get("max_tokens")
            or self.config.max_tokens
            or DEFAULT_ANTHROPIC_MAX_TOKENS,
        }
        if system:
            params["system"] = system
        if request.tools:
            params["tools"] = self._convert_tools(request.tools)

        if "temperature" in generate_config:
            params["temperature"] = generate_config["temperature"]
        elif self.config.temperature is not None:
            params["temperature"] = self.config.temperature

        for key in ("top_p", "timeout"):
            if key in generate_config:
                params[key] = generate_config[key]
        return params

    def _convert_tools(self, tools: List[ToolDefinition]) -> List[dict]:
        return [
            {
                "name": tool.function.name,
                "description": tool.function.description,
                "input_schema": tool.function.parameters.model_dump(exclude_none=True),
            }
            for tool in tools
        ]
