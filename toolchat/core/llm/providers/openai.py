import json
import os
from typing import Any, List

from openai import OpenAI

from toolchat.core.llm.errors import LLMConfigError
from toolchat.core.llm.protocol import (
    ChatCompletion,
    LLMConfig,
    LLMRequest,
    Message,
    TextPart,
    ToolCallPart,
    ToolDefinition,
    Usage,
)
from toolchat.core.llm.providers.base import LLMProvider, ProviderCapabilities
from toolchat.core.utils.logger import logger


def stringify_output(output: Any) -> str:
    """把工具输出转换为字符串"""
    if isinstance(output, str):
        return output
    try:
        return json.dumps(output, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(output)


class OpenAiProvider(LLMProvider):
    """基于 OpenAI API 的 LLM Provider 实现"""

    def __init__(self, config: LLMConfig):
        """初始化 OpenAI Provider

        Args:
            config: LLM 配置

        Raises:
            LLMConfigError: 缺少 API Key
        """
        api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMConfigError("OpenAI provider 缺少 API Key", "请配置 api_key 或 OPENAI_API_KEY")
        self.config = config
        self.client = OpenAI(
            api_key=api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    @property
    def capabilities(self) -> ProviderCapabilities:
        """返回 Provider 的能力"""
        return ProviderCapabilities(supports_tools=True)

    def call(self, request: LLMRequest) -> ChatCompletion:
        """调用 OpenAI API 并返回响应

        Args:
            request: LLM 请求

        Returns:
            ChatCompletion: 处理后的响应
        """
        kwargs = self._build_api_kwargs(request)
        logger.debug(f"调用 OpenAI: model={request.model}, messages={len(kwargs['messages'])}")
        response = self.client.chat.completions.create(**kwargs)
        return self._convert_completion(response)

    def _build_api_kwargs(self, request: LLMRequest) -> dict:
        """构建 OpenAI API 调用的参数字典

        Args:
            request: LLM 请求

        Returns:
            dict: OpenAI API 调用的参数字典
        """
        generate_config = request.generate_config or {}

        kwargs = {
            "model": request.model,
            "messages": self._convert_messages(request.messages),
        }

        if request.tools:
            kwargs["tools"] = self._convert_tools(request.tools)

        if "temperature" in generate_config:
            kwargs["temperature"] = generate_config["temperature"]
        elif self.config.temperature is not None:
            kwargs["temperature"] = self.config.temperature

        if "max_tokens" in generate_config:
            kwargs["max_tokens"] = generate_config["max_tokens"]
        elif self.config.max_tokens is not None:
            kwargs["max_tokens"] = self.config.max_tokens

        for key in ("top_p", "timeout"):
            if key in generate_config:
                kwargs[key] = generate_config[key]

        return kwargs

    def _convert_messages(self, messages: List[Message]) -> List[dict]:
        """转换消息格式为 OpenAI API 格式

        tool 角色消息中的每个工具结果展开为一条 OpenAI tool 消息
        """
        result = []
        for msg in messages:
            if msg.role == "tool":
                for part in msg.tool_results():
                    result.append({
                        "role": "tool",
                        "tool_call_id": part.id,
                        "content": stringify_output(part.output),
                    })
                continue

            openai_msg: dict = {"role": msg.role, "content": msg.text}
            tool_calls = msg.tool_calls()
            if msg.role == "assistant" and tool_calls:
                openai_msg["content"] = msg.text or None
                openai_msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments, ensure_ascii=False),
                        },
                    }
                    for tc in tool_calls
                ]
            result.append(openai_msg)
        return result

    def _convert_tools(self, tools: List[ToolDefinition]) -> List[dict]:
        return [
            {
                "type": tool.type,
                "function": {
                    "name": tool.function.name,
                    "description": tool.function.description,
                    "parameters": {
                        "type": tool.function.parameters.type,
                        "properties": tool.function.parameters.properties,
                        "required": tool.function.parameters.required or [],
                    },
                },
            }
            for tool in tools
        ]

    def _convert_completion(self, response) -> ChatCompletion:
        """转换 OpenAI 响应为 ChatCompletion"""
        message = response.choices[0].message

        content = message.content or ""
        if message.tool_calls:
            parts = [TextPart(text=content)] if content else []
            parts.extend(
                ToolCallPart(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=tc.function.arguments or "",
                )
                for tc in message.tool_calls
            )
            content = parts

        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return ChatCompletion(
            id=response.id,
            created=response.created,
            model=response.model,
            message=Message(role="assistant", content=content),
            finish_reason=response.choices[0].finish_reason,
            usage=usage,
        )
