"""AnthropicProvider 测试用例"""

import unittest
from types import SimpleNamespace
from unittest.mock import patch

from toolchat.core.llm.errors import LLMConfigError, LLMResponseError
from toolchat.core.llm.protocol import (
    ChatCompletion,
    ContextEditRequest,
    LLMConfig,
    LLMRequest,
    Message,
    ToolDefinition,
    ToolFunction,
)
from toolchat.core.llm.providers.anthropic import AnthropicProvider
from toolchat.core.llm.providers.base import ContextEditingProvider
from toolchat.core.llm.providers.factory import create_provider


class TestAnthropicProvider(unittest.TestCase):
    """AnthropicProvider 测试类"""

    def setUp(self):
        """设置测试环境"""
        self.config = LLMConfig(provider="anthropic", model="claude-sonnet-4-20250514", api_key="test-key")
        patcher = patch("toolchat.core.llm.providers.anthropic.anthropic.Anthropic")
        self.mock_anthropic = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.mock_anthropic.return_value

    def test_init(self):
        """测试初始化"""
        provider = AnthropicProvider(self.config)
        self.assertIsInstance(provider, ContextEditingProvider)
        self.assertTrue(provider.capabilities.supports_context_editing)
        self.mock_anthropic.assert_called_once_with(
            api_key="test-key",
            base_url=None,
            timeout=self.config.timeout,
            max_retries=self.config.max_retries,
        )

    def test_init_without_api_key(self):
        """测试缺少 API Key"""
        with patch.dict("os.environ", {}, clear=True):
            with self.assertRaises(LLMConfigError):
                AnthropicProvider(LLMConfig(provider="anthropic"))

    def test_build_params(self):
        """测试构建请求参数"""
        request = LLMRequest(
            model="claude-sonnet-4-20250514",
            messages=[Message(role="system", content="Be brief."), Message(role="user", content="Hi")],
            tools=[ToolDefinition(function=ToolFunction(name="search"))],
            generate_config={"temperature": 0.3, "timeout": 10.0},
        )
        params = AnthropicProvider(self.config)._build_params(request)

        self.assertEqual(params["system"], "Be brief.")
        self.assertEqual(params["messages"], [{"role": "user", "content": [{"type": "text", "text": "Hi"}]}])
        self.assertEqual(params["max_tokens"], 4096)
        self.assertEqual(params["temperature"], 0.3)
        self.assertEqual(params["timeout"], 10.0)
        self.assertEqual(params["tools"][0]["name"], "search")
        self.assertEqual(params["tools"][0]["input_schema"], {"type": "object", "properties": {}})

    def test_call(self):
        """测试普通调用"""
        self.client.messages.create.return_value = SimpleNamespace(
            id="msg_1",
            model="claude-sonnet-4-20250514",
            content=[{"type": "text", "text": "Short summary"}],
            usage=SimpleNamespace(input_tokens=30, output_tokens=5),
            stop_reason="end_turn",
        )
        request = LLMRequest(model="claude-sonnet-4-20250514", messages=[Message(role="user", content="Hi")])
        result = AnthropicProvider(self.config).call(request)

        self.assertIsInstance(result, ChatCompletion)
        self.assertEqual(result.message.content, "Short summary")
        self.assertEqual(result.usage.total_tokens, 35)
        self.assertEqual(result.finish_reason, "end_turn")

    def test_edit_context(self):
        """测试上下文编辑请求和 applied_edits 解析"""
        self.client.beta.messages.create.return_value = SimpleNamespace(
            context_management={
                "applied_edits": [{"type": "clear_tool_uses_20250919", "cleared_tool_uses": 2, "cleared_input_tokens": 900}]
            }
        )
        request = ContextEditRequest(
            model="claude-sonnet-4-20250514",
            messages=[{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
            edits=[{"type": "clear_tool_uses_20250919"}],
            system="sys",
            max_tokens=2048,
            thinking_budget_tokens=1024,
            timeout=5.0,
        )
        response = AnthropicProvider(self.config).edit_context(request)

        self.assertEqual(response.applied_edits[0]["cleared_tool_uses"], 2)
        self.assertIsNone(response.messages)

        kwargs = self.client.beta.messages.create.call_args.kwargs
        self.assertEqual(kwargs["betas"], ["context-management-2025-06-27"])
        self.assertEqual(kwargs["extra_body"], {"context_management": {"edits": [{"type": "clear_tool_uses_20250919"}]}})
        self.assertEqual(kwargs["system"], "sys")
        self.assertEqual(kwargs["thinking"], {"type": "enabled", "budget_tokens": 1024})
        self.assertEqual(kwargs["timeout"], 5.0)

    def test_edit_context_without_report(self):
        """测试响应中没有 context_management"""
        self.client.beta.messages.create.return_value = SimpleNamespace(context_management=None)
        request = ContextEditRequest(model="m", messages=[], edits=[], max_tokens=10)
        response = AnthropicProvider(self.config).edit_context(request)
        self.assertEqual(response.applied_edits, [])
        kwargs = self.client.beta.messages.create.call_args.kwargs
        self.assertNotIn("thinking", kwargs)
        self.assertNotIn("system", kwargs)

    def test_edit_context_unparseable(self):
        """测试无法解析的 context_management"""
        self.client.beta.messages.create.return_value = SimpleNamespace(context_management="oops")
        request = ContextEditRequest(model="m", messages=[], edits=[], max_tokens=10)
        with self.assertRaises(LLMResponseError):
            AnthropicProvider(self.config).edit_context(request)


class TestCreateProvider(unittest.TestCase):
    """create_provider 测试类"""

    def test_anthropic(self):
        """测试创建 Anthropic provider"""
        with patch("toolchat.core.llm.providers.anthropic.anthropic.Anthropic"):
            provider = create_provider(LLMConfig(provider="anthropic", api_key="k"))
        self.assertIsInstance(provider, AnthropicProvider)

    def test_openai(self):
        """测试创建 OpenAI provider"""
        with patch("toolchat.core.llm.providers.openai.OpenAI"):
            provider = create_provider(LLMConfig(provider="openai", api_key="k"))
        self.assertEqual(type(provider).__name__, "OpenAiProvider")


if __name__ == "__main__":
    unittest.main()
