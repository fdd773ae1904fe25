"""TokenEstimator 测试用例"""

import math
import unittest
from unittest.mock import MagicMock, patch

from toolchat.core.context.budget import ContextBudget
from toolchat.core.context.tokenizer import (
    TiktokenEstimator,
    TokenEstimator,
    estimate_tokens,
    serialize_message,
)
from toolchat.core.llm.protocol import Message, TextPart, ToolCallPart, ToolResultPart


class TestTokenEstimator(unittest.TestCase):
    """TokenEstimator 测试类"""

    def setUp(self):
        """设置测试环境"""
        self.estimator = TokenEstimator()

    def test_estimate_empty(self):
        """测试空输入"""
        self.assertEqual(self.estimator.estimate(""), 0)
        self.assertEqual(self.estimator.estimate([]), 0)
        self.assertEqual(self.estimator.estimate(None), 0)

    def test_estimate_string(self):
        """测试字符串按 3.5 字符/token 向上取整"""
        self.assertEqual(self.estimator.estimate("a"), 1)
        self.assertEqual(self.estimator.estimate("abcdefg"), 2)
        self.assertEqual(self.estimator.estimate("x" * 8), 3)

    def test_estimate_monotonic(self):
        """测试估算值随长度单调不减"""
        previous = 0
        for length in range(0, 200, 7):
            current = self.estimator.estimate("y" * length)
            self.assertGreaterEqual(current, previous)
            previous = current

    def test_estimate_messages(self):
        """测试消息列表按序列化长度估算"""
        messages = [
            Message(role="user", content="Hello"),
            Message(role="assistant", content="Hi there"),
        ]
        total_chars = sum(len(m.model_dump_json(exclude_none=True)) for m in messages)
        self.assertEqual(self.estimator.estimate(messages), math.ceil(total_chars / 3.5))

    def test_estimate_tool_overhead(self):
        """测试每个工具调用和工具结果片段额外计入开销"""
        call = Message(
            role="assistant",
            content=[
                TextPart(text="checking"),
                ToolCallPart(id="call_1", name="get_weather", arguments={"city": "Paris"}),
            ],
        )
        result = Message(
            role="tool",
            content=[ToolResultPart(id="call_1", name="get_weather", output={"temp": 21})],
        )
        chars = len(call.model_dump_json(exclude_none=True)) + len(result.model_dump_json(exclude_none=True))
        expected = math.ceil((chars + 2 * 50) / 3.5)
        self.assertEqual(self.estimator.estimate([call, result]), expected)

    def test_estimate_dict_messages(self):
        """测试 dict 消息和旧的 toolInvocations 格式"""
        message = {
            "role": "assistant",
            "content": "done",
            "toolInvocations": [{"toolCallId": "a", "toolName": "t", "args": {}, "result": "ok"}],
        }
        serialized = serialize_message(message)
        self.assertEqual(self.estimator.estimate([message]), math.ceil((len(serialized) + 50) / 3.5))

    def test_estimate_malformed_does_not_raise(self):
        """测试无法识别的消息形状不抛异常"""
        weird = [object(), 42, {"role": "user", "content": {1, 2}}, "plain"]
        self.assertGreater(self.estimator.estimate(weird), 0)

    def test_estimate_tool_schema_tokens(self):
        """测试工具 schema 开销"""
        self.assertEqual(self.estimator.estimate_tool_schema_tokens(0), 0)
        self.assertEqual(self.estimator.estimate_tool_schema_tokens(3), 600)

    def test_estimate_total(self):
        """测试总量为三部分之和"""
        messages = [Message(role="user", content="Hello")]
        total = self.estimator.estimate_total(messages, "You are helpful", 2)
        expected = (
            self.estimator.estimate(messages)
            + self.estimator.estimate("You are helpful")
            + 400
        )
        self.assertEqual(total, expected)

    def test_custom_parameters(self):
        """测试自定义参数"""
        estimator = TokenEstimator(chars_per_token=1, tool_call_overhead=0, tool_schema_overhead=10)
        self.assertEqual(estimator.estimate("abcd"), 4)
        self.assertEqual(estimator.estimate_tool_schema_tokens(2), 20)

    def test_from_budget(self):
        """测试从预算配置创建估算器"""
        budget = ContextBudget(chars_per_token=4.0, tool_call_overhead=10, tool_schema_overhead=100)
        estimator = TokenEstimator.from_budget(budget)
        self.assertIs(type(estimator), TokenEstimator)
        self.assertEqual(estimator.chars_per_token, 4.0)
        self.assertEqual(estimator.tool_call_overhead, 10)
        self.assertEqual(estimator.tool_schema_overhead, 100)

        tiktoken_estimator = TokenEstimator.from_budget(ContextBudget(estimator="tiktoken"))
        self.assertIsInstance(tiktoken_estimator, TiktokenEstimator)

    def test_module_level_estimate_tokens(self):
        """测试模块级便捷函数"""
        self.assertEqual(estimate_tokens(""), 0)
        self.assertEqual(estimate_tokens("abcdefg"), 2)


class TestTiktokenEstimator(unittest.TestCase):
    """TiktokenEstimator 测试类"""

    def test_counts_with_encoding(self):
        """测试使用编码器计数"""
        encoding = MagicMock()
        encoding.encode.side_effect = lambda text, **kwargs: text.split()
        with patch("toolchat.core.context.tokenizer.tiktoken.get_encoding", return_value=encoding) as mock_get:
            estimator = TiktokenEstimator()
            self.assertEqual(estimator.estimate("one two three"), 3)
            self.assertEqual(estimator.estimate("four five"), 2)
            mock_get.assert_called_once_with("cl100k_base")

    def test_fallback_when_encoding_unavailable(self):
        """测试编码器加载失败时退回字符估算"""
        with patch(
            "toolchat.core.context.tokenizer.tiktoken.get_encoding",
            side_effect=RuntimeError("offline"),
        ) as mock_get:
            estimator = TiktokenEstimator()
            self.assertEqual(estimator.estimate("abcdefg"), 2)
            self.assertEqual(estimator.estimate("abcdefg"), 2)
            # 失败后不再重复加载
            mock_get.assert_called_once()


if __name__ == "__main__":
    unittest.main()
