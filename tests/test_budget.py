"""ContextBudget 测试用例"""

import unittest

from toolchat.core.context.budget import ContextBudget, ContextEditingOptions
from toolchat.core.context.errors import ContextConfigError, ContextError


class TestContextBudget(unittest.TestCase):
    """ContextBudget 测试类"""

    def test_defaults(self):
        """测试默认值"""
        budget = ContextBudget()
        self.assertEqual(budget.version, 1)
        self.assertEqual(budget.max_tokens, 100_000)
        self.assertEqual(budget.keep_recent_messages, 8)
        self.assertEqual(budget.strategy, "summary")
        self.assertEqual(budget.min_messages_to_compact, 3)
        self.assertEqual(budget.chars_per_token, 3.5)
        self.assertEqual(budget.truncation_keep_recent, 8)
        self.assertIsInstance(budget.editing, ContextEditingOptions)
        self.assertEqual(budget.editing.clear_tool_uses.exclude_tools, [])

    def test_editing_options_not_shared(self):
        """测试每个预算拥有独立的编辑配置"""
        first, second = ContextBudget(), ContextBudget()
        first.editing.clear_tool_uses.exclude_tools.append("memory")
        self.assertEqual(second.editing.clear_tool_uses.exclude_tools, [])

    def test_invalid_values(self):
        """测试非法配置"""
        invalid = [
            {"max_tokens": 0},
            {"keep_recent_messages": -1},
            {"truncation_keep_recent": -2},
            {"chars_per_token": 0},
            {"split_search_window": -1},
            {"timeout": 0},
            {"strategy": "magic"},
            {"estimator": "exact"},
        ]
        for kwargs in invalid:
            with self.subTest(**kwargs):
                with self.assertRaises(ContextConfigError):
                    ContextBudget(**kwargs)

    def test_config_error_is_context_error(self):
        """测试错误类型层级"""
        with self.assertRaises(ContextError):
            ContextBudget(max_tokens=-5)


if __name__ == "__main__":
    unittest.main()
