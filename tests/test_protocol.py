"""消息协议模型测试用例"""

import unittest

from pydantic import TypeAdapter, ValidationError

from toolchat.core.llm.protocol import Message, ReasoningPart, TextPart, ToolCallPart, ToolResultPart


class TestMessage(unittest.TestCase):
    """Message 测试类"""

    def test_string_content(self):
        """测试字符串内容"""
        message = Message(role="user", content="hello")
        self.assertEqual(message.text, "hello")
        self.assertEqual(message.parts(), [TextPart(text="hello")])
        self.assertFalse(message.has_tool_calls())

    def test_none_content(self):
        """测试 None 内容视为空字符串"""
        message = Message(role="assistant", content=None)
        self.assertEqual(message.content, "")
        self.assertEqual(message.parts(), [])

    def test_parts_from_dicts(self):
        """测试按 type 字段解析内容片段"""
        message = Message.model_validate({
            "role": "assistant",
            "content": [
                {"type": "reasoning", "text": "plan"},
                {"type": "text", "text": "Calling "},
                {"type": "text", "text": "tool"},
                {"type": "tool-call", "toolCallId": "c1", "toolName": "search", "input": {"q": "x"}},
            ],
        })
        self.assertIsInstance(message.content[0], ReasoningPart)
        self.assertEqual(message.text, "Calling tool")
        call = message.tool_calls()[0]
        self.assertEqual((call.id, call.name, call.arguments), ("c1", "search", {"q": "x"}))

    def test_invalid_role(self):
        """测试非法角色"""
        with self.assertRaises(ValidationError):
            Message(role="robot", content="hi")

    def test_list_adapter(self):
        """测试批量校验消息列表"""
        messages = TypeAdapter(list[Message]).validate_python([
            {"role": "user", "content": "q"},
            {"role": "tool", "content": [{"type": "tool-result", "tool_call_id": "c1", "result": {"ok": True}}]},
        ])
        result = messages[1].tool_results()[0]
        self.assertEqual(result.id, "c1")
        self.assertEqual(result.output, {"ok": True})
        self.assertEqual(result.name, "")
        self.assertTrue(messages[1].has_tool_results())


class TestToolCallArguments(unittest.TestCase):
    """工具调用参数解析测试类"""

    def test_json_string(self):
        """测试 JSON 字符串参数"""
        call = ToolCallPart(id="c", name="t", arguments='{"path": "a.txt"}')
        self.assertEqual(call.arguments, {"path": "a.txt"})

    def test_empty_string(self):
        """测试空字符串参数"""
        self.assertEqual(ToolCallPart(id="c", name="t", arguments="  ").arguments, {})
        self.assertEqual(ToolCallPart(id="c", name="t", arguments=None).arguments, {})

    def test_invalid_json(self):
        """测试无法解析的参数保留原文"""
        self.assertEqual(ToolCallPart(id="c", name="t", arguments="{oops").arguments, {"_raw": "{oops"})

    def test_non_object_json(self):
        """测试非对象 JSON"""
        self.assertEqual(ToolCallPart(id="c", name="t", arguments="[1, 2]").arguments, {"_value": [1, 2]})

    def test_dump_uses_field_names(self):
        """测试序列化使用字段名"""
        part = ToolResultPart(toolCallId="c", toolName="t", output="x", isError=True)
        self.assertEqual(
            part.model_dump(),
            {"type": "tool-result", "id": "c", "name": "t", "output": "x", "is_error": True},
        )


if __name__ == "__main__":
    unittest.main()
