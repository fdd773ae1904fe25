"""Token 估算模块

不调用模型的近似 token 估算。默认按字符数除以固定比例计算，
也可以切换到基于 tiktoken 的编码计数
"""

import json
import math
from typing import Any, Optional, Sequence, Union

import tiktoken
from tiktoken import Encoding

from toolchat.core.constants import CHARS_PER_TOKEN, TOOL_CALL_OVERHEAD, TOOL_SCHEMA_OVERHEAD
from toolchat.core.context.budget import ContextBudget
from toolchat.core.llm.protocol import Message
from toolchat.core.utils.logger import logger

EstimateInput = Union[str, Sequence[Any], None]

# 计入工具开销的内容片段类型，同时兼容内部格式和 Anthropic 原生格式
TOOL_PART_TYPES = ("tool-call", "tool-result", "tool_use", "tool_result")


def serialize_message(message: Any) -> str:
    """把任意形状的消息序列化为规范字符串，不抛异常"""
    if isinstance(message, str):
        return message
    try:
        if isinstance(message, Message):
            return message.model_dump_json(exclude_none=True)
        if hasattr(message, "model_dump_json"):
            return message.model_dump_json()
        return json.dumps(message, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(message)


def count_tool_parts(message: Any) -> int:
    """统计消息中的工具调用和工具结果片段数"""
    if isinstance(message, Message):
        return len(message.tool_calls()) + len(message.tool_results())
    if not isinstance(message, dict):
        return 0

    count = 0
    content = message.get("content")
    if isinstance(content, list):
        for part in content:
            if isinstance(part, dict) and part.get("type") in TOOL_PART_TYPES:
                count += 1
    # 前端旧格式把工具调用放在 toolInvocations 中
    invocations = message.get("toolInvocations")
    if isinstance(invocations, list):
        count += len(invocations)
    return count


class TokenEstimator:
    """基于字符数的 token 估算器"""

    def __init__(
        self,
        chars_per_token: float = CHARS_PER_TOKEN,
        tool_call_overhead: int = TOOL_CALL_OVERHEAD,
        tool_schema_overhead: int = TOOL_SCHEMA_OVERHEAD,
    ):
        """初始化估算器

        Args:
            chars_per_token: 每个 token 对应的字符数
            tool_call_overhead: 每个工具调用/结果片段额外计入的字符数
            tool_schema_overhead: 每个声明的工具额外计入的 token 数
        """
        self.chars_per_token = chars_per_token
        self.tool_call_overhead = tool_call_overhead
        self.tool_schema_overhead = tool_schema_overhead

    @classmethod
    def from_budget(cls, budget: ContextBudget) -> "TokenEstimator":
        """根据预算配置创建估算器"""
        estimator_cls = TiktokenEstimator if budget.estimator == "tiktoken" else cls
        return estimator_cls(
            chars_per_token=budget.chars_per_token,
            tool_call_overhead=budget.tool_call_overhead,
            tool_schema_overhead=budget.tool_schema_overhead,
        )

    def count_text(self, text: str) -> float:
        """返回文本的 token 数（未取整）"""
        return len(text) / self.chars_per_token

    def estimate(self, content: EstimateInput) -> int:
        """估算字符串或消息列表的 token 数

        Args:
            content: 字符串或消息列表，消息可以是 Message 或 dict

        Returns:
            int: 非负的 token 估算值
        """
        if not content:
            return 0
        if isinstance(content, str):
            return math.ceil(self.count_text(content))

        total = 0.0
        overhead_chars = 0
        for message in content:
            total += self.count_text(serialize_message(message))
            overhead_chars += count_tool_parts(message) * self.tool_call_overhead
        total += overhead_chars / self.chars_per_token
        return math.ceil(total)

    def estimate_tool_schema_tokens(self, tool_count: int) -> int:
        """估算声明 tool_count 个工具的 schema 开销"""
        return max(0, tool_count) * self.tool_schema_overhead

    def estimate_total(
        self,
        messages: Sequence[Any],
        system_prompt: Optional[str] = None,
        tool_count: int = 0,
    ) -> int:
        """估算一次模型调用的总 token 数

        Returns:
            int: 消息 + system prompt + 工具 schema 的 token 数之和
        """
        return (
            self.estimate(messages)
            + self.estimate(system_prompt or "")
            + self.estimate_tool_schema_tokens(tool_count)
        )


class TiktokenEstimator(TokenEstimator):
    """基于 tiktoken 编码的估算器

    工具开销仍按字符数换算，编码失败时退回字符估算
    """

    ENCODING_NAME = "cl100k_base"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._encoding: Optional[Encoding] = None
        self._encoding_failed = False

    def get_encoding(self) -> Optional[Encoding]:
        if self._encoding is None and not self._encoding_failed:
            try:
                self._encoding = tiktoken.get_encoding(self.ENCODING_NAME)
            except Exception as e:
                # 编码文件需要联网下载，离线环境会失败
                logger.warning(f"加载 tiktoken 编码失败，使用字符估算: {e}")
                self._encoding_failed = True
        return self._encoding

    def count_text(self, text: str) -> float:
        encoding = self.get_encoding()
        if encoding is None:
            return super().count_text(text)
        try:
            return float(len(encoding.encode(text, disallowed_special=())))
        except Exception as e:
            logger.debug(f"tiktoken 编码失败，使用字符估算: {e}")
            return super().count_text(text)


_default_estimator = TokenEstimator()


def estimate_tokens(content: EstimateInput) -> int:
    """使用默认参数估算 token 数"""
    return _default_estimator.estimate(content)
