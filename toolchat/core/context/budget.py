"""上下文预算配置

ContextBudget 是调用方注入的唯一配置入口，所有阈值和可调常量都在这里，
不同路由之间不再各自推导默认值
"""

from dataclasses import dataclass, field
from typing import List, Literal, Optional

from toolchat.core.constants import (
    CHARS_PER_TOKEN,
    CLEAR_AT_LEAST_TOKENS,
    CLEAR_TOOL_USES_TRIGGER_TOKENS,
    COMPACTION_TIMEOUT,
    CONTEXT_BUDGET_VERSION,
    CONTEXT_EDITING_MAX_TOKENS,
    CONTEXT_EDITING_THINKING_BUDGET,
    DEFAULT_MAX_CONTEXT_TOKENS,
    KEEP_RECENT_MESSAGES,
    KEEP_THINKING_TURNS,
    KEEP_TOOL_USES,
    MIN_MESSAGES_TO_COMPACT,
    SPLIT_SEARCH_WINDOW,
    SUMMARY_MAX_OUTPUT_TOKENS,
    SUMMARY_PREVIEW_CHARS,
    SUMMARY_TEMPERATURE,
    TOOL_CALL_OVERHEAD,
    TOOL_SCHEMA_OVERHEAD,
    TRUNCATION_KEEP_RECENT,
)
from toolchat.core.context.errors import ContextConfigError

StrategyType = Literal["summary", "context_editing", "truncation"]
EstimatorType = Literal["approximate", "tiktoken"]

STRATEGY_TYPES = ("summary", "context_editing", "truncation")
ESTIMATOR_TYPES = ("approximate", "tiktoken")


@dataclass
class ClearThinkingOptions:
    """清理旧思考内容"""

    enabled: bool = True
    keep_thinking_turns: int = KEEP_THINKING_TURNS


@dataclass
class ClearToolUsesOptions:
    """清理旧工具调用结果"""

    enabled: bool = True
    trigger_input_tokens: int = CLEAR_TOOL_USES_TRIGGER_TOKENS
    keep_tool_uses: int = KEEP_TOOL_USES
    clear_at_least_tokens: Optional[int] = CLEAR_AT_LEAST_TOKENS
    exclude_tools: List[str] = field(default_factory=list)


@dataclass
class ContextEditingOptions:
    """provider 端上下文编辑配置"""

    clear_thinking: ClearThinkingOptions = field(default_factory=ClearThinkingOptions)
    clear_tool_uses: ClearToolUsesOptions = field(default_factory=ClearToolUsesOptions)
    model: Optional[str] = None  # None 表示使用 ContextManager 的编辑模型
    max_tokens: int = CONTEXT_EDITING_MAX_TOKENS
    thinking_budget_tokens: int = CONTEXT_EDITING_THINKING_BUDGET


@dataclass
class ContextBudget:
    """上下文预算"""

    version: int = CONTEXT_BUDGET_VERSION
    max_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS  # 总 token 数达到该值时触发压缩
    keep_recent_messages: int = KEEP_RECENT_MESSAGES  # 原样保留的最新消息数
    system_prompt_text: Optional[str] = None
    declared_tool_count: int = 0
    strategy: StrategyType = "summary"
    min_messages_to_compact: int = MIN_MESSAGES_TO_COMPACT
    split_search_window: int = SPLIT_SEARCH_WINDOW
    # Token 估算
    estimator: EstimatorType = "approximate"
    chars_per_token: float = CHARS_PER_TOKEN
    tool_call_overhead: int = TOOL_CALL_OVERHEAD
    tool_schema_overhead: int = TOOL_SCHEMA_OVERHEAD
    # Summary 策略
    summary_model: Optional[str] = None  # None 表示使用 ContextManager 的默认模型
    summary_max_output_tokens: int = SUMMARY_MAX_OUTPUT_TOKENS
    summary_temperature: float = SUMMARY_TEMPERATURE
    summary_preview_chars: int = SUMMARY_PREVIEW_CHARS
    # 兜底截断，实际保留数不超过 keep_recent_messages
    truncation_keep_recent: int = TRUNCATION_KEEP_RECENT
    # 单次网络调用超时（秒）
    timeout: float = COMPACTION_TIMEOUT
    editing: ContextEditingOptions = field(default_factory=ContextEditingOptions)

    def __post_init__(self):
        if self.max_tokens <= 0:
            raise ContextConfigError(f"max_tokens 必须大于 0: {self.max_tokens}")
        if self.keep_recent_messages < 0:
            raise ContextConfigError(f"keep_recent_messages 不能为负数: {self.keep_recent_messages}")
        if self.truncation_keep_recent < 0:
            raise ContextConfigError(f"truncation_keep_recent 不能为负数: {self.truncation_keep_recent}")
        if self.chars_per_token <= 0:
            raise ContextConfigError(f"chars_per_token 必须大于 0: {self.chars_per_token}")
        if self.split_search_window < 0:
            raise ContextConfigError(f"split_search_window 不能为负数: {self.split_search_window}")
        if self.timeout <= 0:
            raise ContextConfigError(f"timeout 必须大于 0: {self.timeout}")
        if self.strategy not in STRATEGY_TYPES:
            raise ContextConfigError(f"未知的策略类型: {self.strategy}")
        if self.estimator not in ESTIMATOR_TYPES:
            raise ContextConfigError(f"未知的估算器类型: {self.estimator}")
