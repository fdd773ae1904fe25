"""上下文管理模块

提供 token 估算、安全切分、上下文压缩策略和用量评估功能
"""

from toolchat.core.context.boundary import find_safe_split_point
from toolchat.core.context.budget import ClearThinkingOptions, ClearToolUsesOptions, ContextBudget, ContextEditingOptions
from toolchat.core.context.editing import ContextEditingStrategy, apply_context_edits, build_context_edits
from toolchat.core.context.errors import (
    CompactionError,
    CompactionTimeoutError,
    ContextConfigError,
    ContextEditingError,
    ContextError,
    NoEditsAppliedError,
    SummarizationError,
)
from toolchat.core.context.manager import CompactionResult, ContextManager, manage_context
from toolchat.core.context.sanitizer import drop_incomplete_tool_calls, find_orphaned_tool_results
from toolchat.core.context.strategies import (
    CompactionStrategy,
    SummaryCompressionStrategy,
    TruncationStrategy,
    format_messages_for_summary,
)
from toolchat.core.context.tokenizer import TiktokenEstimator, TokenEstimator, estimate_tokens
from toolchat.core.context.usage import (
    TokenWarningLevel,
    assess_context_usage,
    check_tool_schema_size,
    get_context_limit,
    should_warn_context_usage,
)

__all__ = [
    "ClearThinkingOptions",
    "ClearToolUsesOptions",
    "CompactionError",
    "CompactionResult",
    "CompactionStrategy",
    "CompactionTimeoutError",
    "ContextBudget",
    "ContextConfigError",
    "ContextEditingError",
    "ContextEditingOptions",
    "ContextEditingStrategy",
    "ContextError",
    "ContextManager",
    "NoEditsAppliedError",
    "SummarizationError",
    "SummaryCompressionStrategy",
    "TiktokenEstimator",
    "TokenEstimator",
    "TokenWarningLevel",
    "TruncationStrategy",
    "apply_context_edits",
    "assess_context_usage",
    "build_context_edits",
    "check_tool_schema_size",
    "drop_incomplete_tool_calls",
    "estimate_tokens",
    "find_orphaned_tool_results",
    "find_safe_split_point",
    "format_messages_for_summary",
    "get_context_limit",
    "manage_context",
    "should_warn_context_usage",
]
