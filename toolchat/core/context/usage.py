"""上下文用量评估

根据模型的上下文窗口判断当前用量级别，以及评估工具 schema 的体积
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence, Union

from toolchat.core.constants import (
    CONTEXT_BLOCK_THRESHOLD,
    CONTEXT_WARNING_THRESHOLD,
    DEFAULT_CONTEXT_LIMIT,
    MODEL_CONTEXT_LIMITS,
    TOOL_SCHEMA_CHARS_PER_TOKEN,
    TOOL_SCHEMA_ERROR_TOKENS,
    TOOL_SCHEMA_WARNING_TOKENS,
)
from toolchat.core.llm.protocol import ToolDefinition
from toolchat.core.utils.logger import logger


class TokenWarningLevel(str, Enum):
    """上下文用量级别"""

    SAFE = "safe"
    WARNING = "warning"  # 提示用户开启新会话
    BLOCKED = "blocked"  # 阻止继续输入


@dataclass
class ContextUsage:
    tokens: int
    limit: int
    ratio: float
    level: TokenWarningLevel

    @property
    def percent(self) -> float:
        return round(self.ratio * 100, 2)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.tokens)


def get_context_limit(model: Optional[str]) -> int:
    """返回模型的上下文窗口大小

    未知模型按名称前缀匹配，仍找不到时返回默认值
    """
    if not model:
        return DEFAULT_CONTEXT_LIMIT
    if model in MODEL_CONTEXT_LIMITS:
        return MODEL_CONTEXT_LIMITS[model]
    for known, limit in MODEL_CONTEXT_LIMITS.items():
        if model.startswith(known):
            return limit
    return DEFAULT_CONTEXT_LIMIT


def assess_context_usage(
    tokens: int,
    model: Optional[str] = None,
    limit: Optional[int] = None,
    warning_threshold: float = CONTEXT_WARNING_THRESHOLD,
    block_threshold: float = CONTEXT_BLOCK_THRESHOLD,
) -> ContextUsage:
    """评估上下文用量

    Args:
        tokens: 当前 token 数
        model: 模型名称，limit 未指定时用于查找上下文窗口
        limit: 上下文窗口大小
        warning_threshold: WARNING 级别的比例阈值
        block_threshold: BLOCKED 级别的比例阈值

    Returns:
        ContextUsage: 用量评估结果
    """
    limit = limit or get_context_limit(model)
    ratio = tokens / limit if limit > 0 else 1.0

    if ratio >= block_threshold:
        level = TokenWarningLevel.BLOCKED
    elif ratio >= warning_threshold:
        level = TokenWarningLevel.WARNING
    else:
        level = TokenWarningLevel.SAFE

    return ContextUsage(tokens=tokens, limit=limit, ratio=ratio, level=level)


def should_warn_context_usage(tokens: int, model: Optional[str] = None, limit: Optional[int] = None) -> bool:
    """用量达到 WARNING 级别及以上时返回 True"""
    return assess_context_usage(tokens, model=model, limit=limit).level != TokenWarningLevel.SAFE


@dataclass
class ToolSchemaSizeResult:
    estimated_tokens: int
    tool_count: int
    is_near_limit: bool  # 接近上限，仍然允许
    exceeds_limit: bool  # 超出上限，必须停止


ToolSchemas = Union[Mapping[str, Any], Sequence[Union[ToolDefinition, Mapping[str, Any]]]]


def _dump_tools(tools: ToolSchemas) -> str:
    if isinstance(tools, Mapping):
        payload: Any = dict(tools)
    else:
        payload = [
            tool.model_dump(exclude_none=True) if isinstance(tool, ToolDefinition) else tool
            for tool in tools
        ]
    return json.dumps(payload, ensure_ascii=False, default=str)


def check_tool_schema_size(tools: ToolSchemas) -> ToolSchemaSizeResult:
    """估算工具 schema 占用的 token 数并判断是否安全

    Args:
        tools: 工具名到 schema 的映射，或工具定义列表

    Returns:
        ToolSchemaSizeResult: 估算结果
    """
    tool_count = len(tools)
    estimated_tokens = math.ceil(len(_dump_tools(tools)) / TOOL_SCHEMA_CHARS_PER_TOKEN)

    if estimated_tokens > TOOL_SCHEMA_ERROR_TOKENS:
        logger.error(f"工具 schema 过大: ~{estimated_tokens} tokens ({tool_count} tools)")
        return ToolSchemaSizeResult(estimated_tokens, tool_count, is_near_limit=True, exceeds_limit=True)

    if estimated_tokens > TOOL_SCHEMA_WARNING_TOKENS:
        logger.warning(f"工具 schema 接近上限: ~{estimated_tokens} tokens ({tool_count} tools)")
        return ToolSchemaSizeResult(estimated_tokens, tool_count, is_near_limit=True, exceeds_limit=False)

    logger.debug(f"已加载 {tool_count} 个工具，约 {round(estimated_tokens / 1000)}k tokens")
    return ToolSchemaSizeResult(estimated_tokens, tool_count, is_near_limit=False, exceeds_limit=False)
