"""provider 端上下文编辑策略

把消息转换为 Anthropic 原生格式，提交 clear_thinking / clear_tool_uses 编辑指令，
再把编辑结果转换回内部格式
"""

import copy
from typing import Any, Dict, List, Optional, Tuple

from toolchat.core.constants import (
    CLEAR_THINKING_EDIT,
    CLEAR_TOOL_USES_EDIT,
    CLEARED_TOOL_RESULT_PLACEHOLDER,
    COMPACTION_TIMEOUT,
    CONTEXT_EDITING_MODEL,
)
from toolchat.core.context.budget import ContextBudget, ContextEditingOptions
from toolchat.core.context.converter import from_anthropic, to_anthropic
from toolchat.core.context.errors import (
    CompactionTimeoutError,
    ContextConfigError,
    ContextEditingError,
    NoEditsAppliedError,
)
from toolchat.core.context.strategies import CompactionStrategy, StrategyOutcome, call_with_timeout
from toolchat.core.context.tokenizer import TokenEstimator
from toolchat.core.llm.protocol import ContextEditRequest, Message
from toolchat.core.llm.providers.base import ContextEditingProvider
from toolchat.core.utils.logger import logger

THINKING_BLOCK_TYPES = ("thinking", "redacted_thinking")


def build_context_edits(options: ContextEditingOptions) -> List[Dict[str, Any]]:
    """根据配置生成编辑指令列表

    Args:
        options: 上下文编辑配置

    Returns:
        List[Dict[str, Any]]: Anthropic context_management.edits
    """
    edits: List[Dict[str, Any]] = []

    thinking = options.clear_thinking
    if thinking.enabled:
        edits.append({
            "type": CLEAR_THINKING_EDIT,
            "keep": {"type": "thinking_turns", "value": thinking.keep_thinking_turns},
        })

    tool_uses = options.clear_tool_uses
    if tool_uses.enabled:
        edit: Dict[str, Any] = {
            "type": CLEAR_TOOL_USES_EDIT,
            "trigger": {"type": "input_tokens", "value": tool_uses.trigger_input_tokens},
            "keep": {"type": "tool_uses", "value": tool_uses.keep_tool_uses},
        }
        if tool_uses.clear_at_least_tokens:
            edit["clear_at_least"] = {"type": "input_tokens", "value": tool_uses.clear_at_least_tokens}
        if tool_uses.exclude_tools:
            edit["exclude"] = {"tools": list(tool_uses.exclude_tools)}
        edits.append(edit)

    return edits


def _blocks(message: Dict[str, Any]) -> List[Dict[str, Any]]:
    content = message.get("content")
    return content if isinstance(content, list) else []


def _clear_tool_results(
    native: List[Dict[str, Any]],
    cleared_count: Optional[int],
    options: ContextEditingOptions,
) -> int:
    tool_names: Dict[str, str] = {}
    result_blocks: List[Dict[str, Any]] = []
    for message in native:
        for block in _blocks(message):
            if block.get("type") == "tool_use":
                tool_names[block.get("id", "")] = block.get("name", "")
            elif block.get("type") == "tool_result":
                result_blocks.append(block)

    keep = options.clear_tool_uses.keep_tool_uses
    candidates = result_blocks[: max(0, len(result_blocks) - keep)]
    excluded = set(options.clear_tool_uses.exclude_tools)
    candidates = [b for b in candidates if tool_names.get(b.get("tool_use_id", "")) not in excluded]
    if cleared_count is not None:
        candidates = candidates[:cleared_count]

    for block in candidates:
        block["content"] = CLEARED_TOOL_RESULT_PLACEHOLDER
    return len(candidates)


def _clear_thinking(
    native: List[Dict[str, Any]],
    cleared_turns: Optional[int],
    options: ContextEditingOptions,
) -> int:
    turns = [
        message
        for message in native
        if message.get("role") == "assistant"
        and any(block.get("type") in THINKING_BLOCK_TYPES for block in _blocks(message))
    ]
    keep = options.clear_thinking.keep_thinking_turns
    targets = turns[: max(0, len(turns) - keep)]
    if cleared_turns is not None:
        targets = targets[:cleared_turns]

    for message in targets:
        remaining = [b for b in _blocks(message) if b.get("type") not in THINKING_BLOCK_TYPES]
        message["content"] = remaining or [{"type": "text", "text": ""}]
    return len(targets)


def apply_context_edits(
    native: List[Dict[str, Any]],
    applied_edits: List[Dict[str, Any]],
    options: ContextEditingOptions,
) -> List[Dict[str, Any]]:
    """在本地按 provider 报告的编辑结果重放编辑

    provider 只返回 applied_edits 报告时使用，不修改传入的消息

    Args:
        native: Anthropic 原生消息列表
        applied_edits: provider 返回的编辑报告
        options: 上下文编辑配置

    Returns:
        List[Dict[str, Any]]: 编辑后的原生消息列表
    """
    edited = copy.deepcopy(native)
    for edit in applied_edits:
        edit_type = edit.get("type")
        if edit_type == CLEAR_TOOL_USES_EDIT:
            cleared = _clear_tool_results(edited, edit.get("cleared_tool_uses"), options)
            logger.debug(f"本地重放 {edit_type}: cleared_tool_uses={cleared}")
        elif edit_type == CLEAR_THINKING_EDIT:
            cleared = _clear_thinking(edited, edit.get("cleared_thinking_turns"), options)
            logger.debug(f"本地重放 {edit_type}: cleared_thinking_turns={cleared}")
        else:
            logger.warning(f"未知的编辑类型，跳过: {edit_type}")
    return edited


def leading_system_messages(messages: List[Message]) -> List[Message]:
    """返回对话开头连续的 system 消息"""
    leading = []
    for message in messages:
        if message.role != "system":
            break
        leading.append(message)
    return leading


class ContextEditingStrategy(CompactionStrategy):
    """provider 端上下文编辑策略

    不减少消息条数，而是清理旧的工具结果和思考内容
    """

    name = "context_editing"

    def __init__(self, provider: Optional[ContextEditingProvider], model: str = CONTEXT_EDITING_MODEL):
        """初始化策略

        Args:
            provider: 支持上下文编辑的 provider
            model: 编辑请求使用的模型

        Raises:
            ContextConfigError: provider 缺失或不支持上下文编辑
        """
        if provider is None:
            raise ContextConfigError("上下文编辑策略需要 provider", "未配置 Anthropic provider 或缺少 ANTHROPIC_API_KEY")
        if not isinstance(provider, ContextEditingProvider) or not provider.capabilities.supports_context_editing:
            raise ContextConfigError("provider 不支持上下文编辑", type(provider).__name__)
        self.provider = provider
        self.model = model

    def edit(
        self,
        messages: List[Message],
        options: Optional[ContextEditingOptions] = None,
        timeout: float = COMPACTION_TIMEOUT,
        estimator: Optional[TokenEstimator] = None,
    ) -> Tuple[List[Message], int]:
        """提交编辑请求并返回编辑后的消息

        Args:
            messages: 消息列表
            options: 上下文编辑配置
            timeout: 编辑请求超时时间（秒）
            estimator: 计算节省 token 数使用的估算器

        Returns:
            Tuple[List[Message], int]: (编辑后的消息列表, 节省的 token 数)

        Raises:
            NoEditsAppliedError: 没有启用的编辑指令或 provider 未应用任何编辑
            ContextEditingError: 请求失败或对话中间出现 system 消息
            CompactionTimeoutError: 请求超时
        """
        estimator = estimator or TokenEstimator()
        edited = self._edit_messages(messages, options or ContextEditingOptions(), timeout)
        tokens_saved = estimator.estimate(messages) - estimator.estimate(edited)
        logger.info(f"上下文编辑节省 token: {tokens_saved}")
        return edited, tokens_saved

    def _edit_messages(
        self,
        messages: List[Message],
        options: ContextEditingOptions,
        timeout: float,
    ) -> List[Message]:
        edits = build_context_edits(options)
        if not edits:
            raise NoEditsAppliedError("没有启用任何编辑指令")

        # 只有开头的 system 消息能放进 system 字段，中间的 system 消息无法保持原位置
        leading = leading_system_messages(messages)
        for index in range(len(leading), len(messages)):
            if messages[index].role == "system":
                raise ContextEditingError(f"对话中间的 system 消息无法提交上下文编辑: index={index}")

        system, native = to_anthropic(messages)
        request = ContextEditRequest(
            model=options.model or self.model,
            messages=native,
            edits=edits,
            system=system,
            max_tokens=options.max_tokens,
            thinking_budget_tokens=options.thinking_budget_tokens if options.clear_thinking.enabled else None,
            timeout=timeout,
        )

        logger.info(f"提交上下文编辑: model={request.model}, messages={len(native)}, edits={len(edits)}")
        try:
            response = call_with_timeout(lambda: self.provider.edit_context(request), timeout, self.name)
        except CompactionTimeoutError:
            raise
        except Exception as e:
            raise ContextEditingError("上下文编辑请求失败", e) from e

        if not response.applied_edits:
            raise NoEditsAppliedError("provider 未应用任何编辑")

        if response.messages is not None:
            edited_native = response.messages
        else:
            edited_native = apply_context_edits(native, response.applied_edits, options)

        logger.info(f"上下文编辑完成: applied_edits={len(response.applied_edits)}")
        return leading + from_anthropic(edited_native)

    def compact(self, messages: List[Message], budget: ContextBudget) -> StrategyOutcome:
        edited = self._edit_messages(messages, budget.editing, budget.timeout)
        return StrategyOutcome(messages=edited, method="provider-edit")
