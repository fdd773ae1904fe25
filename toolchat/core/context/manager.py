"""上下文管理器

协调 Token 估算、安全切分和压缩策略，保证对话窗口不超过上下文预算
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from toolchat.core.constants import CONTEXT_EDITING_MODEL, DEFAULT_MODEL
from toolchat.core.context.boundary import find_safe_split_point
from toolchat.core.context.budget import ContextBudget
from toolchat.core.context.strategies import (
    CompactionMethod,
    CompactionStrategy,
    StrategyOutcome,
    SummaryCompressionStrategy,
    TruncationStrategy,
)
from toolchat.core.context.tokenizer import TokenEstimator
from toolchat.core.llm.protocol import Message
from toolchat.core.llm.providers.base import ContextEditingProvider, LLMProvider
from toolchat.core.utils.logger import logger

# 回退顺序，从 budget.strategy 对应的位置开始，截断总是最后一环
STRATEGY_CHAIN = ("context_editing", "summary", "truncation")


@dataclass
class CompactionResult:
    """一次上下文管理的结果"""

    messages: List[Message] = field(default_factory=list)
    summarized: bool = False
    original_tokens: int = 0
    new_tokens: int = 0
    tokens_saved: int = 0
    method: CompactionMethod = "none"

    @property
    def compacted(self) -> bool:
        return self.method != "none"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": [
                m.model_dump(mode="json", exclude_none=True) if isinstance(m, Message) else m
                for m in self.messages
            ],
            "summarized": self.summarized,
            "original_tokens": self.original_tokens,
            "new_tokens": self.new_tokens,
            "tokens_saved": self.tokens_saved,
            "method": self.method,
        }


class ContextManager:
    """上下文管理器

    不持有跨请求的状态，每次 manage 调用都重新估算和选择策略
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: str = DEFAULT_MODEL,
        editing_provider: Optional[ContextEditingProvider] = None,
    ):
        """初始化上下文管理器

        Args:
            provider: 用于 Summary 策略的 LLM Provider
            model: Summary 策略默认使用的模型
            editing_provider: 用于上下文编辑策略的 provider，为 None 时尝试使用 provider
        """
        self.provider = provider
        self.model = model
        self.editing_provider = editing_provider

    def measure(self, messages: Sequence[Any], budget: ContextBudget, estimator: Optional[TokenEstimator] = None) -> int:
        """估算消息、system prompt 和工具 schema 的总 token 数"""
        estimator = estimator or TokenEstimator.from_budget(budget)
        return estimator.estimate_total(messages, budget.system_prompt_text, budget.declared_tool_count)

    def manage(self, messages: Sequence[Message], budget: Optional[ContextBudget] = None) -> CompactionResult:
        """管理上下文，返回新的消息列表

        不会抛出压缩相关的异常，所有策略失败时退回到截断

        Args:
            messages: 原始消息列表，不会被修改
            budget: 上下文预算，None 表示使用默认值

        Returns:
            CompactionResult: 管理结果
        """
        budget = budget or ContextBudget()
        window = list(messages)
        estimator = TokenEstimator.from_budget(budget)

        original_tokens = self.measure(window, budget, estimator)
        logger.debug(f"上下文 token 估算: {original_tokens}/{budget.max_tokens}, messages={len(window)}")

        if original_tokens < budget.max_tokens:
            return self._unchanged(window, original_tokens)

        split = find_safe_split_point(window, budget.keep_recent_messages, budget.split_search_window)
        if split < budget.min_messages_to_compact:
            logger.info(f"超出预算但可压缩的旧消息太少: old_messages={split}, tokens={original_tokens}")
            return self._unchanged(window, original_tokens)

        logger.info(
            f"超出上下文预算，开始压缩: tokens={original_tokens}, max_tokens={budget.max_tokens}, "
            f"strategy={budget.strategy}, old_messages={split}"
        )
        outcome = self._compact(window, budget)

        new_tokens = self.measure(outcome.messages, budget, estimator)
        result = CompactionResult(
            messages=outcome.messages,
            summarized=outcome.summarized,
            original_tokens=original_tokens,
            new_tokens=new_tokens,
            tokens_saved=original_tokens - new_tokens,
            method=outcome.method,
        )
        logger.info(
            f"上下文压缩完成: method={result.method}, {original_tokens} -> {new_tokens} "
            f"(saved {result.tokens_saved}), messages {len(window)} -> {len(result.messages)}"
        )
        return result

    def _unchanged(self, window: List[Message], tokens: int) -> CompactionResult:
        return CompactionResult(
            messages=window,
            summarized=False,
            original_tokens=tokens,
            new_tokens=tokens,
            tokens_saved=0,
            method="none",
        )

    def _compact(self, window: List[Message], budget: ContextBudget) -> StrategyOutcome:
        start = STRATEGY_CHAIN.index(budget.strategy)
        for name in STRATEGY_CHAIN[start:-1]:
            try:
                strategy = self._create_strategy(name, budget)
                return strategy.compact(window, budget)
            except Exception as e:
                logger.warning(f"压缩策略 {name} 失败，回退到下一个策略: {type(e).__name__}: {e}")

        return TruncationStrategy().compact(window, budget)

    def _create_strategy(self, name: str, budget: ContextBudget) -> CompactionStrategy:
        """创建策略实例

        Raises:
            ContextConfigError: 策略所需的 provider 不可用
        """
        if name == "context_editing":
            from toolchat.core.context.editing import ContextEditingStrategy

            provider = self.editing_provider
            if provider is None and isinstance(self.provider, ContextEditingProvider):
                provider = self.provider
            logger.debug("创建 ContextEditingStrategy")
            return ContextEditingStrategy(provider, model=budget.editing.model or CONTEXT_EDITING_MODEL)
        if name == "summary":
            logger.debug("创建 SummaryCompressionStrategy")
            return SummaryCompressionStrategy(self.provider, model=budget.summary_model or self.model)
        if name == "truncation":
            return TruncationStrategy()
        raise ValueError(f"未知的策略类型: {name}")


def manage_context(
    messages: Sequence[Message],
    budget: Optional[ContextBudget] = None,
    provider: Optional[LLMProvider] = None,
    model: str = DEFAULT_MODEL,
    editing_provider: Optional[ContextEditingProvider] = None,
) -> CompactionResult:
    """使用一次性的 ContextManager 管理上下文"""
    manager = ContextManager(provider=provider, model=model, editing_provider=editing_provider)
    return manager.manage(messages, budget)
