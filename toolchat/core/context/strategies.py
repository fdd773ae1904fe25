"""上下文压缩策略

实现 Summary 压缩和兜底截断两种策略，provider 端上下文编辑见 editing 模块
"""

import json
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, List, Literal, Optional, TypeVar

from toolchat.core.constants import DEFAULT_MODEL
from toolchat.core.context.boundary import find_safe_split_point
from toolchat.core.context.budget import ContextBudget
from toolchat.core.context.errors import (
    CompactionError,
    CompactionTimeoutError,
    ContextConfigError,
    SummarizationError,
)
from toolchat.core.llm.protocol import LLMRequest, Message
from toolchat.core.llm.providers.base import LLMProvider
from toolchat.core.utils.logger import logger

T = TypeVar("T")

CompactionMethod = Literal["none", "summarization", "provider-edit", "truncation"]

SUMMARY_SYSTEM_PROMPT = """You are summarizing a conversation between a user and an assistant that can call external tools.

Create a structured, information-dense summary that preserves critical context for continuing the conversation:

## User Context & Goals
- Primary objectives and requirements
- Preferences and constraints mentioned
- Specific systems, resources, or entities of interest

## Key Data & Analysis
- Important data points, figures, and measurements referenced
- Findings and assessments made

## Technical Actions & State
- Tools executed and their results
- API calls made and responses received
- Current system state or configurations

## Decisions & Next Steps
- Conclusions reached or recommendations made
- User confirmations or rejections
- Pending actions or follow-up tasks

Focus on facts, numbers, and actionable information. Omit pleasantries, acknowledgments, and repetitive explanations. Preserve exact identifiers, proper nouns, and numerical values."""

SUMMARY_HEADER = "[CONVERSATION SUMMARY - {count} messages compacted]"
SUMMARY_FOOTER = "[END SUMMARY]"


def call_with_timeout(fn: Callable[[], T], timeout: float, strategy: str = "") -> T:
    """在工作线程中执行阻塞调用，超过 timeout 秒抛出 CompactionTimeoutError

    超时后不等待工作线程结束，调用在后台自然结束，结果被丢弃

    Args:
        fn: 无参调用
        timeout: 超时时间（秒）
        strategy: 策略名称，用于错误信息

    Returns:
        fn 的返回值
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="toolchat-compaction")
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        future.cancel()
        raise CompactionTimeoutError(f"调用超时 ({timeout}s)", timeout=timeout, strategy=strategy) from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


@dataclass
class StrategyOutcome:
    """策略执行结果"""

    messages: List[Message]
    method: CompactionMethod
    summarized: bool = False


class CompactionStrategy(ABC):
    """上下文压缩策略基类

    compact 失败时抛出异常，由 ContextManager 的回退链处理
    """

    name: str = ""

    @abstractmethod
    def compact(self, messages: List[Message], budget: ContextBudget) -> StrategyOutcome:
        """压缩消息列表

        Args:
            messages: 消息列表，不会被原地修改
            budget: 上下文预算

        Returns:
            StrategyOutcome: 压缩后的消息列表和压缩方式
        """
        pass


def _content_preview(message: Any) -> str:
    if isinstance(message, Message):
        if isinstance(message.content, str):
            return message.content
        return json.dumps(
            [part.model_dump(exclude_none=True) for part in message.content],
            ensure_ascii=False,
            default=str,
        )
    content = message.get("content", "") if isinstance(message, dict) else message
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, default=str)


def format_messages_for_summary(messages: List[Message], preview_chars: int = 300) -> str:
    """格式化消息用于 summary

    每条消息格式为 "ROLE: 内容前 preview_chars 个字符"

    Args:
        messages: 消息列表
        preview_chars: 每条消息保留的字符数

    Returns:
        str: 格式化后的文本
    """
    lines = []
    for msg in messages:
        role = msg.role if isinstance(msg, Message) else str(msg.get("role", ""))
        lines.append(f"{role.upper()}: {_content_preview(msg)[:preview_chars]}")
    return "\n".join(lines)


class SummaryCompressionStrategy(CompactionStrategy):
    """Summary 压缩策略

    使用 LLM 总结切分点之前的旧消息，替换为一条 system 消息，最新的消息原样保留
    """

    name = "summary"

    def __init__(self, provider: Optional[LLMProvider], model: str = DEFAULT_MODEL):
        """初始化策略

        Args:
            provider: 用于生成总结的 LLM Provider
            model: 总结使用的模型

        Raises:
            ContextConfigError: 没有可用的 provider
        """
        if provider is None:
            raise ContextConfigError("Summary 策略需要 LLM Provider", "未配置 provider 或缺少凭据")
        self.provider = provider
        self.model = model

    def summarize(self, messages: List[Message], budget: Optional[ContextBudget] = None) -> str:
        """总结旧消息

        Args:
            messages: 需要被压缩的旧消息
            budget: 上下文预算，提供模型参数和超时

        Returns:
            str: 带有 CONVERSATION SUMMARY 标记的总结文本

        Raises:
            SummarizationError: 调用失败或返回空内容
            CompactionTimeoutError: 调用超时
        """
        budget = budget or ContextBudget()
        conversation = format_messages_for_summary(messages, budget.summary_preview_chars)
        request = LLMRequest(
            model=budget.summary_model or self.model,
            messages=[
                Message(role="system", content=SUMMARY_SYSTEM_PROMPT),
                Message(role="user", content=f"Summarize the following conversation:\n\n{conversation}"),
            ],
            generate_config={
                "max_tokens": budget.summary_max_output_tokens,
                "temperature": budget.summary_temperature,
                "timeout": budget.timeout,
            },
        )

        logger.info(f"开始总结旧消息: count={len(messages)}, model={request.model}")
        try:
            response = call_with_timeout(lambda: self.provider.call(request), budget.timeout, self.name)
        except CompactionTimeoutError:
            raise
        except Exception as e:
            raise SummarizationError("总结请求失败", e) from e

        digest = response.message.text.strip()
        if not digest:
            raise SummarizationError("模型返回了空的总结")

        header = SUMMARY_HEADER.format(count=len(messages))
        return f"{header}\n{digest}\n{SUMMARY_FOOTER}"

    def compact(self, messages: List[Message], budget: ContextBudget) -> StrategyOutcome:
        split = find_safe_split_point(messages, budget.keep_recent_messages, budget.split_search_window)
        old_messages = messages[:split]
        recent_messages = messages[split:]

        if len(old_messages) < budget.min_messages_to_compact:
            raise CompactionError(f"可总结的旧消息太少: {len(old_messages)}", strategy=self.name)

        summary = self.summarize(old_messages, budget)
        compacted = [Message(role="system", content=summary)]
        compacted.extend(recent_messages)
        return StrategyOutcome(messages=compacted, method="summarization", summarized=True)


class TruncationStrategy(CompactionStrategy):
    """截断策略

    丢弃切分点之前的消息，不生成替代内容。回退链的最后一环，不会失败

    保留条数取 truncation_keep_recent 与 keep_recent_messages 中较小者，
    保证截断结果不会比摘要策略保留得更多
    """

    name = "truncation"

    def compact(self, messages: List[Message], budget: ContextBudget) -> StrategyOutcome:
        keep = min(budget.truncation_keep_recent, budget.keep_recent_messages)
        split = find_safe_split_point(messages, keep, budget.split_search_window)
        logger.info(f"截断旧消息: dropped={split}, kept={len(messages) - split}")
        return StrategyOutcome(messages=list(messages[split:]), method="truncation")
