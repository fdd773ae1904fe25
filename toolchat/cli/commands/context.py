"""上下文命令实现

estimate / compact / usage 三个命令，读取导出的对话 JSON 文件
"""

import dataclasses
import json
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.table import Table

from toolchat.core.config.config_manager import ConfigManager
from toolchat.core.context.budget import ContextBudget
from toolchat.core.context.errors import ContextConfigError
from toolchat.core.context.manager import ContextManager
from toolchat.core.context.tokenizer import TokenEstimator
from toolchat.core.context.usage import TokenWarningLevel, assess_context_usage
from toolchat.core.llm.errors import LLMConfigError
from toolchat.core.llm.protocol import Message
from toolchat.core.llm.providers.base import ContextEditingProvider, LLMProvider
from toolchat.core.llm.providers.factory import create_provider
from toolchat.core.utils.logger import logger

console = Console()
error_console = Console(stderr=True)

_messages_adapter = TypeAdapter(List[Message])

LEVEL_STYLES = {
    TokenWarningLevel.SAFE: "green",
    TokenWarningLevel.WARNING: "yellow",
    TokenWarningLevel.BLOCKED: "bold red",
}


def _fail(message: str, details: Any = None) -> None:
    error_console.print(f"[red]错误:[/red] {message}")
    if details:
        error_console.print(f"详情: {details}")
    sys.exit(1)


def load_conversation(path: Path) -> Tuple[List[Message], Optional[str], int]:
    """读取对话文件

    文件内容可以是消息数组，也可以是包含 messages、system、tools 字段的对象

    Returns:
        Tuple[List[Message], Optional[str], int]: (消息列表, system prompt, 声明的工具数)
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        _fail(f"文件不存在: {path}")
    except json.JSONDecodeError as e:
        _fail(f"对话文件格式错误: {path}", e)

    system_prompt, tool_count = None, 0
    if isinstance(data, dict):
        system_prompt = data.get("system")
        tools = data.get("tools") or []
        tool_count = len(tools) if isinstance(tools, (list, dict)) else 0
        data = data.get("messages", [])

    try:
        messages = _messages_adapter.validate_python(data)
    except ValidationError as e:
        _fail(f"对话文件中的消息无法解析: {path}", e)
    return messages, system_prompt, tool_count


def _budget_from_args(args, system_prompt: Optional[str], tool_count: int) -> ContextBudget:
    try:
        budget = ConfigManager.get_instance().get_config().context_budget
        overrides = {"system_prompt_text": system_prompt, "declared_tool_count": tool_count}
        if getattr(args, "max_tokens", None) is not None:
            overrides["max_tokens"] = args.max_tokens
        if getattr(args, "keep_recent", None) is not None:
            overrides["keep_recent_messages"] = args.keep_recent
        if getattr(args, "strategy", None):
            overrides["strategy"] = args.strategy
        return dataclasses.replace(budget, **overrides)
    except ContextConfigError as e:
        _fail("上下文配置无效", e)


def _try_create_provider(config) -> Optional[LLMProvider]:
    try:
        return create_provider(config)
    except LLMConfigError as e:
        logger.warning(f"无法创建 provider {config.provider}: {e}")
        return None


def estimate_command(args) -> None:
    """估算对话文件的 token 数"""
    messages, system_prompt, tool_count = load_conversation(Path(args.file))
    budget = _budget_from_args(args, system_prompt, tool_count)
    estimator = TokenEstimator.from_budget(budget)

    message_tokens = estimator.estimate(messages)
    system_tokens = estimator.estimate(system_prompt or "")
    tool_tokens = estimator.estimate_tool_schema_tokens(tool_count)
    total = message_tokens + system_tokens + tool_tokens

    table = Table(title=f"Token 估算: {args.file}")
    table.add_column("项目")
    table.add_column("Token", justify="right")
    table.add_row(f"消息 ({len(messages)} 条)", str(message_tokens))
    table.add_row("System prompt", str(system_tokens))
    table.add_row(f"工具 schema ({tool_count} 个)", str(tool_tokens))
    table.add_row("合计", str(total), style="bold")
    console.print(table)

    if total >= budget.max_tokens:
        console.print(f"[yellow]已超出压缩阈值 {budget.max_tokens}[/yellow]")


def compact_command(args) -> None:
    """压缩对话文件"""
    messages, system_prompt, tool_count = load_conversation(Path(args.file))
    budget = _budget_from_args(args, system_prompt, tool_count)
    config = ConfigManager.get_instance().get_config()

    provider = None
    editing_provider = None
    if budget.strategy in ("summary", "context_editing"):
        provider = _try_create_provider(config.llm_config)
    if budget.strategy == "context_editing":
        candidate = _try_create_provider(config.editing_llm_config)
        if isinstance(candidate, ContextEditingProvider):
            editing_provider = candidate

    manager = ContextManager(provider=provider, model=config.model_name, editing_provider=editing_provider)
    result = manager.manage(messages, budget)

    console.print(
        f"method=[bold]{result.method}[/bold] tokens {result.original_tokens} -> {result.new_tokens} "
        f"(saved {result.tokens_saved}), messages {len(messages)} -> {len(result.messages)}"
    )

    payload = json.dumps(result.to_dict(), ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        console.print(f"已写入: {args.output}")
    else:
        console.print_json(payload)


def usage_command(args) -> None:
    """评估对话占用模型上下文窗口的比例"""
    messages, system_prompt, tool_count = load_conversation(Path(args.file))
    budget = _budget_from_args(args, system_prompt, tool_count)
    config = ConfigManager.get_instance().get_config()
    model = args.model or config.model_name

    tokens = TokenEstimator.from_budget(budget).estimate_total(messages, system_prompt, tool_count)
    limit = args.limit or (config.max_context_length if not args.model else None)
    usage = assess_context_usage(tokens, model=model, limit=limit)

    style = LEVEL_STYLES[usage.level]
    console.print(
        f"{model}: {usage.tokens}/{usage.limit} tokens ({usage.percent}%) "
        f"[{style}]{usage.level.value}[/{style}]"
    )
