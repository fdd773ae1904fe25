"""配置模型（Pydantic）"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from toolchat.core.constants import (
    CHARS_PER_TOKEN,
    CLEAR_AT_LEAST_TOKENS,
    CLEAR_TOOL_USES_TRIGGER_TOKENS,
    COMPACTION_TIMEOUT,
    CONTEXT_EDITING_MAX_TOKENS,
    CONTEXT_EDITING_MODEL,
    CONTEXT_EDITING_THINKING_BUDGET,
    DEFAULT_MAX_CONTEXT_TOKENS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_SYSTEM_VERSION,
    DEFAULT_TIMEOUT,
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
from toolchat.core.context.budget import (
    ClearThinkingOptions,
    ClearToolUsesOptions,
    ContextBudget,
    ContextEditingOptions,
)
from toolchat.core.context.usage import get_context_limit
from toolchat.core.llm.protocol import LLMConfig, ProviderName

# provider 对应的 API Key 环境变量
API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}
FALLBACK_API_KEY_ENV = "TOOLCHAT_API_KEY"


def resolve_api_key(provider: str, configured: Optional[str] = None) -> Optional[str]:
    """配置中的 api_key 优先，其次是 provider 对应的环境变量，最后是 TOOLCHAT_API_KEY"""
    if configured:
        return configured
    env_name = API_KEY_ENV.get(provider)
    return (os.getenv(env_name) if env_name else None) or os.getenv(FALLBACK_API_KEY_ENV)


class ModelEntry(BaseModel):
    model: str
    name: Optional[str] = None
    provider: ProviderName = DEFAULT_PROVIDER
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    max_context_length: Optional[int] = None


class ModelSection(BaseModel):
    default: Optional[str] = None
    entries: List[ModelEntry] = Field(default_factory=list)


class SummarySection(BaseModel):
    model: Optional[str] = None
    keep_recent: int = KEEP_RECENT_MESSAGES
    max_output_tokens: int = SUMMARY_MAX_OUTPUT_TOKENS
    temperature: float = SUMMARY_TEMPERATURE
    preview_chars: int = SUMMARY_PREVIEW_CHARS


class EditingSection(BaseModel):
    model: str = CONTEXT_EDITING_MODEL
    base_url: Optional[str] = None
    max_tokens: int = CONTEXT_EDITING_MAX_TOKENS
    thinking_budget_tokens: int = CONTEXT_EDITING_THINKING_BUDGET
    clear_thinking: bool = True
    keep_thinking_turns: int = KEEP_THINKING_TURNS
    clear_tool_uses: bool = True
    trigger_input_tokens: int = CLEAR_TOOL_USES_TRIGGER_TOKENS
    keep_tool_uses: int = KEEP_TOOL_USES
    clear_at_least_tokens: Optional[int] = CLEAR_AT_LEAST_TOKENS
    exclude_tools: List[str] = Field(default_factory=list)

    def to_options(self) -> ContextEditingOptions:
        return ContextEditingOptions(
            clear_thinking=ClearThinkingOptions(
                enabled=self.clear_thinking,
                keep_thinking_turns=self.keep_thinking_turns,
            ),
            clear_tool_uses=ClearToolUsesOptions(
                enabled=self.clear_tool_uses,
                trigger_input_tokens=self.trigger_input_tokens,
                keep_tool_uses=self.keep_tool_uses,
                clear_at_least_tokens=self.clear_at_least_tokens,
                exclude_tools=list(self.exclude_tools),
            ),
            model=self.model,
            max_tokens=self.max_tokens,
            thinking_budget_tokens=self.thinking_budget_tokens,
        )


class ContextSection(BaseModel):
    strategy: Literal["summary", "context_editing", "truncation"] = "summary"
    max_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS
    min_messages_to_compact: int = MIN_MESSAGES_TO_COMPACT
    split_search_window: int = SPLIT_SEARCH_WINDOW
    estimator: Literal["approximate", "tiktoken"] = "approximate"
    chars_per_token: float = CHARS_PER_TOKEN
    tool_call_overhead: int = TOOL_CALL_OVERHEAD
    tool_schema_overhead: int = TOOL_SCHEMA_OVERHEAD
    truncation_keep_recent: int = TRUNCATION_KEEP_RECENT
    timeout: float = COMPACTION_TIMEOUT
    summary: SummarySection = Field(default_factory=SummarySection)
    editing: EditingSection = Field(default_factory=EditingSection)


class ConfigMeta(BaseModel):
    workspace_dir: Path
    config_file_path: Optional[Path] = None
    source: Literal["user", "project", "default"] = "default"
    system_version: str = DEFAULT_SYSTEM_VERSION


class Config(BaseModel):
    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    model: ModelSection = Field(default_factory=ModelSection)
    context: ContextSection = Field(default_factory=ContextSection)
    meta: ConfigMeta

    @property
    def model_name(self) -> str:
        if self.model.default:
            return self.model.default
        if self.model.entries:
            return self.model.entries[0].model
        return DEFAULT_MODEL

    @property
    def llm_config(self) -> LLMConfig:
        """当前模型的 LLM 配置，用于 Summary 策略"""
        entry = self.get_current_model_entry()
        provider = entry.provider if entry else DEFAULT_PROVIDER
        return LLMConfig(
            provider=provider,
            model=self.model_name,
            api_key=resolve_api_key(provider, entry.api_key if entry else None),
            base_url=entry.base_url if entry else None,
            timeout=entry.timeout if entry else DEFAULT_TIMEOUT,
            max_retries=entry.max_retries if entry else DEFAULT_MAX_RETRIES,
            temperature=entry.temperature if entry else None,
            max_tokens=entry.max_tokens if entry else None,
        )

    @property
    def editing_llm_config(self) -> LLMConfig:
        """上下文编辑使用的 Anthropic 配置"""
        editing = self.context.editing
        return LLMConfig(
            provider="anthropic",
            model=editing.model,
            api_key=resolve_api_key("anthropic"),
            base_url=editing.base_url,
            timeout=self.context.timeout,
        )

    @property
    def max_context_length(self) -> int:
        entry = self.get_current_model_entry()
        if entry and entry.max_context_length:
            return entry.max_context_length
        return get_context_limit(self.model_name)

    @property
    def context_budget(self) -> ContextBudget:
        """根据 context 配置段生成 ContextBudget

        Raises:
            ContextConfigError: 配置值非法
        """
        ctx = self.context
        return ContextBudget(
            max_tokens=ctx.max_tokens,
            keep_recent_messages=ctx.summary.keep_recent,
            strategy=ctx.strategy,
            min_messages_to_compact=ctx.min_messages_to_compact,
            split_search_window=ctx.split_search_window,
            estimator=ctx.estimator,
            chars_per_token=ctx.chars_per_token,
            tool_call_overhead=ctx.tool_call_overhead,
            tool_schema_overhead=ctx.tool_schema_overhead,
            summary_model=ctx.summary.model,
            summary_max_output_tokens=ctx.summary.max_output_tokens,
            summary_temperature=ctx.summary.temperature,
            summary_preview_chars=ctx.summary.preview_chars,
            truncation_keep_recent=ctx.truncation_keep_recent,
            timeout=ctx.timeout,
            editing=ctx.editing.to_options(),
        )

    @property
    def workspace_dir(self) -> Path:
        return self.meta.workspace_dir

    @property
    def config_file_path(self) -> Optional[Path]:
        return self.meta.config_file_path

    @property
    def source(self) -> str:
        return self.meta.source

    def get_current_model_entry(self) -> Optional[ModelEntry]:
        if not self.model.entries:
            return None
        target = self.model_name
        for entry in self.model.entries:
            if entry.model == target:
                return entry
        return self.model.entries[0]
