import json
from typing import Annotated, Any, Dict, List, Literal, Optional, TypeAlias, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator

from toolchat.core.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    DEFAULT_TIMEOUT,
)

__all__ = [
    "MessageRole",
    "ProviderName",
    "ToolFunctionParameters",
    "ToolFunction",
    "ToolDefinition",
    "TextPart",
    "ToolCallPart",
    "ToolResultPart",
    "ReasoningPart",
    "ContentPart",
    "Message",
    "Usage",
    "ChatCompletion",
    "LLMRequest",
    "LLMConfig",
    "ContextEditRequest",
    "ContextEditResponse",
]

MessageRole: TypeAlias = Literal["system", "user", "assistant", "tool"]
ProviderName: TypeAlias = Literal["openai", "anthropic"]


class ToolFunctionParameters(BaseModel):
    type: Literal["object"] = "object"
    properties: Dict[str, Any] = Field(default_factory=dict)
    required: Optional[List[str]] = None


class ToolFunction(BaseModel):
    name: str
    description: str = ""
    parameters: ToolFunctionParameters = Field(default_factory=ToolFunctionParameters)


class ToolDefinition(BaseModel):
    type: Literal["function"] = "function"
    function: ToolFunction


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolCallPart(BaseModel):
    """模型发起的工具调用，id 与之后的 ToolResultPart 一一对应"""

    type: Literal["tool-call"] = "tool-call"
    id: str = Field(validation_alias=AliasChoices("id", "toolCallId", "tool_call_id"))
    name: str = Field(validation_alias=AliasChoices("name", "toolName", "tool_name"))
    arguments: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("arguments", "input", "args"),
    )

    @field_validator("arguments", mode="before")
    @classmethod
    def _parse_arguments(cls, value: Any) -> Any:
        # OpenAI 格式中 arguments 是 JSON 字符串
        if value is None:
            return {}
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return {}
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                return {"_raw": value}
            return parsed if isinstance(parsed, dict) else {"_value": parsed}
        return value


class ToolResultPart(BaseModel):
    """工具执行结果"""

    type: Literal["tool-result"] = "tool-result"
    id: str = Field(validation_alias=AliasChoices("id", "toolCallId", "tool_call_id"))
    name: str = Field(default="", validation_alias=AliasChoices("name", "toolName", "tool_name"))
    output: Any = Field(default=None, validation_alias=AliasChoices("output", "result"))
    is_error: bool = Field(default=False, validation_alias=AliasChoices("is_error", "isError"))


class ReasoningPart(BaseModel):
    """模型的思考内容

    redacted 为 True 时 text 为空，加密内容保存在 signature 中
    """

    type: Literal["reasoning"] = "reasoning"
    text: str = ""
    signature: Optional[str] = None
    redacted: bool = False


ContentPart = Annotated[
    Union[TextPart, ToolCallPart, ToolResultPart, ReasoningPart],
    Field(discriminator="type"),
]


class Message(BaseModel):
    role: MessageRole
    content: Union[str, List[ContentPart]] = ""

    @field_validator("content", mode="before")
    @classmethod
    def _normalize_content(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value

    def parts(self) -> List[ContentPart]:
        """返回内容片段列表，字符串内容视为单个文本片段"""
        if isinstance(self.content, str):
            return [TextPart(text=self.content)] if self.content else []
        return list(self.content)

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def tool_calls(self) -> List[ToolCallPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if isinstance(part, ToolCallPart)]

    def tool_results(self) -> List[ToolResultPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if isinstance(part, ToolResultPart)]

    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls())

    def has_tool_results(self) -> bool:
        return bool(self.tool_results())


class Usage(BaseModel):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletion(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    message: Message
    finish_reason: Optional[str] = None
    usage: Optional[Usage] = None


class LLMRequest(BaseModel):
    model: str
    messages: List[Message]
    tools: Optional[List[ToolDefinition]] = None
    # max_tokens / temperature / top_p / timeout
    generate_config: Optional[Dict[str, Any]] = None


class LLMConfig(BaseModel):
    provider: ProviderName = DEFAULT_PROVIDER
    model: str = DEFAULT_MODEL
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class ContextEditRequest(BaseModel):
    """provider 端上下文编辑请求，messages 为 provider 原生格式"""

    model: str
    messages: List[Dict[str, Any]]
    edits: List[Dict[str, Any]]
    system: Optional[str] = None
    max_tokens: int
    thinking_budget_tokens: Optional[int] = None
    timeout: Optional[float] = None


class ContextEditResponse(BaseModel):
    """provider 端上下文编辑结果

    messages 为 None 表示 provider 只返回了编辑报告，需要在本地按报告重放编辑
    """

    applied_edits: List[Dict[str, Any]] = Field(default_factory=list)
    messages: Optional[List[Dict[str, Any]]] = None
