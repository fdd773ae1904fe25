"""消息格式转换

内部 Message 与 Anthropic Messages API 原生格式之间的双向转换。
转换保持工具调用 id 不变，tool 角色消息对应 Anthropic 中只包含
tool_result 块的 user 消息
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from toolchat.core.llm.protocol import (
    ContentPart,
    Message,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolResultPart,
)
from toolchat.core.utils.logger import logger


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _as_dict(block: Any) -> Dict[str, Any]:
    """SDK 返回的内容块可能是 pydantic 对象，统一转为 dict"""
    if isinstance(block, dict):
        return block
    if hasattr(block, "model_dump"):
        return block.model_dump(exclude_none=True)
    return {"type": "text", "text": str(block)}


def _part_to_block(part: ContentPart) -> Optional[Dict[str, Any]]:
    if isinstance(part, TextPart):
        # Anthropic 不接受空文本块
        return {"type": "text", "text": part.text} if part.text else None
    if isinstance(part, ReasoningPart):
        if part.redacted:
            return {"type": "redacted_thinking", "data": part.signature or ""}
        return {"type": "thinking", "thinking": part.text, "signature": part.signature or ""}
    if isinstance(part, ToolCallPart):
        return {"type": "tool_use", "id": part.id, "name": part.name, "input": part.arguments}
    if isinstance(part, ToolResultPart):
        block = {
            "type": "tool_result",
            "tool_use_id": part.id,
            "content": _stringify(part.output),
        }
        if part.is_error:
            block["is_error"] = True
        return block
    return None


def to_anthropic(messages: Sequence[Message]) -> Tuple[Optional[str], List[Dict[str, Any]]]:
    """转换为 Anthropic 原生消息格式

    Args:
        messages: 内部消息列表

    Returns:
        Tuple[Optional[str], List[Dict[str, Any]]]: (system 文本, 原生消息列表)，
            system 角色消息合并为 system 文本
    """
    system_texts: List[str] = []
    native: List[Dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            if msg.text:
                system_texts.append(msg.text)
            continue

        parts = msg.parts()
        if msg.role == "tool":
            # tool_result 块必须排在 user 消息最前面
            parts = sorted(parts, key=lambda p: not isinstance(p, ToolResultPart))

        blocks = [block for block in (_part_to_block(p) for p in parts) if block is not None]
        if not blocks:
            logger.debug(f"跳过没有内容的消息: role={msg.role}")
            continue

        role = "assistant" if msg.role == "assistant" else "user"
        native.append({"role": role, "content": blocks})

    system = "\n\n".join(system_texts) if system_texts else None
    return system, native


def _tool_result_output(content: Any) -> Any:
    if isinstance(content, list):
        texts = []
        for block in content:
            block = _as_dict(block)
            texts.append(block.get("text", "") if block.get("type") == "text" else _stringify(block))
        return "".join(texts)
    return content if content is not None else ""


def _collapse(parts: List[ContentPart]) -> Any:
    """只有一个文本片段时还原为字符串内容"""
    if len(parts) == 1 and isinstance(parts[0], TextPart):
        return parts[0].text
    return parts


def from_anthropic(
    native_messages: Sequence[Any],
    system: Optional[str] = None,
) -> List[Message]:
    """从 Anthropic 原生格式转换回内部消息

    Args:
        native_messages: Anthropic 原生消息列表
        system: system 文本，非空时作为第一条 system 消息

    Returns:
        List[Message]: 内部消息列表
    """
    converted: List[Message] = []
    if system:
        converted.append(Message(role="system", content=system))

    # tool_result 块不带工具名，需要从对应的 tool_use 找回
    tool_names: Dict[str, str] = {}

    for raw in native_messages:
        msg = _as_dict(raw)
        role = msg.get("role")
        content = msg.get("content")
        if isinstance(content, list):
            blocks = [_as_dict(block) for block in content]
        else:
            blocks = [{"type": "text", "text": content or ""}]

        if role == "assistant":
            parts: List[ContentPart] = []
            for block in blocks:
                block_type = block.get("type")
                if block_type == "text":
                    parts.append(TextPart(text=block.get("text", "")))
                elif block_type == "thinking":
                    parts.append(ReasoningPart(text=block.get("thinking", ""), signature=block.get("signature") or None))
                elif block_type == "redacted_thinking":
                    parts.append(ReasoningPart(redacted=True, signature=block.get("data")))
                elif block_type == "tool_use":
                    tool_names[block["id"]] = block.get("name", "")
                    parts.append(ToolCallPart(id=block["id"], name=block.get("name", ""), arguments=block.get("input") or {}))
                else:
                    parts.append(TextPart(text=_stringify(block)))
            converted.append(Message(role="assistant", content=_collapse(parts)))
            continue

        results: List[ContentPart] = []
        others: List[ContentPart] = []
        for block in blocks:
            block_type = block.get("type")
            if block_type == "tool_result":
                tool_use_id = block.get("tool_use_id", "")
                results.append(
                    ToolResultPart(
                        id=tool_use_id,
                        name=tool_names.get(tool_use_id, ""),
                        output=_tool_result_output(block.get("content")),
                        is_error=bool(block.get("is_error", False)),
                    )
                )
            elif block_type == "text":
                others.append(TextPart(text=block.get("text", "")))
            else:
                others.append(TextPart(text=_stringify(block)))

        if results:
            converted.append(Message(role="tool", content=results))
        if others:
            converted.append(Message(role="user", content=_collapse(others)))

    return converted
