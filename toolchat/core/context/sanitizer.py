"""未完成工具调用清理

工具调用完成的判定只有一条：之后的消息中存在相同 id 的工具结果。
前端旧格式把结果内嵌在 toolInvocations 中，此时以 result 字段存在作为判定
"""

from typing import Any, List, Sequence, Set

from toolchat.core.llm.protocol import Message
from toolchat.core.utils.logger import logger


def _result_ids_after(messages: Sequence[Any], start: int) -> Set[str]:
    ids: Set[str] = set()
    for message in messages[start:]:
        if isinstance(message, Message):
            ids.update(part.id for part in message.tool_results())
        elif isinstance(message, dict) and isinstance(message.get("content"), list):
            for part in message["content"]:
                if isinstance(part, dict) and part.get("type") == "tool-result":
                    ids.add(part.get("toolCallId") or part.get("id") or "")
    return ids


def _drop_from_message(message: Message, later_ids: Set[str]) -> Message:
    if isinstance(message.content, str):
        return message
    kept = [
        part
        for part in message.content
        if part.type != "tool-call" or part.id in later_ids
    ]
    if len(kept) == len(message.content):
        return message
    return message.model_copy(update={"content": kept})


def _drop_from_dict(message: dict, later_ids: Set[str]) -> dict:
    updated = message
    content = message.get("content")
    if isinstance(content, list):
        kept = [
            part
            for part in content
            if not (isinstance(part, dict) and part.get("type") == "tool-call")
            or (part.get("toolCallId") or part.get("id")) in later_ids
        ]
        if len(kept) != len(content):
            updated = {**updated, "content": kept}

    invocations = message.get("toolInvocations")
    if isinstance(invocations, list) and invocations:
        completed = [inv for inv in invocations if isinstance(inv, dict) and "result" in inv]
        if not completed:
            updated = {k: v for k, v in updated.items() if k != "toolInvocations"}
        elif len(completed) < len(invocations):
            updated = {**updated, "toolInvocations": completed}
    return updated


def _is_empty(message: Any) -> bool:
    if isinstance(message, Message):
        return not message.parts()
    if isinstance(message, dict):
        return not message.get("content") and not message.get("toolInvocations")
    return False


def drop_incomplete_tool_calls(messages: Sequence[Any]) -> List[Any]:
    """移除没有对应工具结果的工具调用

    只处理 assistant 消息，清理后没有任何内容的 assistant 消息被整体移除。
    返回新列表，不修改传入的消息

    Args:
        messages: 消息列表，元素可以是 Message 或 dict

    Returns:
        List[Any]: 清理后的消息列表
    """
    cleaned: List[Any] = []
    dropped = 0
    for index, message in enumerate(messages):
        role = message.role if isinstance(message, Message) else (message.get("role") if isinstance(message, dict) else None)
        if role != "assistant":
            cleaned.append(message)
            continue

        later_ids = _result_ids_after(messages, index + 1)
        if isinstance(message, Message):
            updated = _drop_from_message(message, later_ids)
        elif isinstance(message, dict):
            updated = _drop_from_dict(message, later_ids)
        else:
            updated = message

        if updated is not message and _is_empty(updated):
            dropped += 1
            continue
        cleaned.append(updated)

    if dropped:
        logger.debug(f"移除了 {dropped} 条只包含未完成工具调用的消息")
    return cleaned


def find_orphaned_tool_results(messages: Sequence[Message]) -> List[str]:
    """查找没有对应工具调用的工具结果 id

    Args:
        messages: 消息列表

    Returns:
        List[str]: 孤立工具结果的 id，按出现顺序
    """
    seen_calls: Set[str] = set()
    orphans: List[str] = []
    for message in messages:
        for call in message.tool_calls():
            seen_calls.add(call.id)
        for result in message.tool_results():
            if result.id not in seen_calls:
                orphans.append(result.id)
    return orphans
