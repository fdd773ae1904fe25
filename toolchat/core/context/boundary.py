"""安全切分点

在消息历史中寻找压缩切分位置，保证工具调用和工具结果不被拆开
"""

from typing import Any, Sequence

from toolchat.core.constants import SPLIT_SEARCH_WINDOW
from toolchat.core.llm.protocol import Message


def message_role(message: Any) -> str:
    if isinstance(message, Message):
        return message.role
    if isinstance(message, dict):
        return str(message.get("role", ""))
    return str(getattr(message, "role", ""))


def has_tool_call(message: Any) -> bool:
    """判断消息是否包含工具调用，兼容 dict 格式和旧的 toolInvocations"""
    if isinstance(message, Message):
        return message.has_tool_calls()
    if not isinstance(message, dict):
        return False
    if message.get("toolInvocations"):
        return True
    content = message.get("content")
    if isinstance(content, list):
        return any(
            isinstance(part, dict) and part.get("type") in ("tool-call", "tool_use")
            for part in content
        )
    return False


def find_safe_split_point(
    messages: Sequence[Any],
    keep_recent_count: int,
    search_window: int = SPLIT_SEARCH_WINDOW,
) -> int:
    """寻找安全的切分下标

    下标之后（含）的消息原样保留，之前的消息可被压缩。理想位置落在工具结果上时，
    在 search_window 范围内向前找到发起调用的 assistant 消息，整组移到保留一侧。
    窗口外的孤立工具结果属于上游数据问题，不做处理

    Args:
        messages: 消息列表
        keep_recent_count: 希望保留的最新消息数
        search_window: 最多向前回溯的消息数

    Returns:
        int: 切分下标，0 表示全部保留，len(messages) 表示全部可压缩
    """
    total = len(messages)
    ideal = max(0, total - max(0, keep_recent_count))
    if ideal == 0 or ideal >= total:
        return ideal

    # ideal 落在 assistant 工具调用上时，调用和结果都在保留一侧，无需移动
    if message_role(messages[ideal]) != "tool":
        return ideal

    lower = max(0, ideal - search_window)
    for index in range(ideal - 1, lower - 1, -1):
        previous = messages[index]
        if message_role(previous) == "assistant" and has_tool_call(previous):
            return index
    return ideal
