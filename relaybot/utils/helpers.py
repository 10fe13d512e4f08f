"""
工具函数集合 - relaybot 全局通用的辅助函数。

函数分类：
- 字符串工具：truncate_string, split_message
- 标识生成：new_session_key
"""

import uuid


def new_session_key() -> str:
    """生成一个新的随机会话键（uuid4 十六进制串），用于群聊一次性会话。"""
    return uuid.uuid4().hex


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def split_message(text: str, limit: int) -> list[str]:
    """
    将超长文本拆分为不超过 limit 个字符的若干段。

    优先在换行处拆分，其次在空格处，都找不到时硬切。

    参数:
        text: 原始文本
        limit: 每段最大字符数

    返回:
        文本段列表（空文本返回空列表）
    """
    chunks: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n ")
    if remaining:
        chunks.append(remaining)
    return chunks
