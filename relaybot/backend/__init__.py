"""
对话后端模块 - 与 AI 角色对话服务之间的会话抽象。

- base.py：会话事件（标签联合类型）、会话选项、后端与会话的抽象基类
- inworld.py：基于 httpx（鉴权）+ websockets（会话传输）的 Inworld 风格实现
"""

from relaybot.backend.base import (
    ConversationBackend,
    ConversationSession,
    DisconnectEvent,
    ErrorEvent,
    InteractionEndEvent,
    SessionEvent,
    SessionHandler,
    SessionOptions,
    TextEvent,
    UnknownEvent,
)

__all__ = [
    "ConversationBackend",
    "ConversationSession",
    "SessionOptions",
    "SessionEvent",
    "SessionHandler",
    "TextEvent",
    "InteractionEndEvent",
    "ErrorEvent",
    "DisconnectEvent",
    "UnknownEvent",
]
