"""
会话适配器模块 - 把一个后端会话绑定到一个聊天会话上。

SessionAdapter 是后端事件的唯一处理入口（handle），按事件类型分派：
- InteractionEndEvent：群聊会话收到回合结束即关闭自己（私聊会话保持）
- TextEvent(final=True)：把文本作为 OutboundMessage 发回绑定的聊天会话
- ErrorEvent：记录日志，会话继续运行，不重试
- DisconnectEvent：调用销毁回调（恰好一次），由连接池把自己移除
- 其他事件：忽略
"""

import asyncio
from typing import Callable

from loguru import logger

from relaybot.backend.base import (
    ConversationBackend,
    DisconnectEvent,
    ErrorEvent,
    InteractionEndEvent,
    SessionEvent,
    SessionOptions,
    TextEvent,
)
from relaybot.bus.events import OutboundMessage
from relaybot.bus.queue import MessageBus


class SessionAdapter:
    """
    会话适配器。

    属性:
        channel: 回复发往的渠道名（如 "discord"）
        chat_id: 回复发往的聊天 ID
        direct: 私聊模式（True）或群聊模式（False）
        session: 底层后端会话句柄
        _on_destroy: 断开时调用的销毁回调，参数为适配器自身
    """

    def __init__(
        self,
        backend: ConversationBackend,
        bus: MessageBus,
        options: SessionOptions,
        channel: str,
        chat_id: str,
        direct: bool,
        on_destroy: Callable[["SessionAdapter"], None],
    ):
        self.bus = bus
        self.channel = channel
        self.chat_id = chat_id
        self.direct = direct
        self._on_destroy = on_destroy
        self._destroyed = False
        self.session = backend.create_session(options, self.handle)

    @property
    def is_active(self) -> bool:
        return self.session.is_active

    def send_text(self, text: str) -> asyncio.Future:
        """转发文本到后端（即发即弃，返回的 Future 可选择等待）。"""
        return self.session.send_text(text)

    def close(self) -> asyncio.Future:
        return self.session.close()

    async def handle(self, event: SessionEvent) -> None:
        """后端事件分派入口。"""
        if isinstance(event, InteractionEndEvent):
            if not self.direct:
                self.close()
            return

        if isinstance(event, TextEvent):
            if event.final and event.text:
                await self.bus.publish_outbound(OutboundMessage(
                    channel=self.channel,
                    chat_id=self.chat_id,
                    content=event.text,
                ))
            return

        if isinstance(event, ErrorEvent):
            logger.error(f"Error: {event.error}")
            return

        if isinstance(event, DisconnectEvent):
            logger.debug(f"Backend session for {self.channel}:{self.chat_id} disconnected: {event.reason}")
            if not self._destroyed:
                self._destroyed = True
                self._on_destroy(self)
