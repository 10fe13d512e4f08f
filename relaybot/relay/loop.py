"""
中继主循环模块 - 从消息总线消费入站消息并交给连接管理器路由。

处理流程：
  InboundMessage → ConnectionManager.route_message() → 后端会话.send_text()

回复不经过这里：后端会话通过 SessionAdapter 直接把回复发布到出站队列。
"""

import asyncio

from loguru import logger

from relaybot.bus.events import InboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.relay.connections import ConnectionManager
from relaybot.utils.helpers import truncate_string


class RelayLoop:
    """
    中继主循环。

    属性:
        bus: 消息总线
        connections: 连接管理器
        _running: 运行状态标志
    """

    def __init__(self, bus: MessageBus, connections: ConnectionManager):
        self.bus = bus
        self.connections = connections
        self._running = False

    async def run(self) -> None:
        """
        持续从消息总线消费并路由消息。

        通过 asyncio.wait_for 设置1秒超时实现非阻塞轮询，
        以便 stop() 之后能及时退出。
        """
        self._running = True
        logger.info("Relay loop started")

        while self._running:
            try:
                msg = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            if not self._running:
                # 关闭过程中到达的消息不再建立新会话
                logger.debug(f"Relay loop stopped, dropping message from {msg.session_key}")
                break

            try:
                self.process_message(msg)
            except Exception as e:
                logger.error(f"Error routing message from {msg.session_key}: {e}")

    def stop(self) -> None:
        """停止主循环，将在下次轮询超时时退出。"""
        self._running = False
        logger.info("Relay loop stopping")

    def process_message(self, msg: InboundMessage) -> asyncio.Future | None:
        """
        路由单条入站消息。

        返回:
            文本发送的完成信号；空消息不转发，返回 None
        """
        if not msg.content:
            logger.debug(f"Skipping empty message from {msg.session_key}")
            return None

        preview = truncate_string(msg.content, 80)
        kind = "direct" if msg.is_direct else "channel"
        logger.info(f"Relaying {kind} message from {msg.channel}:{msg.sender_id}: {preview}")

        return self.connections.route_message(
            msg.content,
            msg.chat_id,
            msg.is_direct,
            channel=msg.channel,
        )
