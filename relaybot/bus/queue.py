"""
异步消息队列模块 - 消息总线的核心实现。

采用生产者-消费者模式，基于 asyncio.Queue 实现异步消息传递：

入站流程（Discord → 后端）：
  DiscordChannel → publish_inbound() → inbound 队列 → consume_inbound() → RelayLoop

出站流程（后端 → Discord）：
  SessionAdapter → publish_outbound() → outbound 队列 → consume_outbound() → ChannelManager

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- publish/consume 模式类似于 Java 的 BlockingQueue.put()/take()
"""

import asyncio

from relaybot.bus.events import InboundMessage, OutboundMessage


class MessageBus:
    """
    异步消息总线 - 解耦聊天渠道与中继核心的通信中枢。

    属性:
        inbound: 入站消息异步队列（渠道 → RelayLoop）
        outbound: 出站消息异步队列（SessionAdapter → 渠道）
    """

    def __init__(self):
        """初始化消息总线，创建入站和出站两个异步队列。"""
        self.inbound: asyncio.Queue[InboundMessage] = asyncio.Queue()    # 入站队列
        self.outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()  # 出站队列

    async def publish_inbound(self, msg: InboundMessage) -> None:
        """
        发布入站消息（渠道 → RelayLoop）。

        参数:
            msg: 入站消息对象
        """
        await self.inbound.put(msg)

    async def consume_inbound(self) -> InboundMessage:
        """消费下一条入站消息，队列为空时异步阻塞直到有新消息到达。"""
        return await self.inbound.get()

    async def publish_outbound(self, msg: OutboundMessage) -> None:
        """
        发布出站消息（后端会话 → 渠道）。

        参数:
            msg: 出站消息对象
        """
        await self.outbound.put(msg)

    async def consume_outbound(self) -> OutboundMessage:
        """消费下一条出站消息（由 ChannelManager 的分发循环调用）。"""
        return await self.outbound.get()

    @property
    def inbound_size(self) -> int:
        """待处理的入站消息数量。"""
        return self.inbound.qsize()

    @property
    def outbound_size(self) -> int:
        """待分发的出站消息数量。"""
        return self.outbound.qsize()
