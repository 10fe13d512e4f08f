"""
渠道基类模块 - 定义所有消息渠道的统一接口。

【核心抽象方法】
- start(): 启动渠道，开始监听消息（长期运行的异步任务）
- stop(): 停止渠道，释放资源（断开与平台的连接）
- send(): 向渠道发送出站消息

【公共能力】
- is_allowed(): 基于白名单的权限控制
- _handle_message(): 权限检查 → 构造 InboundMessage → 发布到总线

【Java 开发者类比】
- BaseChannel 相当于 Java 的 abstract class
- _handle_message() 相当于 Template Method 模式中的模板方法
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from relaybot.bus.events import InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus


class BaseChannel(ABC):
    """
    消息渠道抽象基类。

    属性:
        name: 渠道标识名（如 "discord"），用于出站消息路由
        config: 渠道特定的配置对象
        bus: 消息总线实例
        _running: 渠道运行状态标志
    """

    name: str = "base"  # 子类必须覆盖此属性为具体渠道名

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """
        启动渠道并开始监听消息。

        这应该是一个长期运行的异步任务：连接平台、持续监听，
        收到需要转发的消息后调用 _handle_message()。
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道，断开与平台的连接并释放资源。"""
        pass

    @abstractmethod
    async def send(self, msg: OutboundMessage) -> None:
        """
        通过该渠道发送出站消息。

        参数:
            msg: 出站消息对象，包含目标聊天 ID 和消息内容
        """
        pass

    def is_allowed(self, sender_id: str) -> bool:
        """
        检查发送者是否有权限使用该机器人。

        白名单为空 → 允许所有人；非空 → 只允许名单中的用户。
        """
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return str(sender_id) in allow_list

    async def _handle_message(
        self,
        sender_id: str,
        chat_id: str,
        content: str,
        is_direct: bool = False,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        处理来自聊天平台的入站消息（模板方法）。

        参数:
            sender_id: 发送者标识符（平台用户 ID）
            chat_id: 聊天/频道标识符（回复发往这里）
            content: 要转发给后端的文本
            is_direct: 是否为一对一私聊
            metadata: 可选的渠道特定元数据
        """
        if not self.is_allowed(sender_id):
            logger.warning(
                f"Access denied for sender {sender_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return

        msg = InboundMessage(
            channel=self.name,
            sender_id=str(sender_id),
            chat_id=str(chat_id),
            content=content,
            is_direct=is_direct,
            metadata=metadata or {},
        )

        await self.bus.publish_inbound(msg)

    @property
    def is_running(self) -> bool:
        """渠道是否已启动且正在监听消息。"""
        return self._running
