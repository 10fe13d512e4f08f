"""
消息事件类型定义模块 - 定义消息总线中传输的数据结构。

- InboundMessage：入站消息（从渠道到中继循环）
- OutboundMessage：出站消息（从后端会话到渠道）

【设计要点】
- is_direct 字段由渠道在入站时确定（私聊 / 群聊），中继层只依赖这个标志
  决定走"私聊连接池"还是"一次性群聊会话"，不再关心平台细节。
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class InboundMessage:
    """
    入站消息 - 从聊天渠道接收到、需要转发给对话后端的用户消息。

    属性:
        channel: 消息来源渠道标识（如 'discord'）
        sender_id: 发送者唯一标识（渠道内的用户 ID）
        chat_id: 聊天/频道唯一标识（回复发往这里）
        content: 已去除机器人 @提及 的消息文本
        is_direct: 是否为一对一私聊
        timestamp: 消息时间戳，默认为当前时间
        metadata: 渠道特有的附加数据（如 Discord 的 message_id、guild_id）
    """

    channel: str            # 来源渠道：discord
    sender_id: str          # 发送者 ID
    chat_id: str            # 聊天 ID：私聊频道或服务器频道
    content: str            # 转发给后端的文本
    is_direct: bool = False  # 私聊为 True，群聊/服务器频道为 False
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def session_key(self) -> str:
        """生成 "channel:chat_id" 格式的会话标识键，例如 "discord:123456"。"""
        return f"{self.channel}:{self.chat_id}"


@dataclass
class OutboundMessage:
    """
    出站消息 - 后端会话要发送到聊天渠道的回复。

    属性:
        channel: 目标渠道标识（决定消息发往哪个渠道）
        chat_id: 目标聊天/频道标识
        content: 回复文本内容
        metadata: 渠道特有的附加数据
    """

    channel: str                                                # 目标渠道标识
    chat_id: str                                                # 目标聊天 ID
    content: str                                                # 回复文本内容
    metadata: dict[str, Any] = field(default_factory=dict)      # 渠道特有的元数据
