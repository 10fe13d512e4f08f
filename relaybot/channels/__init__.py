"""
消息渠道模块 - 聊天平台接入层。

- base.py：渠道抽象基类（启动/停止/发送 + 白名单 + 入站消息发布）
- discord.py：Discord Gateway 渠道（事件监听器）
- manager.py：渠道生命周期与出站消息分发
"""

from relaybot.channels.base import BaseChannel
from relaybot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
