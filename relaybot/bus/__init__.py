"""
消息总线模块 - 实现渠道与中继核心之间的解耦通信。

消息流向：
  Discord 消息 → 渠道(Channel) → InboundMessage → 消息总线 → RelayLoop
  后端回复 → SessionAdapter → OutboundMessage → 消息总线 → 渠道(Channel) → Discord

【Java 开发者类比】
- MessageBus 类似于 Spring 的 ApplicationEventPublisher + @EventListener
- InboundMessage / OutboundMessage 类似于入站/出站 DTO
"""

from relaybot.bus.events import InboundMessage, OutboundMessage
from relaybot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
