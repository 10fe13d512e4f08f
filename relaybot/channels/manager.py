"""
渠道管理器模块 - 统一管理消息渠道的生命周期和出站消息路由。

本模块负责：
1. 根据配置初始化渠道（目前只有 Discord）
2. 统一启动/停止所有渠道
3. 运行出站消息分发器，将后端会话的回复路由到正确的渠道

【核心设计：出站消息分发】
ChannelManager 内部运行一个异步分发器任务（_dispatch_outbound），
不断从消息总线消费 OutboundMessage，根据 msg.channel 字段路由到
对应的渠道实例进行发送。

【Java 开发者类比】
- _dispatch_outbound() 相当于 JMS/Kafka 的 MessageListener 消费循环
"""

from __future__ import annotations

import asyncio

from loguru import logger

from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.config.schema import Config


class ChannelManager:
    """
    渠道管理器。

    属性:
        config: 全局配置对象
        bus: 消息总线实例
        channels: 已初始化的渠道字典 {渠道名: 渠道实例}
        _dispatch_task: 出站消息分发器的异步任务句柄
    """

    def __init__(self, config: Config, bus: MessageBus, channels: dict[str, BaseChannel] | None = None):
        """
        参数:
            config: 全局配置对象
            bus: 消息总线实例，所有渠道共享
            channels: 预先构造好的渠道（测试用）；为 None 时按配置初始化
        """
        self.config = config
        self.bus = bus
        self.channels: dict[str, BaseChannel] = {}
        self._dispatch_task: asyncio.Task | None = None

        if channels is None:
            self._init_channels()
        else:
            self.channels.update(channels)

    def _init_channels(self) -> None:
        """根据配置初始化渠道。"""
        from relaybot.channels.discord import DiscordChannel

        self.channels["discord"] = DiscordChannel(self.config.discord, self.bus)
        logger.info("Discord channel enabled")

    async def _start_channel(self, name: str, channel: BaseChannel) -> None:
        """启动单个渠道，一个渠道的启动失败不影响其他渠道。"""
        try:
            await channel.start()
        except Exception as e:
            logger.error(f"Failed to start channel {name}: {e}")

    async def start_all(self) -> None:
        """
        启动所有渠道和出站消息分发器。

        先启动分发器（确保回复能被路由），再并行启动所有渠道。
        渠道的 start() 是长期运行的任务，本方法会一直等待到它们结束。
        """
        if not self.channels:
            logger.warning("No channels enabled")
            return

        self._dispatch_task = asyncio.create_task(self._dispatch_outbound())

        tasks = []
        for name, channel in self.channels.items():
            logger.info(f"Starting {name} channel...")
            tasks.append(asyncio.create_task(self._start_channel(name, channel)))

        await asyncio.gather(*tasks, return_exceptions=True)

    async def stop_all(self) -> None:
        """停止分发器和所有渠道。"""
        logger.info("Stopping all channels...")

        if self._dispatch_task:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        for name, channel in self.channels.items():
            try:
                await channel.stop()
                logger.info(f"Stopped {name} channel")
            except Exception as e:
                logger.error(f"Error stopping {name}: {e}")

    async def _dispatch_outbound(self) -> None:
        """
        出站消息分发器 - 持续运行的消息路由循环。

        从总线消费 OutboundMessage（1秒超时），按 msg.channel 找到渠道并发送；
        单条消息发送失败只记录日志，不影响后续消息。
        """
        logger.info("Outbound dispatcher started")

        while True:
            try:
                msg = await asyncio.wait_for(self.bus.consume_outbound(), timeout=1.0)

                channel = self.channels.get(msg.channel)
                if channel:
                    try:
                        await channel.send(msg)
                    except Exception as e:
                        logger.error(f"Error sending to {msg.channel}: {e}")
                else:
                    logger.warning(f"Unknown channel: {msg.channel}")

            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    @property
    def enabled_channels(self) -> list[str]:
        """已启用的渠道名称列表。"""
        return list(self.channels.keys())
