"""
Discord 渠道实现模块 - 基于 Discord Gateway WebSocket 协议。

本模块是中继的"事件监听器"：直接使用 Discord Gateway WebSocket API
接收消息，通过 REST API 发送回复。

【核心功能】
1. 通过 WebSocket 连接 Discord Gateway 接收实时消息
2. 自动心跳保活（HEARTBEAT），断线自动重连（5秒延迟）
3. 过滤机器人自己（以及其他机器人）发出的消息，防止回复循环
4. 区分私聊（无 guild_id）与服务器频道：
   - 私聊：总是转发
   - 服务器频道：仅当 @机器人 或包含触发关键词时转发
5. 转发前去掉文本中机器人自己的 @提及
6. 通过 REST API 发送回复（超长回复自动拆分，支持速率限制重试）

【Discord Gateway 协议简述】
- op=10 (HELLO): 服务器下发心跳间隔，客户端开始心跳 + 身份验证
- op=2 (IDENTIFY): 客户端发送 token 进行身份验证
- op=0 (DISPATCH): 服务器推送事件（READY、MESSAGE_CREATE 等）
- op=1 (HEARTBEAT): 心跳包
- op=7 (RECONNECT): 服务器要求重连
- op=9 (INVALID SESSION): 会话无效，需要重新连接
"""

import asyncio
import json
from typing import Any

import httpx
import websockets
from loguru import logger

from relaybot.bus.events import OutboundMessage
from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.config.schema import DiscordConfig
from relaybot.utils.helpers import split_message


# Discord REST API 基础 URL（v10 版本）
DISCORD_API_BASE = "https://discord.com/api/v10"
# 单条消息最大字符数
DISCORD_MAX_MESSAGE_LEN = 2000


def strip_mention(content: str, bot_id: str | None) -> str:
    """
    去掉文本中机器人自己的 @提及（<@id> 与昵称形式 <@!id>）。

    参数:
        content: 原始消息文本
        bot_id: 机器人用户 ID，未知时原样返回

    返回:
        去除提及并修剪首尾空白后的文本
    """
    if not bot_id:
        return content
    for token in (f"<@{bot_id}>", f"<@!{bot_id}>"):
        content = content.replace(token, "")
    return content.strip()


class DiscordChannel(BaseChannel):
    """
    Discord 渠道实现 - 基于 Gateway WebSocket 协议。

    属性:
        config: Discord 渠道配置（token、gateway URL、intents、触发关键词等）
        bot_user_id: 机器人自己的用户 ID（READY 事件中获得）
        _ws: WebSocket 连接实例
        _seq: 最新的事件序列号（用于心跳）
        _heartbeat_task: 心跳定时任务
        _http: HTTP 异步客户端（用于 REST API 调用）
    """

    name = "discord"

    def __init__(self, config: DiscordConfig, bus: MessageBus):
        super().__init__(config, bus)
        self.config: DiscordConfig = config
        self.bot_user_id: str | None = None
        self._ws: websockets.ClientConnection | None = None
        self._seq: int | None = None  # Gateway 事件序列号，心跳时需要回传
        self._heartbeat_task: asyncio.Task | None = None
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """
        启动 Discord Gateway 连接。

        采用外层无限循环实现断线自动重连：
        连接断开后等待5秒重新连接，直到 _running 被设为 False。
        """
        if not self.config.token:
            logger.error("Discord bot token not configured")
            return

        self._running = True
        self._http = httpx.AsyncClient(timeout=30.0)

        while self._running:
            try:
                logger.info("Connecting to Discord gateway...")
                async with websockets.connect(self.config.gateway_url) as ws:
                    self._ws = ws
                    await self._gateway_loop()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Discord gateway error: {e}")
            if self._running:
                logger.info("Reconnecting to Discord gateway in 5 seconds...")
                await asyncio.sleep(5)

    async def stop(self) -> None:
        """
        停止 Discord 渠道。

        按顺序清理：心跳任务 → WebSocket → HTTP 客户端。
        """
        self._running = False
        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        if self._ws:
            await self._ws.close()
            self._ws = None
        if self._http:
            await self._http.aclose()
            self._http = None

    async def send(self, msg: OutboundMessage) -> None:
        """
        通过 Discord REST API 发送消息，超过 2000 字符的回复拆成多条依次发送。

        参数:
            msg: 出站消息对象，chat_id 为 Discord 频道 ID
        """
        if not self._http:
            logger.warning("Discord HTTP client not initialized")
            return

        url = f"{DISCORD_API_BASE}/channels/{msg.chat_id}/messages"
        for chunk in split_message(msg.content, DISCORD_MAX_MESSAGE_LEN):
            if not await self._post_message(url, {"content": chunk}):
                break

    async def _post_message(self, url: str, payload: dict[str, Any]) -> bool:
        """发送单条消息，处理速率限制，最多尝试3次。返回是否成功。"""
        headers = {"Authorization": f"Bot {self.config.token}"}

        for attempt in range(3):
            try:
                response = await self._http.post(url, headers=headers, json=payload)
                if response.status_code == 429:
                    # 429 = 速率限制，按服务器指示的时间等待后重试
                    data = response.json()
                    retry_after = float(data.get("retry_after", 1.0))
                    logger.warning(f"Discord rate limited, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue
                response.raise_for_status()
                return True
            except Exception as e:
                if attempt == 2:
                    logger.error(f"Error sending Discord message: {e}")
                else:
                    await asyncio.sleep(1)
        return False

    async def _gateway_loop(self) -> None:
        """
        Gateway 主消息循环 - 按操作码（opcode）分发 WebSocket 消息。

        - op=10 (HELLO): 启动心跳 + 发送身份验证
        - op=0 (DISPATCH): 分发事件（READY、MESSAGE_CREATE）
        - op=7 / op=9: 退出循环触发重连
        """
        if not self._ws:
            return

        async for raw in self._ws:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from Discord gateway: {raw[:100]}")
                continue

            op = data.get("op")
            event_type = data.get("t")
            seq = data.get("s")
            payload = data.get("d")

            if seq is not None:
                self._seq = seq

            if op == 10:
                interval_ms = payload.get("heartbeat_interval", 45000)
                await self._start_heartbeat(interval_ms / 1000)
                await self._identify()
            elif op == 0 and event_type == "READY":
                self.bot_user_id = str((payload.get("user") or {}).get("id", "")) or None
                logger.info(f"Discord gateway READY as {self.bot_user_id}")
            elif op == 0 and event_type == "MESSAGE_CREATE":
                await self._handle_message_create(payload)
            elif op == 7:
                logger.info("Discord gateway requested reconnect")
                break
            elif op == 9:
                logger.warning("Discord gateway invalid session")
                break

    async def _identify(self) -> None:
        """发送 IDENTIFY 消息进行身份验证。"""
        if not self._ws:
            return

        identify = {
            "op": 2,
            "d": {
                "token": self.config.token,
                "intents": self.config.intents,
                "properties": {
                    "os": "relaybot",
                    "browser": "relaybot",
                    "device": "relaybot",
                },
            },
        }
        await self._ws.send(json.dumps(identify))

    async def _start_heartbeat(self, interval_s: float) -> None:
        """
        启动或重启心跳循环。

        参数:
            interval_s: 心跳间隔（秒）
        """
        if self._heartbeat_task:
            self._heartbeat_task.cancel()

        async def heartbeat_loop() -> None:
            while self._running and self._ws:
                payload = {"op": 1, "d": self._seq}
                try:
                    await self._ws.send(json.dumps(payload))
                except Exception as e:
                    logger.warning(f"Discord heartbeat failed: {e}")
                    break
                await asyncio.sleep(interval_s)

        self._heartbeat_task = asyncio.create_task(heartbeat_loop())

    def _is_addressed(self, payload: dict[str, Any], content: str) -> bool:
        """服务器频道消息是否在叫机器人：@了机器人，或包含触发关键词。"""
        if not self.bot_user_id:
            return False
        mentions = payload.get("mentions") or []
        if any(str(m.get("id")) == self.bot_user_id for m in mentions):
            return True
        keyword = self.config.trigger_keyword
        return bool(keyword) and keyword in content

    async def _handle_message_create(self, payload: dict[str, Any]) -> None:
        """
        处理 MESSAGE_CREATE 事件（收到新消息）。

        处理流程：
        1. 过滤机器人消息（防止自我响应）
        2. 区分私聊 / 服务器频道，服务器频道需被点名才转发
        3. 去掉机器人的 @提及
        4. 经白名单检查后发布到消息总线

        参数:
            payload: Discord 消息事件的完整数据
        """
        author = payload.get("author") or {}
        if author.get("bot"):
            return  # 忽略机器人消息，防止自我响应循环

        sender_id = str(author.get("id", ""))
        channel_id = str(payload.get("channel_id", ""))
        content = payload.get("content") or ""

        if not sender_id or not channel_id:
            return

        # 私聊消息不带 guild_id
        is_direct = not payload.get("guild_id")
        if not is_direct and not self._is_addressed(payload, content):
            return

        await self._handle_message(
            sender_id=sender_id,
            chat_id=channel_id,
            content=strip_mention(content, self.bot_user_id),
            is_direct=is_direct,
            metadata={
                "message_id": str(payload.get("id", "")),
                "guild_id": payload.get("guild_id"),
            },
        )
