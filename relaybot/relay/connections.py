"""
连接管理器模块 - 按会话 ID 路由消息到后端会话。

持有两个连接池（都以字符串为键，值为 SessionAdapter）：
- channel_sessions：群聊一次性会话。每条触发消息生成一个随机键、一个新会话，
  回合结束或断开时销毁，互不影响。
- direct_sessions：私聊持久会话。每个私聊频道一个会话，跨消息复用，
  只在断开、被淘汰或进程关闭时销毁。

【不变式】
- 一个会话句柄任一时刻至多存在于一个连接池中
- len(direct_sessions) <= max_direct_sessions；满时插入新键前先淘汰
  最早插入的键（按 dict 插入顺序，不是 LRU）
- 会话关闭后必定从所属连接池移除；销毁回调只移除"仍是自己"的条目，
  已被淘汰的旧会话迟到的断开事件不会误删同键的新会话
- 移除总是先于关闭：任何代码都不会在连接池里看到正在关闭的会话

【Java 开发者类比】
- 类似一个手写的 LinkedHashMap(insertion-order) + removeEldestEntry() 淘汰策略
"""

import asyncio

from loguru import logger

from relaybot.backend.base import ConversationBackend, SessionOptions
from relaybot.bus.queue import MessageBus
from relaybot.relay.adapter import SessionAdapter
from relaybot.utils.helpers import new_session_key


class ConnectionManager:
    """
    连接管理器 - 启动时构造一次，传给 RelayLoop 和 Lifecycle 共用。

    属性:
        backend: 对话后端（会话工厂）
        bus: 消息总线，回复经由它发回渠道
        scene: 后端场景资源名
        max_direct_sessions: 私聊连接池上限
        shared_disconnect_timeout: 群聊会话空闲断开时间（秒）
        channel_sessions: 群聊会话池 {随机键: 适配器}
        direct_sessions: 私聊会话池 {聊天 ID: 适配器}
    """

    def __init__(
        self,
        backend: ConversationBackend,
        bus: MessageBus,
        scene: str,
        max_direct_sessions: int = 50,
        shared_disconnect_timeout: float = 5.0,
    ):
        self.backend = backend
        self.bus = bus
        self.scene = scene
        self.max_direct_sessions = max_direct_sessions
        self.shared_disconnect_timeout = shared_disconnect_timeout
        self.channel_sessions: dict[str, SessionAdapter] = {}
        self.direct_sessions: dict[str, SessionAdapter] = {}

    def route_message(
        self,
        text: str,
        conversation_id: str,
        is_direct: bool,
        channel: str = "discord",
    ) -> asyncio.Future:
        """
        把一条消息路由到后端会话并转发文本。

        - 群聊：总是新建会话（随机键），不复用
        - 私聊：复用该聊天 ID 的会话；没有时新建，连接池满则先淘汰最早的一个

        参数:
            text: 要转发的文本
            conversation_id: 聊天 ID（回复发往这里）
            is_direct: 是否为私聊
            channel: 回复发往的渠道名

        返回:
            文本发送的完成信号；生产代码不等待它
        """
        if not is_direct:
            key = new_session_key()
            adapter = self._create_session(
                channel,
                conversation_id,
                direct=False,
                on_destroy=lambda a: self.destroy_channel(key, a),
            )
            self.channel_sessions[key] = adapter
            return adapter.send_text(text)

        adapter = self.direct_sessions.get(conversation_id)
        if adapter is None:
            if len(self.direct_sessions) >= self.max_direct_sessions:
                oldest = next(iter(self.direct_sessions))
                logger.info(f"Direct session pool full ({self.max_direct_sessions}), evicting {oldest}")
                self.destroy_direct(oldest)

            adapter = self._create_session(
                channel,
                conversation_id,
                direct=True,
                on_destroy=lambda a: self.destroy_direct(conversation_id, a),
            )
            self.direct_sessions[conversation_id] = adapter

        return adapter.send_text(text)

    def _create_session(self, channel, chat_id, direct, on_destroy) -> SessionAdapter:
        options = SessionOptions(
            scene=self.scene,
            audio=False,
            disconnect_timeout=None if direct else self.shared_disconnect_timeout,
        )
        logger.debug(f"Creating {'direct' if direct else 'channel'} session for {channel}:{chat_id}")
        return SessionAdapter(
            self.backend,
            self.bus,
            options,
            channel=channel,
            chat_id=chat_id,
            direct=direct,
            on_destroy=on_destroy,
        )

    def destroy_direct(self, key: str, adapter: SessionAdapter | None = None) -> asyncio.Future | None:
        """移除并关闭一个私聊会话。给定 adapter 时，仅当池中仍是它才移除。"""
        return self._destroy(self.direct_sessions, key, adapter)

    def destroy_channel(self, key: str, adapter: SessionAdapter | None = None) -> asyncio.Future | None:
        """移除并关闭一个群聊会话。给定 adapter 时，仅当池中仍是它才移除。"""
        return self._destroy(self.channel_sessions, key, adapter)

    def _destroy(
        self,
        pool: dict[str, SessionAdapter],
        key: str,
        adapter: SessionAdapter | None,
    ) -> asyncio.Future | None:
        current = pool.get(key)
        if current is None or (adapter is not None and current is not adapter):
            return None
        del pool[key]
        # 对已关闭的会话 close() 是空操作
        return current.close()

    async def close_all(self) -> None:
        """关闭并移除两个连接池中的所有会话，等待关闭完成。"""
        logger.info(
            f"Closing {len(self.direct_sessions)} direct and "
            f"{len(self.channel_sessions)} channel sessions"
        )
        pending = []
        for key in list(self.direct_sessions):
            pending.append(self.destroy_direct(key))
        for key in list(self.channel_sessions):
            pending.append(self.destroy_channel(key))
        await asyncio.gather(*(p for p in pending if p is not None), return_exceptions=True)

    @property
    def session_count(self) -> int:
        """两个连接池中的会话总数。"""
        return len(self.direct_sessions) + len(self.channel_sessions)
