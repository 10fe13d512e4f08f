"""
Inworld 对话后端实现模块 - 基于 REST 鉴权 + WebSocket 会话。

【核心功能】
1. 使用 API Key/Secret 生成 IW1-HMAC-SHA256 签名，换取会话令牌（httpx）
2. 首次发送文本时才建立 WebSocket 连接（懒连接），连接后先加载场景
3. 读取循环把每个数据包解析为 SessionEvent，按到达顺序投递给处理函数
4. 可选的空闲断开：收发任何数据包都会重置计时器，超时后自动关闭会话
5. 连接丢失/主动关闭时恰好投递一次 DisconnectEvent

【数据包格式（JSON）】
- 文本：{"text": {"text": "...", "final": true}}
- 控制：{"control": {"type": "INTERACTION_END"}}
- 错误：{"error": {"message": "..."}}
服务端可能把数据包包在 {"result": {...}} 里，解析时会先解开。

【Java 开发者类比】
- InworldBackend 类似于持有 HttpClient 的工厂 Bean
- InworldSession 类似于一个 WebSocketClient + ScheduledFuture（空闲计时器）
"""

import asyncio
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

import httpx
import websockets
from loguru import logger

from relaybot.backend.base import (
    ConversationBackend,
    ConversationSession,
    DisconnectEvent,
    ErrorEvent,
    InteractionEndEvent,
    SessionEvent,
    SessionHandler,
    SessionOptions,
    TextEvent,
    UnknownEvent,
    done_future,
)
from relaybot.config.schema import InworldConfig
from relaybot.errors import BackendError


TOKEN_PATH = "/auth/v1/tokens/token:generate"
SIGNED_METHOD = "ai.inworld.engine.WorldEngine/GenerateToken"


def build_auth_header(
    key: str,
    secret: str,
    host: str,
    now: datetime | None = None,
    nonce: str | None = None,
) -> str:
    """
    生成令牌接口所需的 Authorization 请求头。

    签名方式：以 "IW1" + secret 为初始密钥，依次对 时间戳、主机、方法、nonce、
    "iw1_request" 做链式 HMAC-SHA256，最后一轮结果的十六进制即签名。

    参数:
        key: API Key
        secret: API Secret
        host: 鉴权服务主机名（含端口）
        now: 签名时间（测试时固定），默认当前 UTC 时间
        nonce: 随机串（测试时固定），默认 11 位随机十六进制

    返回:
        形如 "IW1-HMAC-SHA256 ApiKey=...,DateTime=...,Nonce=...,Signature=..." 的字符串
    """
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M%S")
    nonce = nonce or secrets.token_hex(6)[:11]

    digest = f"IW1{secret}".encode()
    for part in (stamp, host, SIGNED_METHOD, nonce, "iw1_request"):
        digest = hmac.new(digest, part.encode(), hashlib.sha256).digest()

    return (
        f"IW1-HMAC-SHA256 ApiKey={key},DateTime={stamp},"
        f"Nonce={nonce},Signature={digest.hex()}"
    )


def workspace_of(scene: str) -> str:
    """从场景资源名中取出工作区部分: "workspaces/w/characters/c" → "workspaces/w"。"""
    parts = scene.split("/")
    if len(parts) >= 2 and parts[0] == "workspaces":
        return "/".join(parts[:2])
    return scene


def parse_packet(data: Any) -> SessionEvent:
    """
    将后端数据包解析为 SessionEvent。

    参数:
        data: 已反序列化的 JSON 值（非对象的帧按未知数据包处理）

    返回:
        TextEvent / InteractionEndEvent / ErrorEvent / UnknownEvent 之一
    """
    if not isinstance(data, dict):
        return UnknownEvent({"value": data})

    packet = data.get("result", data)
    if not isinstance(packet, dict):
        return UnknownEvent(data)

    for source in (data, packet):
        if "error" in source:
            error = source["error"] or {}
            message = error.get("message") if isinstance(error, dict) else str(error)
            return ErrorEvent(BackendError(message or "unknown backend error"))

    text = packet.get("text")
    if isinstance(text, dict):
        return TextEvent(text=text.get("text", ""), final=bool(text.get("final", False)))

    control = packet.get("control")
    if isinstance(control, dict) and control.get("type") == "INTERACTION_END":
        return InteractionEndEvent()

    return UnknownEvent(packet)


class InworldBackend(ConversationBackend):
    """
    Inworld 对话后端 - 会话工厂，同时持有鉴权用的 HTTP 客户端。

    属性:
        config: 后端配置（Key、Secret、场景、接口地址）
        _http: 共享的异步 HTTP 客户端（首次使用时创建）
    """

    def __init__(self, config: InworldConfig, http: httpx.AsyncClient | None = None):
        self.config = config
        self._http = http

    def create_session(self, options: SessionOptions, handler: SessionHandler) -> "InworldSession":
        return InworldSession(self, options, handler)

    async def generate_token(self) -> dict[str, Any]:
        """
        调用鉴权接口换取会话令牌。

        返回:
            响应 JSON，至少包含 token 和 sessionId

        异常:
            BackendError: 网络错误或非 2xx 响应
        """
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=30.0)

        host = urlparse(self.config.api_base).netloc
        headers = {"Authorization": build_auth_header(self.config.api_key, self.config.api_secret, host)}
        payload = {"key": self.config.api_key, "resources": [workspace_of(self.config.scene)]}

        try:
            response = await self._http.post(
                f"{self.config.api_base}{TOKEN_PATH}", headers=headers, json=payload
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise BackendError(f"Token request failed: {e}") from e
        return response.json()

    def session_url(self, session_id: str) -> str:
        return f"{self.config.ws_base}/v1/session/open?session_id={session_id}"

    async def aclose(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None


class InworldSession(ConversationSession):
    """
    单个 Inworld 会话。

    状态：
    - 未连接：创建后到首次 send_text 之前
    - 已连接：WebSocket 打开，读取循环运行中
    - 已关闭：close() 被调用或连接丢失；之后的发送会被忽略

    属性:
        options: 会话参数（场景、音频能力、空闲断开时间）
        _handler: 事件处理函数
        _ws: WebSocket 连接
        _reader_task: 读取循环任务
        _idle_task: 空闲断开计时任务
    """

    def __init__(self, backend: InworldBackend, options: SessionOptions, handler: SessionHandler):
        self._backend = backend
        self.options = options
        self._handler = handler
        self._ws = None
        self._reader_task: asyncio.Task | None = None
        self._idle_task: asyncio.Task | None = None
        self._connect_lock = asyncio.Lock()
        self._closed = False
        self._disconnected = False

    @property
    def is_active(self) -> bool:
        return self._ws is not None and not self._closed

    def send_text(self, text: str) -> asyncio.Future:
        if self._closed:
            logger.debug("Ignoring text for closed session")
            return done_future()
        return asyncio.create_task(self._send_text(text))

    def close(self) -> asyncio.Future:
        if self._closed:
            return done_future()
        # 先同步标记关闭，之后的 is_active 立即为 False
        self._closed = True
        self._cancel_idle()
        return asyncio.create_task(self._shutdown())

    async def _send_text(self, text: str) -> None:
        packet = {
            "type": "TEXT",
            "text": {"sourceType": "TYPED_IN", "text": text, "final": True},
            "routing": {"source": {"type": "PLAYER"}, "target": {"type": "AGENT"}},
        }
        try:
            ws = await self._ensure_connected()
        except Exception as e:
            # 连接失败：报告错误后结束会话，交由持有者清理
            await self._emit(ErrorEvent(e))
            self._closed = True
            await self._emit(DisconnectEvent(f"connect failed: {e}"))
            return

        try:
            await ws.send(json.dumps(packet))
            self._touch()
        except Exception as e:
            await self._emit(ErrorEvent(e))

    async def _ensure_connected(self):
        """建立连接（已连接时直接返回现有连接）。"""
        async with self._connect_lock:
            if self._ws is not None:
                return self._ws
            if self._closed:
                raise BackendError("Session already closed")

            token = await self._backend.generate_token()
            ws = await websockets.connect(
                self._backend.session_url(token.get("sessionId", "")),
                additional_headers={"Authorization": f"Bearer {token.get('token', '')}"},
            )
            try:
                if self._closed:
                    raise BackendError("Session closed while connecting")
                await ws.send(json.dumps({
                    "control": {"action": "LOAD_SCENE"},
                    "scene": self.options.scene,
                    "capabilities": {"audio": self.options.audio, "text": True},
                }))
            except Exception:
                # 连接已建立但未交给读取循环，必须在这里关闭
                await ws.close()
                raise

            self._ws = ws
            self._reader_task = asyncio.create_task(self._read_loop(ws))
            self._touch()
            logger.debug(f"Connected backend session for scene {self.options.scene}")
            return ws

    async def _read_loop(self, ws) -> None:
        """读取循环：逐个解析并投递数据包，连接结束后投递 DisconnectEvent。"""
        reason = "closed"
        try:
            async for raw in ws:
                self._touch()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Invalid JSON from backend: {str(raw)[:100]}")
                    continue
                try:
                    event = parse_packet(data)
                except Exception as e:
                    # 单个坏数据包不能结束会话
                    logger.warning(f"Unparseable packet from backend: {e}")
                    continue
                await self._emit(event)
        except websockets.ConnectionClosed as e:
            reason = str(e)
        except Exception as e:
            reason = str(e)
            await self._emit(ErrorEvent(e))

        self._closed = True
        self._ws = None
        self._cancel_idle()
        await self._emit(DisconnectEvent(reason))

    async def _shutdown(self) -> None:
        ws = self._ws
        if ws is not None:
            # 读取循环随连接关闭而结束，并负责投递 DisconnectEvent
            await ws.close()
        else:
            await self._emit(DisconnectEvent("closed before connect"))

    def _touch(self) -> None:
        """有数据收发时重置空闲计时器。"""
        if self.options.disconnect_timeout is None or self._closed:
            return
        self._cancel_idle()
        self._idle_task = asyncio.create_task(self._idle_close(self.options.disconnect_timeout))

    async def _idle_close(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._idle_task = None
        logger.debug(f"Backend session idle for {delay}s, closing")
        self.close()

    def _cancel_idle(self) -> None:
        if self._idle_task:
            self._idle_task.cancel()
            self._idle_task = None

    async def _emit(self, event: SessionEvent) -> None:
        """投递事件；断开事件之后不再投递任何事件。处理函数的异常只记录不传播。"""
        if self._disconnected:
            return
        if isinstance(event, DisconnectEvent):
            self._disconnected = True
        try:
            await self._handler(event)
        except Exception as e:
            logger.error(f"Error handling backend event {type(event).__name__}: {e}")
