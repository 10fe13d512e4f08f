"""
生命周期管理模块 - 启动全部服务，统一处理关闭。

关闭触发来源（全部走同一个 shutdown()）：
- SIGINT / SIGTERM / SIGUSR2 信号（平台不支持的信号自动跳过）
- 显式调用 request_shutdown()
- 未处理的异步异常（事件循环异常处理器、主任务异常退出）：
  额外把退出码置为 1

关闭顺序：停止中继循环 → 关闭所有后端会话 → 停止渠道（断开 Discord）→ 释放后端资源。
"""

import asyncio
import signal
from typing import Any

from loguru import logger

from relaybot.backend.base import ConversationBackend
from relaybot.channels.manager import ChannelManager
from relaybot.relay.connections import ConnectionManager
from relaybot.relay.loop import RelayLoop


SHUTDOWN_SIGNALS = ("SIGINT", "SIGTERM", "SIGUSR2")


class Lifecycle:
    """
    生命周期管理器。

    属性:
        exit_code: 进程退出码，发生未处理异常时为 1
    """

    def __init__(
        self,
        channels: ChannelManager,
        connections: ConnectionManager,
        relay: RelayLoop,
        backend: ConversationBackend,
    ):
        self.channels = channels
        self.connections = connections
        self.relay = relay
        self.backend = backend
        self.exit_code = 0
        self._shutdown_requested = asyncio.Event()
        self._stopped = False

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """在事件循环上注册信号处理器和异常处理器。"""
        for name in SHUTDOWN_SIGNALS:
            sig = getattr(signal, name, None)
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, self.request_shutdown, name)
            except (NotImplementedError, RuntimeError) as e:
                logger.debug(f"Cannot install handler for {name}: {e}")
        loop.set_exception_handler(self._on_unhandled)

    def request_shutdown(self, reason: str = "requested") -> None:
        """请求关闭（可从信号处理器或任意协程中调用）。"""
        logger.info(f"Shutdown requested ({reason})")
        self._shutdown_requested.set()

    def _on_unhandled(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        error = context.get("exception") or context.get("message")
        logger.error(f"Unhandled async failure: {error}")
        self.exit_code = 1
        self._shutdown_requested.set()

    def _watch(self, task: asyncio.Task) -> None:
        """主任务异常退出等同于未处理异常。"""
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._on_unhandled(task.get_loop(), {"exception": error})

    async def run(self, install_handlers: bool = True) -> int:
        """
        启动中继循环和渠道，阻塞直到收到关闭请求，然后执行关闭流程。

        参数:
            install_handlers: 是否注册信号/异常处理器（测试时关闭）

        返回:
            进程退出码
        """
        if install_handlers:
            self.install(asyncio.get_running_loop())

        tasks = [
            asyncio.create_task(self.relay.run()),
            asyncio.create_task(self.channels.start_all()),
        ]
        for task in tasks:
            task.add_done_callback(self._watch)

        await self._shutdown_requested.wait()
        await self.shutdown()

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return self.exit_code

    async def shutdown(self) -> None:
        """关闭所有会话和渠道连接。重复调用只执行一次。"""
        if self._stopped:
            return
        self._stopped = True

        self.relay.stop()
        await self.connections.close_all()
        await self.channels.stop_all()
        await self.backend.aclose()
        logger.info("Shutdown complete")
