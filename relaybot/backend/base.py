"""
对话后端基类定义模块。

本模块定义了中继层与对话后端交互的抽象接口：
- SessionEvent    : 后端推送给会话持有者的事件（标签联合类型）
- SessionOptions  : 创建会话时的能力与连接参数
- ConversationSession : 单个后端会话句柄（发送文本、关闭、查询是否活跃）
- ConversationBackend : 会话工厂

架构角色：
  SessionAdapter → ConversationSession.send_text() → 后端
  后端 → SessionEvent → SessionAdapter.handle()

所有事件都通过同一个处理函数（SessionHandler）按后端发出的顺序逐个投递，
持有者只需对事件类型做一次分派，不存在嵌套回调。

类比 Java：
  - SessionEvent 相当于 sealed interface + record 子类型
  - ConversationBackend 相当于一个工厂 interface
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable


@dataclass
class TextEvent:
    """文本回复包。final=False 表示中间结果，只有最终结果才会转发到聊天渠道。"""
    text: str
    final: bool = True


@dataclass
class InteractionEndEvent:
    """回合结束信号：后端本轮回复已全部发出。"""


@dataclass
class ErrorEvent:
    """传输层/后端运行时错误。会话不会因此关闭。"""
    error: Exception


@dataclass
class DisconnectEvent:
    """会话已断开（任何原因：主动关闭、空闲超时、连接丢失）。每个会话恰好投递一次。"""
    reason: str = ""


@dataclass
class UnknownEvent:
    """其他类型的数据包（情绪、动作、音频等），持有者直接忽略。"""
    data: dict[str, Any] = field(default_factory=dict)


SessionEvent = TextEvent | InteractionEndEvent | ErrorEvent | DisconnectEvent | UnknownEvent
SessionHandler = Callable[[SessionEvent], Awaitable[None]]


@dataclass
class SessionOptions:
    """
    会话创建参数。

    属性：
        scene: 场景/角色资源名
        audio: 是否启用音频能力（中继只处理文本，默认关闭）
        disconnect_timeout: 空闲断开时间（秒），None 表示不自动断开
    """
    scene: str
    audio: bool = False
    disconnect_timeout: float | None = None


def done_future(result: Any = None) -> asyncio.Future:
    """返回一个已完成的 Future，用于"无需执行"的即发即弃操作。"""
    fut = asyncio.get_running_loop().create_future()
    fut.set_result(result)
    return fut


class ConversationSession(ABC):
    """
    对话后端会话句柄。

    send_text() 与 close() 都是非阻塞的：立即返回一个可等待对象，
    生产代码不等待它（即发即弃），测试可以 await 它确认完成。
    """

    @abstractmethod
    def send_text(self, text: str) -> asyncio.Future:
        """发送一段用户文本。"""
        pass

    @abstractmethod
    def close(self) -> asyncio.Future:
        """关闭会话。完成后持有者会收到一次 DisconnectEvent。"""
        pass

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """会话是否仍处于打开状态。"""
        pass


class ConversationBackend(ABC):
    """对话后端抽象基类：负责创建会话并管理共享资源（如 HTTP 客户端）。"""

    @abstractmethod
    def create_session(self, options: SessionOptions, handler: SessionHandler) -> ConversationSession:
        """
        创建一个新会话（不立即连接）。

        参数：
            options: 会话参数
            handler: 事件处理函数，所有 SessionEvent 都按顺序投递给它
        """
        pass

    async def aclose(self) -> None:
        """释放后端持有的共享资源。默认无事可做。"""
        return None
