"""
中继核心模块 - 连接池管理与会话生命周期。

- adapter.py：SessionAdapter，包装单个后端会话，把回复转成出站消息
- connections.py：ConnectionManager，私聊连接池 + 群聊一次性会话
- loop.py：RelayLoop，从总线消费入站消息并路由
- lifecycle.py：Lifecycle，信号处理与统一关闭流程

【二开提示】
ConnectionManager 在启动时构造一次，通过引用传给 RelayLoop 和 Lifecycle，
不存在模块级的全局连接池。
"""

from relaybot.relay.adapter import SessionAdapter
from relaybot.relay.connections import ConnectionManager
from relaybot.relay.lifecycle import Lifecycle
from relaybot.relay.loop import RelayLoop

__all__ = ["SessionAdapter", "ConnectionManager", "RelayLoop", "Lifecycle"]
