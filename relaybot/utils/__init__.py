"""
工具函数模块 - 提供 relaybot 全局通用的辅助函数。
"""

from relaybot.utils.helpers import new_session_key, split_message, truncate_string

__all__ = ["new_session_key", "split_message", "truncate_string"]
