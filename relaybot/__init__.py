"""
relaybot - Discord 与 AI 角色对话后端之间的消息中继机器人

模块概述：
    本文件是 relaybot 包的入口文件（__init__.py），定义了包的元信息。
    relaybot 监听 Discord 上的消息，把文本转发给 Inworld 风格的对话后端，
    再把后端的回复原样发回消息所在的会话。

    整个中继的核心流程：
    - 接收事件（Discord Gateway MESSAGE_CREATE）
    - 路由到连接（按会话 ID 查找或创建后端会话）
    - 转发文本 → 接收回复 → 发回 Discord
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🔁"
