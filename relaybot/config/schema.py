"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 relaybot 的完整配置结构。

整体配置结构（树形）：
Config (根配置)
├── discord   - Discord 机器人配置（Token、Gateway 地址、触发关键词等）
├── inworld   - 对话后端配置（API Key/Secret、场景 ID、接口地址）
└── relay     - 中继行为配置（私聊连接池上限、群聊会话空闲断开时间）

四个必需项（Discord Token、后端 Key、Secret、场景 ID）默认为空，
启动时由 missing_required() 检查，缺任何一项进程都会立即退出。
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


class DiscordConfig(BaseModel):
    """Discord 渠道配置。使用 Gateway WebSocket 接收消息，REST API 发送回复。"""
    token: str = ""  # 从 Discord Developer Portal 获取的 Bot Token
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 白名单（空 = 所有人）
    gateway_url: str = "wss://gateway.discord.gg/?v=10&encoding=json"  # Discord Gateway 地址
    # GUILDS + GUILD_MESSAGES + DIRECT_MESSAGES + DIRECT_MESSAGE_REACTIONS
    # + DIRECT_MESSAGE_TYPING + MESSAGE_CONTENT
    intents: int = 61953
    trigger_keyword: str = "Victoria"  # 群聊中不 @机器人 时也能触发回复的关键词


class InworldConfig(BaseModel):
    """对话后端配置。鉴权使用 Key/Secret 签名换取会话令牌。"""
    api_key: str = ""  # 后端 API Key
    api_secret: str = ""  # 后端 API Secret
    scene: str = ""  # 场景/角色资源名，如 workspaces/xxx/characters/yyy
    api_base: str = "https://api-engine.inworld.ai"  # 鉴权 REST 接口地址
    ws_base: str = "wss://api-engine.inworld.ai"  # 会话 WebSocket 地址


class RelayConfig(BaseModel):
    """中继行为配置。"""
    max_direct_sessions: int = 50  # 私聊连接池上限，超出时淘汰最早插入的会话
    shared_disconnect_timeout_ms: int = 5000  # 群聊一次性会话的空闲断开时间（毫秒）


# 必需配置项：扁平环境变量名 → (配置段, 字段名)
REQUIRED_SETTINGS: dict[str, tuple[str, str]] = {
    "DISCORD_BOT_TOKEN": ("discord", "token"),
    "INWORLD_KEY": ("inworld", "api_key"),
    "INWORLD_SECRET": ("inworld", "api_secret"),
    "INWORLD_SCENE": ("inworld", "scene"),
}


class Config(BaseSettings):
    """
    relaybot 根配置类。

    继承自 Pydantic 的 BaseSettings，配置来源优先级（高 → 低）：
    1. RELAYBOT_ 前缀的环境变量，嵌套用 __ 分隔（如 RELAYBOT_DISCORD__TOKEN）
    2. 构造参数（由 loader 从扁平环境变量和 config.json 合并而来）
    3. 字段默认值
    """
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    inworld: InworldConfig = Field(default_factory=InworldConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)

    model_config = SettingsConfigDict(
        env_prefix="RELAYBOT_",  # 环境变量前缀
        env_nested_delimiter="__",  # 嵌套配置的分隔符
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # 环境变量覆盖配置文件
        return env_settings, init_settings, file_secret_settings

    @property
    def shared_disconnect_timeout(self) -> float:
        """群聊会话空闲断开时间（秒）。"""
        return self.relay.shared_disconnect_timeout_ms / 1000

    def missing_required(self) -> list[str]:
        """
        列出缺失的必需配置项。

        返回:
            缺失项的扁平环境变量名列表（如 ["INWORLD_SECRET"]），全部齐全时为空列表
        """
        return [
            env_name
            for env_name, (section, key) in REQUIRED_SETTINGS.items()
            if not getattr(getattr(self, section), key)
        ]
