"""
配置加载工具模块 (config/loader.py)
=================================
- 配置文件默认路径: ~/.relaybot/config.json（可选，不存在时仅使用环境变量）
- 配置文件使用 camelCase，Python 内部使用 snake_case，加载/保存时自动转换
- 启动时从当前目录向上查找 .env 并加载到环境变量（不覆盖已有变量）
- 兼容扁平环境变量名：DISCORD_BOT_TOKEN / INWORLD_KEY / INWORLD_SECRET / INWORLD_SCENE
"""

import json
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import find_dotenv, load_dotenv
from loguru import logger

from relaybot.config.schema import REQUIRED_SETTINGS, Config
from relaybot.errors import ConfigError


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.relaybot/config.json"""
    return Path.home() / ".relaybot" / "config.json"


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    加载配置。

    加载流程：
    1. 加载 .env 文件到进程环境变量（仅在使用真实环境变量时）
    2. 读取 JSON 配置文件（存在时），camelCase → snake_case
    3. 用扁平环境变量覆盖对应字段
    4. 交给 Pydantic Settings 合并 RELAYBOT_ 前缀环境变量并校验

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。
        environ: 扁平环境变量来源，默认 os.environ（测试时可传入字典）

    返回:
        Config 配置对象实例
    """
    if environ is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        environ = os.environ

    path = config_path or get_config_path()
    data: dict[str, Any] = {}

    if path.exists():
        try:
            with open(path) as f:
                data = convert_keys(json.load(f))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    _apply_flat_env(data, environ)
    return Config(**data)


def _apply_flat_env(data: dict[str, Any], environ: Mapping[str, str]) -> None:
    """将扁平环境变量（如 INWORLD_KEY）写入配置字典的对应位置。"""
    for env_name, (section, key) in REQUIRED_SETTINGS.items():
        value = environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value


def require_complete(config: Config) -> Config:
    """
    校验必需配置项是否齐全。

    异常:
        ConfigError: 任何必需项缺失时抛出，missing 属性列出缺失项
    """
    missing = config.missing_required()
    if missing:
        raise ConfigError(missing)
    return config


def save_config(config: Config, config_path: Path | None = None) -> None:
    """
    将配置对象保存为 JSON 文件（snake_case → camelCase）。

    参数:
        config: 要保存的配置对象
        config_path: 可选的保存路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())

    with open(path, "w") as f:
        json.dump(data, f, indent=2)


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"maxDirectSessions": 50} → {"max_direct_sessions": 50}
    """
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """
    将 camelCase 字符串转换为 snake_case。
    例: "apiKey" → "api_key", "wsBase" → "ws_base"
    """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")  # 在大写字母前插入下划线
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """
    将 snake_case 字符串转换为 camelCase。
    例: "api_key" → "apiKey", "allow_from" → "allowFrom"
    """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
