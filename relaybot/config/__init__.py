"""
配置模块 (config)
================
1. 定义配置数据模型（schema.py）—— 使用 Pydantic 定义所有配置项的结构和默认值
2. 加载/保存配置文件（loader.py）—— JSON 文件 + .env + 环境变量，支持 camelCase ↔ snake_case 自动转换

对于 Java 开发者：
- Config 类似于 Spring Boot 的 @ConfigurationProperties，将配置映射为类型安全的对象
"""

from relaybot.config.loader import load_config, get_config_path, require_complete
from relaybot.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path", "require_complete"]
