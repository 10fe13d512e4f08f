"""
异常类型定义模块 - relaybot 中所有自定义异常的根。

异常分类：
- ConfigError：必需配置缺失或非法（启动阶段致命错误，进程立即退出）
- BackendError：对话后端的鉴权/连接失败（仅影响单个会话，记录日志后放弃）
"""


class RelayError(Exception):
    """relaybot 所有自定义异常的基类。"""


class ConfigError(RelayError):
    """
    配置错误 - 缺少必需配置项时抛出。

    属性:
        missing: 缺失的配置项名称列表（使用扁平环境变量名，便于用户直接设置）
    """

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required configuration: {', '.join(missing)}")


class BackendError(RelayError):
    """对话后端错误 - 鉴权失败、连接被拒绝等。"""
