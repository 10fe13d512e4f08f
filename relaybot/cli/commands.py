"""
CLI 命令模块 - relaybot 的所有命令行命令定义。

本模块使用 Typer 框架定义 relaybot 的 CLI 命令：
- onboard：生成默认配置文件
- run：启动中继（Discord 渠道 + 中继循环 + 生命周期管理）
- status：查看配置状态

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
"""

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from relaybot import __logo__, __version__

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - Discord to AI character relay",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """当用户传入 --version 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", callback=version_callback, is_eager=True
    ),
):
    """relaybot CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


@app.command()
def onboard():
    """在 ~/.relaybot/ 下创建默认配置文件 config.json。"""
    from relaybot.config.loader import get_config_path, save_config
    from relaybot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print("\nNext steps:")
    console.print("  1. Set DISCORD_BOT_TOKEN, INWORLD_KEY, INWORLD_SECRET and INWORLD_SCENE")
    console.print("     (environment, .env, or [cyan]~/.relaybot/config.json[/cyan])")
    console.print("  2. Start: [cyan]relaybot run[/cyan]")


def _configure_logging(verbose: bool, logs: bool) -> None:
    """配置 loguru 输出：--verbose 输出 DEBUG，--no-logs 关闭 relaybot 日志。"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    if logs:
        logger.enable("relaybot")
    else:
        logger.disable("relaybot")


@app.command()
def run(
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    logs: bool = typer.Option(True, "--logs/--no-logs", help="Show relaybot runtime logs"),
):
    """
    启动 relaybot 中继服务（核心启动命令）。

    执行流程：
    1. 加载配置，缺少必需项时立即退出（退出码 1）
    2. 创建消息总线、对话后端、连接管理器、中继循环和渠道管理器
    3. 交给 Lifecycle 运行，直到收到关闭信号或发生未处理异常
    4. 以 Lifecycle 给出的退出码退出
    """
    from relaybot.backend.inworld import InworldBackend
    from relaybot.bus.queue import MessageBus
    from relaybot.channels.manager import ChannelManager
    from relaybot.config.loader import load_config, require_complete
    from relaybot.errors import ConfigError
    from relaybot.relay.connections import ConnectionManager
    from relaybot.relay.lifecycle import Lifecycle
    from relaybot.relay.loop import RelayLoop

    try:
        config = require_complete(load_config(config_file))
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    _configure_logging(verbose, logs)

    console.print(f"{__logo__} Starting relaybot...")

    bus = MessageBus()
    backend = InworldBackend(config.inworld)
    connections = ConnectionManager(
        backend,
        bus,
        scene=config.inworld.scene,
        max_direct_sessions=config.relay.max_direct_sessions,
        shared_disconnect_timeout=config.shared_disconnect_timeout,
    )
    relay = RelayLoop(bus, connections)
    channels = ChannelManager(config, bus)

    console.print(f"[green]✓[/green] Channels enabled: {', '.join(channels.enabled_channels)}")
    console.print(f"[green]✓[/green] Direct session pool: {config.relay.max_direct_sessions}")

    lifecycle = Lifecycle(channels, connections, relay, backend)
    exit_code = asyncio.run(lifecycle.run())
    raise typer.Exit(exit_code)


@app.command()
def status(
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """显示配置文件路径和每个配置项的状态（敏感值只显示前缀）。"""
    from relaybot.config.loader import get_config_path, load_config
    from relaybot.config.schema import REQUIRED_SETTINGS

    config_path = config_file or get_config_path()
    config = load_config(config_file)

    console.print(f"{__logo__} relaybot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]not found[/dim]'}")

    table = Table(title="Required Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Set", style="green")
    table.add_column("Value", style="yellow")

    for env_name, (section, key) in REQUIRED_SETTINGS.items():
        value = getattr(getattr(config, section), key)
        shown = f"{value[:6]}..." if value and env_name != "INWORLD_SCENE" else value
        table.add_row(env_name, "✓" if value else "✗", shown or "[dim]not set[/dim]")

    console.print(table)
    console.print(f"Trigger keyword: {config.discord.trigger_keyword}")
    console.print(f"Direct session pool: {config.relay.max_direct_sessions}")
    console.print(f"Channel session idle timeout: {config.relay.shared_disconnect_timeout_ms}ms")


if __name__ == "__main__":
    app()
