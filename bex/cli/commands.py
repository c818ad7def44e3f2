"""
CLI 命令模块 - bex 的命令行入口。

本模块使用 Typer 框架定义 bex 的 CLI：
- bex：交互式会话（默认）
- bex --daemon：supervisor 角色，派生脱离终端的 worker 后立即退出
- bex --worker：worker 角色（隐藏选项，由 --daemon 派生时自动加上）
- bex task "<目标>"：非交互地执行一次自主任务并打印终止状态
- bex status：查看配置、对话历史和后端可用性
- bex init：写入默认配置文件

技术栈：
- Typer：CLI 框架
- Rich：终端美化输出（Markdown 渲染、表格、spinner）
- prompt_toolkit：交互式输入（历史记录、粘贴）
"""

import asyncio
import os
import select
import signal
import sys
from contextlib import nullcontext

import typer
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console

from bex import __logo__, __version__
from bex.cli.console import ConsoleReporter
from bex.config.loader import get_config_path, load_config, save_config
from bex.config.schema import Config
from bex.daemon.supervisor import add_worker_log_sink, install_crash_guard, run_worker, spawn_worker
from bex.daemon.watchdog import Watchdog
from bex.errors import ErrorPolicy, Subsystem, policy_for
from bex.utils.helpers import get_history_path

app = typer.Typer(
    name="bex",
    help=f"{__logo__} bex - AI CLI agent",
    invoke_without_command=True,
)

console = Console()
EXIT_COMMANDS = {"exit", ":q"}  # /quit 由命令注册表处理

# ---------------------------------------------------------------------------
# CLI 输入：使用 prompt_toolkit 实现编辑、粘贴、历史记录
# ---------------------------------------------------------------------------

_PROMPT_SESSION: PromptSession | None = None
_SAVED_TERM_ATTRS = None


def _flush_pending_tty_input() -> None:
    """清除模型思考期间残留在终端里的按键输入。"""
    try:
        fd = sys.stdin.fileno()
        if not os.isatty(fd):
            return
    except (OSError, ValueError):
        return

    try:
        import termios
        termios.tcflush(fd, termios.TCIFLUSH)
        return
    except (ImportError, OSError):
        pass

    try:
        while True:
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready or not os.read(fd, 4096):
                break
    except OSError:
        return


def _restore_terminal() -> None:
    """恢复终端原始属性（prompt_toolkit 会修改回显等设置）。"""
    if _SAVED_TERM_ATTRS is None:
        return
    try:
        import termios
        termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, _SAVED_TERM_ATTRS)
    except (ImportError, OSError):
        pass


def _init_prompt_session() -> None:
    """创建 prompt_toolkit 会话，历史记录保存在 ~/.bex/history/cli_history。"""
    global _PROMPT_SESSION, _SAVED_TERM_ATTRS

    try:
        import termios
        _SAVED_TERM_ATTRS = termios.tcgetattr(sys.stdin.fileno())
    except (ImportError, OSError):
        pass

    _PROMPT_SESSION = PromptSession(
        history=FileHistory(str(get_history_path())),
        enable_open_in_editor=False,
        multiline=False,
    )


async def _read_interactive_input_async(label: str) -> str:
    """读取一行输入；EOF 视为退出。"""
    if _PROMPT_SESSION is None:
        raise RuntimeError("Call _init_prompt_session() first")
    try:
        with patch_stdout():
            return await _PROMPT_SESSION.prompt_async(HTML(f"<b fg='ansimagenta'>{label}</b> › "))
    except EOFError as exc:
        raise KeyboardInterrupt from exc


def _make_runtime(config: Config, reporter: ConsoleReporter, watchdog: Watchdog | None = None):
    """构建运行时（单独成函数便于测试替换）。"""
    from bex.agent.runtime import Runtime

    return Runtime(config, reporter, watchdog=watchdog)


def _configure_logging(logs: bool) -> None:
    if logs:
        logger.enable("bex")
    else:
        logger.disable("bex")


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} bex v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
    daemon: bool = typer.Option(False, "--daemon", help="Spawn a detached worker process and exit"),
    worker: bool = typer.Option(False, "--worker", hidden=True),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render responses as Markdown"),
):
    """bex 根命令：不带子命令时进入交互式会话。"""
    if worker:
        config = load_config()
        logger.enable("bex")
        add_worker_log_sink(config)
        asyncio.run(run_worker(config))
        raise typer.Exit()

    if daemon:
        pid = spawn_worker(sys.argv[1:])
        console.print(f"[green]✓[/green] bex worker started in background (pid {pid})")
        raise typer.Exit()

    if ctx.invoked_subcommand is not None:
        return

    _configure_logging(logs)
    _interactive(load_config(), render_markdown=markdown, logs=logs)


def _interactive(config: Config, render_markdown: bool, logs: bool) -> None:
    reporter = ConsoleReporter(console, render_markdown=render_markdown)
    watchdog = Watchdog(config.daemon.watchdog_interval_s, config.daemon.stale_after_s)
    runtime = _make_runtime(config, reporter, watchdog=watchdog)

    _init_prompt_session()
    console.print(f"{__logo__} [bold]BEX CLI[/bold] v{__version__}")
    console.print("Type [bold]/help[/bold] for commands, [bold]/quit[/bold] or [bold]Ctrl+C[/bold] to exit\n")

    def _exit_on_sigint(signum, frame):
        _restore_terminal()
        console.print("\nGoodbye!")
        os._exit(0)

    signal.signal(signal.SIGINT, _exit_on_sigint)

    def _thinking_ctx():
        if logs:
            return nullcontext()
        return console.status("[dim]bex is thinking...[/dim]", spinner="dots")

    async def run_interactive():
        install_crash_guard(asyncio.get_running_loop())
        await watchdog.start()
        try:
            with _thinking_ctx():
                await runtime.start()
            while runtime.session.running:
                try:
                    _flush_pending_tty_input()
                    line = await _read_interactive_input_async(runtime.prompt_label)
                    if line.strip().lower() in EXIT_COMMANDS:
                        break
                    # 命令可能需要提问确认，不能包在 spinner 里
                    if line.strip().startswith(runtime.registry.prefix) or runtime.session.multiline:
                        await runtime.handle_input(line)
                    else:
                        with _thinking_ctx():
                            await runtime.handle_input(line)
                except KeyboardInterrupt:
                    break
                except Exception as e:
                    if policy_for(Subsystem.TOP_LEVEL) != ErrorPolicy.CONTINUE:
                        raise
                    logger.exception("Unexpected error in interactive loop")
                    console.print(f"[red]Unexpected error: {e}[/red]")
        finally:
            watchdog.stop()
            await runtime.close()
            _restore_terminal()
            console.print("\nGoodbye!")

    asyncio.run(run_interactive())


# ============================================================================
# Task
# ============================================================================


@app.command()
def task(
    goal: list[str] = typer.Argument(..., help="Goal for the autonomous agent"),
    max_steps: int = typer.Option(None, "--max-steps", "-n", min=1, help="Override the step limit"),
    provider: str = typer.Option(None, "--provider", "-p", help="primary, secondary, auto or a provider name"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs"),
):
    """非交互地执行一次自主任务，打印终止状态。"""
    from bex.agent.loop import TaskState

    _configure_logging(logs)
    config = load_config()
    reporter = ConsoleReporter(console)
    runtime = _make_runtime(config, reporter)

    if provider:
        mode = runtime.gateway.resolve_mode(provider)
        if mode is None:
            console.print(f"[red]Invalid provider: {provider}[/red]")
            raise typer.Exit(2)
        runtime.session.mode = mode

    async def run():
        try:
            await runtime.start(greet=False)
            return await runtime.loop.run(runtime.session, " ".join(goal), max_steps=max_steps)
        finally:
            await runtime.close()

    result = asyncio.run(run())
    console.print(f"Task state: [bold]{result.state.value}[/bold] after {result.step} steps")
    if result.state == TaskState.ABORTED:
        raise typer.Exit(1)


# ============================================================================
# Init / Status
# ============================================================================


@app.command()
def init():
    """写入默认配置文件 ~/.bex/config.json。"""
    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print(f"\n{__logo__} bex is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your API keys to [cyan]~/.bex/config.json[/cyan] (providers.gemini.apiKey, providers.deepseek.apiKey)")
    console.print("     or export GEMINI_API_KEY / DEEPSEEK_API_KEY")
    console.print("  2. Chat: [cyan]bex[/cyan]")


@app.command()
def status():
    """显示配置、对话历史和各后端的 API Key 状态。"""
    from bex.providers.registry import PROVIDERS
    from bex.session.manager import ConversationStore

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} bex Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    memory = config.memory_path
    turns = ConversationStore(memory).load() if memory.exists() else 0
    console.print(f"Memory: {memory} ({turns} turns)")
    console.print(
        f"Gateway: primary={config.gateway.primary} secondary={config.gateway.secondary} "
        f"mode={config.gateway.mode.value}"
    )

    for spec in PROVIDERS:
        has_key = config.is_available(spec.name)
        console.print(f"{spec.label}: {'[green]✓[/green]' if has_key else '[dim]not set[/dim]'}")


if __name__ == "__main__":
    app()
