"""
Shell 命令 (agent/commands/shell.py)

模块职责：
    /exec 执行任意 Shell 命令，/git 执行几个固定的 git 查询。

执行方式：
    asyncio.create_subprocess_shell 异步执行，带超时保护；超时后 kill 子进程。
    非零退出码不视为命令处理失败，输出和退出码照常回填给模型。
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from bex.agent.commands.base import Command
from bex.errors import CommandError
from bex.session.manager import Turn

if TYPE_CHECKING:
    from bex.agent.state import AgentSession

MAX_OUTPUT = 10000


async def run_shell(command: str, timeout: float) -> tuple[int, str, str]:
    """
    执行 Shell 命令并返回 (退出码, stdout, stderr)。

    异常:
        CommandError: 超时
    """
    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise CommandError(f"Command timed out after {timeout} seconds")
    return (
        process.returncode or 0,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )


def _clip(text: str) -> str:
    if len(text) > MAX_OUTPUT:
        return text[:MAX_OUTPUT] + f"\n... (truncated, {len(text) - MAX_OUTPUT} more chars)"
    return text


class ExecCommand(Command):
    name = "exec"
    usage = "<cmd>"
    description = "Execute shell command"
    category = "System & Agent"
    min_args = 1
    loop_visible = True

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        cmd = " ".join(args)
        code, stdout, stderr = await run_shell(cmd, self.timeout)
        if stdout:
            session.reporter.info(stdout.rstrip())
        if stderr.strip():
            session.reporter.error(stderr.rstrip())
        result = f"Command '{cmd}' output:\n{_clip(stdout)}\n{_clip(stderr)}"
        if code != 0:
            result += f"\nExit code: {code}"
        session.conversation.append(Turn.system(result))


class GitCommand(Command):
    name = "git"
    usage = "<status|log|diff|commits> [n]"
    description = "Git repository operations"
    category = "Search & Analysis"
    min_args = 1

    def __init__(self, timeout: int = 60):
        self.timeout = timeout

    def build(self, args: list[str]) -> str:
        """把子命令翻译成实际执行的 git 命令行。"""
        sub = args[0]
        n = args[1] if len(args) > 1 else None
        if n is not None and not n.isdigit():
            raise CommandError(f"Usage: /git {self.usage}")
        if sub == "status":
            return "git status --porcelain"
        if sub == "log":
            return f"git log --oneline -{n or 10}"
        if sub == "diff":
            return "git diff --stat"
        if sub == "commits":
            return f'git log --oneline --since="{n or 7} days ago"'
        raise CommandError(f"Usage: /git {self.usage}")

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        sub = args[0]
        code, stdout, stderr = await run_shell(self.build(args), self.timeout)
        if code != 0:
            raise CommandError(f"Git command failed: {stderr.strip() or f'exit code {code}'}")
        if not stdout.strip():
            session.reporter.info(f"No git {sub} output.")
            return
        session.reporter.success(f"Git {sub}:")
        session.reporter.info(stdout.rstrip())
        session.conversation.append(Turn.system(f"Git {sub} output:\n{_clip(stdout)}"))
