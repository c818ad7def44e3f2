"""
命令注册表模块 (agent/commands/registry.py)

模块职责：
    管理所有斜杠命令的静态注册表，提供按名称分发和白名单计算。

分发算法：
    1. 按空白切分输入行，第一个 token 必须以命令前缀开头
    2. 未知命令：输出一行错误，不改变任何状态，不抛异常
    3. 参数不足：输出一行 "Usage: ..."
    4. 处理器抛出的异常按错误策略表处理（command → continue：输出一行错误）

类比 Java：
    类似于一个 Map<String, Command> 加上一个 DispatcherServlet。
"""

from __future__ import annotations

import inspect
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from bex.agent.commands.base import Command, ConfirmingCommand
from bex.errors import CommandError, ErrorPolicy, Subsystem, policy_for
from bex.utils.helpers import split_command

if TYPE_CHECKING:
    from bex.agent.state import AgentSession


class DispatchStatus(str, Enum):
    """一次分发的结果。"""
    OK = "ok"
    NOT_COMMAND = "not_command"  # 输入不以命令前缀开头
    UNKNOWN = "unknown"          # 未注册的命令名
    USAGE = "usage"              # 参数个数不足
    FAILED = "failed"            # 处理器抛出异常


@dataclass
class DispatchResult:
    status: DispatchStatus
    command: str = ""
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == DispatchStatus.OK


class CommandRegistry:
    """
    斜杠命令注册表。

    属性:
        prefix: 命令前缀（默认 "/"）
    """

    def __init__(self, prefix: str = "/"):
        self.prefix = prefix
        self._commands: dict[str, Command] = {}

    def register(self, command: Command) -> None:
        """注册命令，同名命令会被覆盖。"""
        self._commands[command.name] = command

    def get(self, name: str) -> Command | None:
        return self._commands.get(name)

    @property
    def commands(self) -> list[Command]:
        return list(self._commands.values())

    @property
    def names(self) -> list[str]:
        return list(self._commands.keys())

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: str) -> bool:
        return name in self._commands

    def unattended(self) -> list[Command]:
        """
        自主循环可调用的命令子集（白名单）。

        ConfirmingCommand 在类型层面被排除。
        """
        return [
            c for c in self._commands.values()
            if c.loop_visible and not isinstance(c, ConfirmingCommand)
        ]

    def describe(self, commands: list[Command] | None = None) -> str:
        """按分组生成命令清单文本（用于系统提示词）。"""
        groups: dict[str, list[Command]] = defaultdict(list)
        for c in commands if commands is not None else self.commands:
            groups[c.category].append(c)
        lines = []
        for category, cmds in groups.items():
            lines.append(f"{category.upper()}:")
            lines.extend(f"   - {c.signature(self.prefix)} : {c.description}" for c in cmds)
        return "\n".join(lines)

    async def dispatch(self, line: str, session: AgentSession) -> DispatchResult:
        """
        分发一行命令输入。

        参数:
            line: 原始输入行（如 "/ls src"）
            session: 会话上下文

        返回:
            DispatchResult；本方法自身不抛异常（错误策略为 continue 时）
        """
        parsed = split_command(line, self.prefix)
        if parsed is None:
            return DispatchResult(DispatchStatus.NOT_COMMAND)
        name, args = parsed

        command = self._commands.get(name)
        if command is None:
            message = f"Unknown command: {self.prefix}{name}"
            session.reporter.error(message)
            return DispatchResult(DispatchStatus.UNKNOWN, name, message)

        if len(args) < command.min_args:
            message = f"Usage: {command.signature(self.prefix)}"
            session.reporter.error(message)
            return DispatchResult(DispatchStatus.USAGE, name, message)

        try:
            result = command.execute(session, args)
            if inspect.isawaitable(result):
                await result
        except (CommandError, OSError) as e:
            session.reporter.error(str(e))
            return DispatchResult(DispatchStatus.FAILED, name, str(e))
        except Exception as e:
            if policy_for(Subsystem.COMMAND) != ErrorPolicy.CONTINUE:
                raise
            logger.exception(f"Command {name} failed")
            message = f"Command execution error: {e}"
            session.reporter.error(message)
            return DispatchResult(DispatchStatus.FAILED, name, message)

        return DispatchResult(DispatchStatus.OK, name)
