"""
命令基类模块 (agent/commands/base.py)

模块职责：
    定义所有斜杠命令的抽象基类 Command，以及需要操作者确认的子类型 ConfirmingCommand。

在架构中的位置：
    CommandRegistry 持有 Command 实例的静态表；
    交互输入和 /task 自主循环都通过 registry.dispatch() 间接调用 Command.execute()。

设计要点：
    - 处理器不捕获任何全局状态，所有可变状态通过 session 参数显式传入
    - execute() 可以是普通函数也可以是协程，分发层统一 await
    - 需要等待操作者确认的命令必须继承 ConfirmingCommand，
      它们在类型层面就被排除在自主循环的白名单之外

类比 Java：
    Command 相当于一个 abstract class，name/usage/description 是静态元数据，
    execute() 是模板方法的钩子。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable

if TYPE_CHECKING:
    from bex.agent.state import AgentSession


class Command(ABC):
    """
    斜杠命令的抽象基类。

    子类通过类属性声明元数据：
      - name: 命令名（不含前缀），如 "ls"
      - usage: 参数用法，如 "[path]"
      - description: 一行功能描述，出现在 /help 和系统提示词中
      - category: /menu 中的分组
      - min_args: 最少位置参数个数，不足时分发层输出 "Usage: ..."
      - loop_visible: 是否进入 /task 自主循环的白名单
    """

    name: str = ""
    usage: str = ""
    description: str = ""
    category: str = "General"
    min_args: int = 0
    loop_visible: bool = False

    @abstractmethod
    def execute(self, session: AgentSession, args: list[str]) -> Awaitable[None] | None:
        """
        执行命令。

        参数:
            session: 会话上下文
            args: 位置参数（按空白切分，不支持引号）
        """

    def signature(self, prefix: str = "/") -> str:
        """形如 "/write <file> <content>" 的完整签名。"""
        return f"{prefix}{self.name} {self.usage}".rstrip()


class ConfirmingCommand(Command):
    """
    需要操作者确认才能完成的命令（破坏性操作）。

    自主循环里没有人回答确认问题，所以这类命令永远不在白名单中，
    即使子类误把 loop_visible 设为 True 也一样。
    """

    loop_visible = False

    async def confirm(self, session: AgentSession, prompt: str, expected: str) -> bool:
        """向操作者提问，回答与 expected 完全一致才视为确认。"""
        answer = await session.reporter.ask(prompt)
        return answer.strip() == expected
