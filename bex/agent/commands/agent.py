"""
Agent 类命令：/task 启动自主循环，/workflow 批量执行文件中的输入，/image 附加图片。
"""

from __future__ import annotations

import base64
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from bex.agent.commands.base import Command
from bex.agent.state import PendingAttachment
from bex.errors import CommandError

if TYPE_CHECKING:
    from bex.agent.loop import AgentLoop
    from bex.agent.state import AgentSession


class TaskCommand(Command):
    name = "task"
    usage = "<goal>"
    description = "Start autonomous agent workflow"
    category = "System & Agent"
    min_args = 1

    def __init__(self, loop: AgentLoop):
        self.loop = loop

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        task = await self.loop.run(session, " ".join(args))
        session.reporter.info(f"Task finished: {task.state.value} after {task.step} steps")


class WorkflowCommand(Command):
    name = "workflow"
    usage = "<file>"
    description = "Run batch commands from file"
    category = "System & Agent"
    min_args = 1

    def __init__(self, handle_input: Callable[[str], Awaitable[None]]):
        self.handle_input = handle_input

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        lines = Path(args[0]).expanduser().read_text(encoding="utf-8").splitlines()
        for line in lines:
            if line.strip():
                session.reporter.info(f"Workflow executing: {line}")
                await self.handle_input(line)


class ImageCommand(Command):
    name = "image"
    usage = "<file>"
    description = "Attach image to the next prompt"
    category = "System & Agent"
    min_args = 1

    def execute(self, session: AgentSession, args: list[str]) -> None:
        path = Path(args[0]).expanduser()
        mime, _ = mimetypes.guess_type(path.name)
        if mime is not None and not mime.startswith("image/"):
            raise CommandError(f"Not an image file: {args[0]}")
        data = base64.b64encode(path.read_bytes()).decode()
        session.pending_attachment = PendingAttachment(mime=mime or "image/png", data_b64=data, source=path.name)
        session.reporter.success("Image attached to next prompt.")
