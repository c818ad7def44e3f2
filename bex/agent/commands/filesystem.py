"""
文件系统命令 (agent/commands/filesystem.py)

模块职责：
    提供 /ls /read /write /append /delete /rename /download 七个命令。

结果回填：
    /ls /read /write /append 在白名单中，执行成功后都会追加一条 system 轮次，
    这样 /task 循环里的模型下一步就能看到结果。

路径：
    相对路径基于进程当前工作目录，不做目录限制。
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import httpx

from bex.agent.commands.base import Command, ConfirmingCommand
from bex.errors import CommandError
from bex.session.manager import Turn

if TYPE_CHECKING:
    from bex.agent.state import AgentSession


class ListDirCommand(Command):
    name = "ls"
    usage = "[path]"
    description = "List files in directory"
    category = "File System"
    loop_visible = True

    def execute(self, session: AgentSession, args: list[str]) -> None:
        target = args[0] if args else "."
        path = Path(target).expanduser()
        if not path.is_dir():
            raise CommandError(f"Not a directory: {target}")
        names = sorted(p.name for p in path.iterdir())
        session.reporter.info("\n".join(names) or "(empty directory)")
        session.conversation.append(Turn.system(f"Output of /ls {target}:\n{', '.join(names)}"))


class ReadFileCommand(Command):
    name = "read"
    usage = "<file>"
    description = "Read file content into context"
    category = "File System"
    min_args = 1
    loop_visible = True

    def execute(self, session: AgentSession, args: list[str]) -> None:
        content = Path(args[0]).expanduser().read_text(encoding="utf-8")
        session.reporter.info(f"Read {len(content)} chars.")
        session.conversation.append(Turn.system(f"File {args[0]} content:\n{content}"))


class WriteFileCommand(Command):
    name = "write"
    usage = "<file> <content>"
    description = "Write to file (overwrite)"
    category = "File System"
    min_args = 1
    loop_visible = True

    def execute(self, session: AgentSession, args: list[str]) -> None:
        path = Path(args[0]).expanduser()
        content = " ".join(args[1:])
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        session.reporter.success(f"Wrote to {args[0]}")
        session.conversation.append(Turn.system(f"Wrote {len(content)} chars to {args[0]}"))


class AppendFileCommand(Command):
    name = "append"
    usage = "<file> <content>"
    description = "Append content to file"
    category = "File System"
    min_args = 2
    loop_visible = True

    def execute(self, session: AgentSession, args: list[str]) -> None:
        with open(Path(args[0]).expanduser(), "a", encoding="utf-8") as f:
            f.write("\n" + " ".join(args[1:]))
        session.reporter.success(f"Appended to {args[0]}")
        session.conversation.append(Turn.system(f"Appended content to {args[0]}"))


class DeleteFileCommand(ConfirmingCommand):
    name = "delete"
    usage = "<file>"
    description = "Delete file (asks for confirmation)"
    category = "File System"
    min_args = 1

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        target = args[0]
        path = Path(target).expanduser()
        if not path.is_file():
            raise CommandError(f"File '{target}' does not exist.")

        session.reporter.warn(f"WARNING: This will permanently delete '{target}'")
        if not await self.confirm(session, "Are you sure? Type the filename to confirm: ", target):
            session.reporter.info("Deletion cancelled.")
            return
        path.unlink()
        session.reporter.success(f"Deleted {target}")


class RenameFileCommand(Command):
    name = "rename"
    usage = "<old> <new>"
    description = "Rename file"
    category = "File System"
    min_args = 2

    def execute(self, session: AgentSession, args: list[str]) -> None:
        Path(args[0]).expanduser().rename(Path(args[1]).expanduser())
        session.reporter.success(f"Renamed {args[0]} to {args[1]}")


class DownloadCommand(Command):
    name = "download"
    usage = "<url> [filename]"
    description = "Download file from URL"
    category = "File System"
    min_args = 1

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        url = args[0]
        filename = args[1] if len(args) > 1 else (Path(urlparse(url).path).name or "downloaded-file")
        try:
            async with httpx.AsyncClient(follow_redirects=True, timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(url)
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise CommandError(f"Download failed: {e}") from e
        Path(filename).write_bytes(r.content)
        session.reporter.success(f"Downloaded {filename} ({len(r.content)} bytes)")
