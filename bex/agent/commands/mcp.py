"""
远程工具服务器命令：/mcp_list /mcp_add /mcp_tools /mcp_call。

/mcp_tools 对所有服务器做批量发现，单个服务器失败只输出一行错误，
不影响其他服务器；每个成功的目录都作为 system 轮次回填给模型。
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from bex.agent.commands.base import Command
from bex.errors import CommandError, ToolServerError
from bex.session.manager import Turn

if TYPE_CHECKING:
    from bex.agent.state import AgentSession


class McpListCommand(Command):
    name = "mcp_list"
    description = "List connected MCP servers"
    category = "MCP"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        servers = session.tools.servers
        if not servers:
            session.reporter.warn("No MCP servers connected.")
            return
        rows = [[s.label, s.url, str(len(s.catalog))] for s in servers.values()]
        session.reporter.table("MCP servers", ["Label", "URL", "Tools"], rows)


class McpAddCommand(Command):
    name = "mcp_add"
    usage = "<label> <url>"
    description = "Add MCP server"
    category = "MCP"
    min_args = 2

    def execute(self, session: AgentSession, args: list[str]) -> None:
        label, url = args[0], args[1]
        if not url.startswith(("http://", "https://")):
            raise CommandError(f"Invalid server URL: {url}")
        session.tools.add(label, url)
        session.reporter.success(f"Added MCP server {label}")


class McpToolsCommand(Command):
    name = "mcp_tools"
    description = "List available MCP tools"
    category = "MCP"

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        if not len(session.tools):
            session.reporter.warn("No MCP servers connected.")
            return

        report = await session.tools.discover_all()
        for label, catalog in report.catalogs.items():
            session.reporter.info(f"Tools on {label}:")
            session.reporter.info(
                "\n".join(f"- {t.name}: {t.description or 'No description'}" for t in catalog) or "(none)"
            )
            payload = json.dumps([t.to_dict() for t in catalog], ensure_ascii=False)
            session.conversation.append(Turn.system(f"Available tools on {label}: {payload}"))
        for label, error in report.errors.items():
            session.reporter.error(f"Error fetching tools from {label}: {error}")


class McpCallCommand(Command):
    name = "mcp_call"
    usage = "<label> <tool> [args...]"
    description = "Call MCP tool"
    category = "MCP"
    min_args = 2

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        label, tool, rest = args[0], args[1], args[2:]
        try:
            output = await session.tools.call(label, tool, rest)
        except ToolServerError as e:
            raise CommandError(f"MCP call {tool} on {label} failed: {e}") from e

        text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False, indent=2)
        session.reporter.info(text)
        session.conversation.append(Turn.system(f"MCP Call {tool} result: {text}"))
