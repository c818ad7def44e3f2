"""
通用命令：帮助、菜单、状态、清空、导出、后端切换、开关类命令和退出。
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING

from bex.agent.commands.base import Command
from bex.errors import CommandError
from bex.utils.helpers import timestamp_ms

if TYPE_CHECKING:
    from bex.agent.commands.registry import CommandRegistry
    from bex.agent.state import AgentSession
    from bex.providers.gateway import ProviderGateway


class HelpCommand(Command):
    name = "help"
    description = "Show all available commands"

    def __init__(self, registry: CommandRegistry):
        self.registry = registry

    def execute(self, session: AgentSession, args: list[str]) -> None:
        rows = [[c.signature(self.registry.prefix), c.description] for c in self.registry.commands]
        session.reporter.table("BEX CLI HELP", ["Command", "Description"], rows)
        session.reporter.info("Tip: use /menu for a categorized overview")


class MenuCommand(Command):
    name = "menu"
    description = "Show categorized command menu"

    def __init__(self, registry: CommandRegistry):
        self.registry = registry

    def execute(self, session: AgentSession, args: list[str]) -> None:
        groups: dict[str, list[str]] = defaultdict(list)
        for c in self.registry.commands:
            groups[c.category].append(f"{self.registry.prefix}{c.name}")
        rows = [[category, ", ".join(names)] for category, names in groups.items()]
        session.reporter.table("BEX CLI MENU", ["Category", "Commands"], rows)


class StatusCommand(Command):
    name = "status"
    description = "Show current status and active services"

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    def execute(self, session: AgentSession, args: list[str]) -> None:
        rows = [["Provider mode", session.mode.value]]
        for role, label, available in self.gateway.describe():
            rows.append([f"{role.title()} provider", f"{label} ({'available' if available else 'no API key'})"])
        rows += [
            ["Browser", "Running" if session.browser and session.browser.is_open else "Not running"],
            ["MCP servers", ", ".join(session.tools.servers) or "Not connected"],
            ["Multiline mode", "ON" if session.multiline else "OFF"],
            ["Auto-execute", "ON" if session.auto_execute else "OFF"],
            ["Conversation", f"{len(session.conversation)} turns"],
            ["Pending image", session.pending_attachment.source if session.pending_attachment else "-"],
        ]
        session.reporter.table("BEX STATUS", ["Item", "Value"], rows)


class ClearCommand(Command):
    name = "clear"
    description = "Clear conversation history"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        session.conversation.clear()
        session.pending_attachment = None
        session.reporter.info("Memory cleared.")


class SaveCommand(Command):
    name = "save"
    usage = "[file]"
    description = "Save chat history to a Markdown file"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        path = Path(args[0] if args else f"bex-history-{timestamp_ms()}.md")
        session.conversation.export_markdown(path)
        session.reporter.success(f"Saved history to {path}")


class ProviderCommand(Command):
    name = "provider"
    usage = "<primary|secondary|auto|name>"
    description = "Switch AI provider"
    min_args = 1

    def __init__(self, gateway: ProviderGateway):
        self.gateway = gateway

    def execute(self, session: AgentSession, args: list[str]) -> None:
        mode = self.gateway.resolve_mode(args[0])
        if mode is None:
            names = f"{self.gateway.primary.name}, {self.gateway.secondary.name}"
            raise CommandError(f"Invalid provider. Options: primary, secondary, auto, {names}")
        session.mode = mode
        session.reporter.success(f"Switched to {mode.value}")


class AutoCommand(Command):
    name = "auto"
    description = "Toggle auto-execution of JSON command plans"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        session.auto_execute = not session.auto_execute
        session.reporter.info(f"Auto-execution: {'ON' if session.auto_execute else 'OFF'}")


class MultilineCommand(Command):
    name = "multiline"
    description = "Toggle multiline input mode"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        session.multiline = not session.multiline
        session.multiline_buffer = []
        session.reporter.info(f"Multiline mode: {'ON' if session.multiline else 'OFF'}")
        if session.multiline:
            session.reporter.info("Use <<< to start multiline input, >>> to end and send.")


class QuitCommand(Command):
    name = "quit"
    description = "Exit the application and shut down services"

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        session.reporter.info("Shutting down services...")
        if session.browser is not None:
            await session.browser.close()
        session.running = False
