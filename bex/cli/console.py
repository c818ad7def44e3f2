"""
终端输出通道 - Reporter 协议的 rich 实现。

- info / success / warn / error: 单行彩色文本
- show_response: 模型回复，默认按 Markdown 渲染
- table: rich 表格（/help /menu /status /mcp_list）
- ask: 通过 prompt_toolkit 异步读取一行回答（/delete 的确认）
"""

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from bex import __logo__


class ConsoleReporter:
    """基于 rich 的 Reporter 实现。"""

    def __init__(self, console: Console | None = None, render_markdown: bool = True):
        self.console = console or Console()
        self.render_markdown = render_markdown
        self._ask_session: PromptSession | None = None

    def info(self, message: str) -> None:
        self.console.print(Text(message, style="dim"))

    def success(self, message: str) -> None:
        self.console.print(Text(message, style="green"))

    def warn(self, message: str) -> None:
        self.console.print(Text(message, style="yellow"))

    def error(self, message: str) -> None:
        self.console.print(Text(message, style="red"))

    def show_response(self, text: str) -> None:
        body = Markdown(text or "") if self.render_markdown else Text(text or "")
        self.console.print()
        self.console.print(f"[cyan]{__logo__} bex[/cyan]")
        self.console.print(body)
        self.console.print()

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        table = Table(title=title)
        for col in columns:
            table.add_column(col, style="cyan" if col == columns[0] else None)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)

    async def ask(self, prompt: str) -> str:
        if self._ask_session is None:
            self._ask_session = PromptSession()
        try:
            with patch_stdout():
                return await self._ask_session.prompt_async(prompt)
        except (EOFError, KeyboardInterrupt):
            return ""
