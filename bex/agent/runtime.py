"""
运行时协调器 —— 把会话上下文、网关、命令注册表和任务循环组装在一起。

Runtime 是 AgentSession 的唯一创建者，也是所有输入的唯一入口：

    操作者输入 / worker / /workflow
        → Runtime.handle_input()
            ├─ 命令前缀开头 → CommandRegistry.dispatch()
            └─ 其他文本     → 追加 user 轮次 → ProviderGateway.complete() → 渲染回复
                              └─ /auto 开启且回复是 JSON 字符串数组 → 逐条回灌 handle_input()

启动流程（start）：
    1. 从快照文件恢复对话历史
    2. 注册配置中预置的工具服务器，探测本地工具服务器（可达则注册为 "files"）
    3. 对话历史为空且至少一个后端可用时，发送一次性的问候提示（不记录为 user 轮次）
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

from loguru import logger

from bex.agent.commands.agent import ImageCommand, TaskCommand, WorkflowCommand
from bex.agent.commands.browser import (
    BrowserCommand,
    BrowserSession,
    ClickCommand,
    DumpCommand,
    GoogleCommand,
    OpenCommand,
    ScreenshotCommand,
    TypeCommand,
    UrlCommand,
    VisitCommand,
)
from bex.agent.commands.filesystem import (
    AppendFileCommand,
    DeleteFileCommand,
    DownloadCommand,
    ListDirCommand,
    ReadFileCommand,
    RenameFileCommand,
    WriteFileCommand,
)
from bex.agent.commands.general import (
    AutoCommand,
    ClearCommand,
    HelpCommand,
    MenuCommand,
    MultilineCommand,
    ProviderCommand,
    QuitCommand,
    SaveCommand,
    StatusCommand,
)
from bex.agent.commands.mcp import McpAddCommand, McpCallCommand, McpListCommand, McpToolsCommand
from bex.agent.commands.registry import CommandRegistry
from bex.agent.commands.search import GlobCommand, GrepCommand, MemoryCommand, ProjectCommand
from bex.agent.commands.shell import ExecCommand, GitCommand
from bex.agent.context import ContextBuilder
from bex.agent.loop import AgentLoop
from bex.agent.state import AgentSession, Reporter
from bex.config.schema import Config
from bex.daemon.watchdog import Watchdog
from bex.errors import ProviderError
from bex.mcp.client import ToolClient
from bex.providers.gateway import ProviderGateway
from bex.session.manager import ConversationStore, Turn

GREETING_PROMPT = "Greetings! Please introduce yourself and your capabilities."
MULTILINE_START = "<<<"
MULTILINE_END = ">>>"
LOCAL_SERVER_LABEL = "files"


class Runtime:
    """
    运行时协调器。

    参数:
        config: 已加载的配置
        reporter: 操作者输出通道
        gateway: 自定义网关（测试时注入假后端），为 None 时按配置构建
        tools: 自定义工具服务器客户端（测试时注入 MockTransport）
        conversation: 自定义对话存储，为 None 时使用配置中的快照文件
        browser_factory: 自定义浏览器工厂
        watchdog: 心跳看门狗
        workspace: 读取项目上下文文件的目录，默认当前工作目录
    """

    def __init__(
        self,
        config: Config,
        reporter: Reporter,
        gateway: ProviderGateway | None = None,
        tools: ToolClient | None = None,
        conversation: ConversationStore | None = None,
        browser_factory: Callable[[], BrowserSession] | None = None,
        watchdog: Watchdog | None = None,
        workspace: Path | None = None,
    ):
        self.config = config
        defaults = config.agents.defaults

        self.session = AgentSession(
            config=config,
            conversation=conversation if conversation is not None else ConversationStore(config.memory_path),
            reporter=reporter,
            tools=tools if tools is not None else ToolClient(timeout=config.tools.mcp.timeout),
            mode=config.gateway.mode,
            watchdog=watchdog,
        )
        self.context = ContextBuilder(workspace, defaults.project_context_file)
        self.gateway = gateway if gateway is not None else ProviderGateway.from_config(config)
        self.gateway.context = self.context

        self.registry = CommandRegistry(defaults.command_prefix)
        self.loop = AgentLoop(
            self.gateway,
            self.registry,
            max_steps=defaults.max_steps,
            completion_token=defaults.completion_token,
        )
        self._browser_factory = browser_factory or (
            lambda: BrowserSession(config.tools.browser.headless, config.tools.browser.timeout_ms)
        )
        self._register_default_commands()
        self.context.command_help = self.registry.describe()

    def _register_default_commands(self) -> None:
        """注册内置命令（静态表，运行期间不再变化）。"""
        tools_cfg = self.config.tools
        r = self.registry

        # --- 通用 ---
        r.register(HelpCommand(r))
        r.register(MenuCommand(r))
        r.register(StatusCommand(self.gateway))
        r.register(ClearCommand())
        r.register(SaveCommand())
        r.register(ProviderCommand(self.gateway))
        r.register(AutoCommand())
        r.register(MultilineCommand())
        r.register(QuitCommand())

        # --- 文件系统 ---
        r.register(ListDirCommand())
        r.register(ReadFileCommand())
        r.register(WriteFileCommand())
        r.register(AppendFileCommand())
        r.register(DeleteFileCommand())
        r.register(RenameFileCommand())
        r.register(DownloadCommand(timeout=tools_cfg.url.timeout))

        # --- 搜索与分析 ---
        r.register(GrepCommand())
        r.register(GlobCommand())
        r.register(GitCommand(timeout=tools_cfg.exec.timeout))
        r.register(ProjectCommand())
        r.register(MemoryCommand())

        # --- 系统与 Agent ---
        r.register(ExecCommand(timeout=tools_cfg.exec.timeout))
        r.register(TaskCommand(self.loop))
        r.register(WorkflowCommand(self.handle_input))
        r.register(ImageCommand())

        # --- 网页浏览 ---
        browser, visit, dump = BrowserCommand(self._browser_factory), VisitCommand(), DumpCommand()
        r.register(browser)
        r.register(visit)
        r.register(GoogleCommand(browser, visit, dump))
        r.register(UrlCommand(max_chars=tools_cfg.url.max_chars, timeout=tools_cfg.url.timeout))
        r.register(OpenCommand())
        r.register(ClickCommand())
        r.register(TypeCommand())
        r.register(dump)
        r.register(ScreenshotCommand())

        # --- 远程工具服务器 ---
        r.register(McpListCommand())
        r.register(McpAddCommand())
        r.register(McpToolsCommand())
        r.register(McpCallCommand())

    @property
    def prompt_label(self) -> str:
        """交互提示符中显示的状态，如 "[auto:AUTO]"。"""
        s = self.session
        return f"[{s.mode.value}{':AUTO' if s.auto_execute else ''}{':ML' if s.multiline else ''}]"

    async def start(self, greet: bool = True) -> None:
        """启动流程：恢复历史、连接工具服务器、问候。"""
        reporter = self.session.reporter
        restored = self.session.conversation.load()
        if restored:
            reporter.info(f"Restored agent memory ({restored} turns).")

        if not self.gateway.any_available:
            reporter.warn("WARNING: No API keys found. Run `bex init` and edit ~/.bex/config.json")

        mcp = self.config.tools.mcp
        for label, url in mcp.servers.items():
            self.session.tools.add(label, url)
        if mcp.autoconnect and LOCAL_SERVER_LABEL not in self.session.tools:
            await self.connect_local_server(mcp.local_url)

        if greet and restored == 0 and self.gateway.any_available:
            await self.chat(GREETING_PROMPT, ephemeral=True)

    async def connect_local_server(self, url: str) -> bool:
        """探测本地工具服务器，可达则注册为 "files"。本客户端从不负责启动服务器。"""
        if await self.session.tools.probe(url):
            self.session.tools.add(LOCAL_SERVER_LABEL, url)
            self.session.reporter.success(f"Connected to local MCP server ({LOCAL_SERVER_LABEL}).")
            return True
        logger.debug(f"Local tool server not reachable at {url}")
        return False

    async def handle_input(self, line: str) -> None:
        """处理一行输入（交互、/workflow 和 JSON 计划共用的入口）。"""
        session = self.session
        session.touch()
        line = line.strip()

        if session.multiline:
            if line == MULTILINE_START:
                session.multiline_buffer = []
                session.reporter.info("Multiline input started. Type >>> to end.")
                return
            if line == MULTILINE_END:
                text = "\n".join(session.multiline_buffer).strip()
                session.multiline_buffer = []
                session.reporter.info("Multiline input ended.")
                if text:
                    await self._route(text)
                return
            if not line.startswith(self.registry.prefix) or session.multiline_buffer:
                session.multiline_buffer.append(line)
                return

        if line:
            await self._route(line)

    async def _route(self, text: str) -> None:
        if text.startswith(self.registry.prefix):
            await self.registry.dispatch(text, self.session)
        else:
            await self.chat(text)

    async def chat(self, text: str, ephemeral: bool = False) -> str | None:
        """
        把文本发给模型并渲染回复。

        参数:
            text: 操作者文本
            ephemeral: True 时只发送不记录为 user 轮次（启动问候）

        返回:
            模型回复；失败时返回 None（错误已输出为一行文本）
        """
        session = self.session
        if not ephemeral:
            session.conversation.append(Turn.user(text))

        try:
            response = await self.gateway.complete(session, prompt=text if ephemeral else None)
        except ProviderError as e:
            session.reporter.error(f"Error: {e}")
            return None

        session.reporter.show_response(response)
        if session.auto_execute:
            await self._run_plan(response)
        return response

    async def _run_plan(self, response: str) -> None:
        """回复是 JSON 字符串数组时，把每个元素当作一行输入依次执行。"""
        plan = parse_plan(response)
        if plan is None:
            return
        self.session.reporter.info("Detected plan. Executing...")
        for step in plan:
            self.session.reporter.info(f"> {step}")
            await self.handle_input(step)

    async def close(self) -> None:
        """释放浏览器等资源。"""
        if self.session.browser is not None:
            await self.session.browser.close()
            self.session.browser = None


def parse_plan(text: str) -> list[str] | None:
    """解析 JSON 计划：只接受字符串数组，其他情况返回 None。"""
    text = text.strip()
    if not (text.startswith("[") and text.endswith("]")):
        return None
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, list) or not all(isinstance(s, str) for s in data):
        return None
    return data
