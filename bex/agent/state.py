"""
会话上下文 —— 进程内所有可变状态的唯一持有者。

原先散落在全局变量里的状态（对话历史、后端模式、待发送附件、
工具服务器注册表、浏览器、自动执行开关、多行输入缓冲）
全部收拢到 AgentSession 中，由 Runtime 创建并显式传给
ProviderGateway、CommandRegistry 和 AgentLoop。

Reporter 是面向操作者的输出通道（协议类型），交互模式下由 rich 实现，
测试中由记录型实现替代。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from bex.providers.base import ProviderMode
from bex.session.manager import ConversationStore

if TYPE_CHECKING:
    from bex.agent.commands.browser import BrowserSession
    from bex.config.schema import Config
    from bex.daemon.watchdog import Watchdog
    from bex.mcp.client import ToolClient


class Reporter(Protocol):
    """
    操作者可见的输出通道。

    所有用户可见的失败都通过 error() 输出为一行文本，
    日志（loguru）不承担这个职责。
    """

    def info(self, message: str) -> None: ...

    def success(self, message: str) -> None: ...

    def warn(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def show_response(self, text: str) -> None: ...

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None: ...

    async def ask(self, prompt: str) -> str: ...


@dataclass
class PendingAttachment:
    """
    下一次模型调用要附带的多模态负载（至多一个）。

    属性:
        mime: MIME 类型，如 "image/png"
        data_b64: base64 编码的文件内容
        source: 来源文件名，仅用于提示
    """

    mime: str
    data_b64: str
    source: str = ""

    def to_content_part(self) -> dict[str, Any]:
        """转为 OpenAI 兼容的 image_url 内容片段。"""
        return {"type": "image_url", "image_url": {"url": f"data:{self.mime};base64,{self.data_b64}"}}


@dataclass
class AgentSession:
    """
    一个进程内的会话上下文。

    属性:
        config: 已加载的配置
        conversation: 对话历史（唯一所有者）
        reporter: 操作者输出通道
        tools: 远程工具服务器注册表
        mode: 当前后端模式
        pending_attachment: 待发送附件
        browser: 浏览器能力（懒启动）
        auto_execute: 是否自动执行模型返回的 JSON 计划
        multiline: 是否处于多行输入模式
        multiline_buffer: 多行输入缓冲
        running: 置为 False 时交互循环退出（/quit）
        watchdog: 心跳看门狗，交互和 worker 模式下存在
    """

    config: Config
    conversation: ConversationStore
    reporter: Reporter
    tools: ToolClient
    mode: ProviderMode = ProviderMode.AUTO
    pending_attachment: PendingAttachment | None = None
    browser: BrowserSession | None = None
    auto_execute: bool = False
    multiline: bool = False
    multiline_buffer: list[str] = field(default_factory=list)
    running: bool = True
    watchdog: Watchdog | None = None

    def touch(self) -> None:
        """刷新心跳（没有看门狗时什么也不做）。"""
        if self.watchdog is not None:
            self.watchdog.touch()
