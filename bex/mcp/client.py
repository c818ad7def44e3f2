"""
远程工具服务器客户端 (mcp/client.py)

模块职责：
    维护进程内的工具服务器注册表（label → ToolServer），
    并通过 HTTP/JSON 协议发现和调用服务器上的工具。

线协议：
    GET  {url}/tools          → {"tools": [{"name", "description", "input_schema"}]}
                                （也接受直接返回数组）
    POST {url}/tools/{name}   body {"arguments": [str, ...]} → {"output": ...}

    错误状态：
      400 参数非法（路径穿越 / 绝对路径），由服务器负责拒绝
      404 未知工具
      500 处理失败，响应体 {"error": "..."}

设计要点：
    - 注册表只在内存中，不落盘，进程重启后需要重新 add
    - 每次发现都完整重建目录，不做增量合并
    - 批量发现时每个 label 的失败相互隔离，不汇总成一个致命错误
    - 客户端不做参数校验，服务器返回什么状态就报告什么

技术选型：
    - HTTP 客户端：httpx（异步）；测试时注入 httpx.MockTransport
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger

from bex.errors import ToolServerError


@dataclass
class ToolSpec:
    """工具描述：名称、说明和输入参数的 JSON Schema。"""

    name: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolSpec":
        return cls(
            name=str(data["name"]),
            description=data.get("description") or "",
            input_schema=data.get("input_schema") or data.get("inputSchema") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}


@dataclass
class ToolServer:
    """
    一个已注册的工具服务器。

    属性:
        label: 注册名（进程内唯一）
        url: 基础地址，如 http://localhost:4000
        catalog: 最近一次发现得到的工具列表（保持服务器返回的顺序）
    """

    label: str
    url: str
    catalog: list[ToolSpec] = field(default_factory=list)


@dataclass
class DiscoveryReport:
    """批量发现的结果：成功的目录和失败的错误分别按 label 记录。"""

    catalogs: dict[str, list[ToolSpec]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def tools(self) -> list[tuple[str, ToolSpec]]:
        """所有成功服务器的工具并集，形如 [(label, tool)]。"""
        return [(label, t) for label, catalog in self.catalogs.items() for t in catalog]


class ToolClient:
    """
    工具服务器注册表和 HTTP 客户端。

    参数:
        timeout: 单次 HTTP 请求超时（秒）
        transport: 自定义 httpx 传输层（测试用）
    """

    def __init__(self, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout = timeout
        self._transport = transport
        self._servers: dict[str, ToolServer] = {}

    @property
    def servers(self) -> dict[str, ToolServer]:
        return dict(self._servers)

    def __len__(self) -> int:
        return len(self._servers)

    def __contains__(self, label: str) -> bool:
        return label in self._servers

    def add(self, label: str, url: str) -> ToolServer:
        """注册服务器；同名 label 会被替换（label 保持唯一）。"""
        server = ToolServer(label=label, url=url.rstrip("/"))
        self._servers[label] = server
        logger.info(f"Registered tool server {label} at {server.url}")
        return server

    def get(self, label: str) -> ToolServer:
        server = self._servers.get(label)
        if server is None:
            raise ToolServerError(label, f"Unknown MCP server: {label}")
        return server

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def fetch_catalog(self, label: str, url: str) -> list[ToolSpec]:
        """请求 {url}/tools 并解析工具列表。"""
        try:
            async with self._client() as client:
                r = await client.get(f"{url}/tools")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ToolServerError(label, f"{type(e).__name__}: {e}") from e

        if r.status_code >= 400:
            raise ToolServerError(label, f"HTTP {r.status_code}", r.status_code)

        try:
            data = r.json()
        except ValueError as e:
            raise ToolServerError(label, "Invalid tools format: response is not JSON", r.status_code) from e

        tools = data.get("tools", data) if isinstance(data, dict) else data
        if not isinstance(tools, list):
            raise ToolServerError(label, "Invalid tools format", r.status_code)
        try:
            return [ToolSpec.from_dict(t) for t in tools]
        except (KeyError, TypeError, AttributeError) as e:
            raise ToolServerError(label, f"Invalid tool descriptor: {e}", r.status_code) from e

    async def probe(self, url: str) -> bool:
        """检查某个地址是否像一个可用的工具服务器（用于启动时自动连接）。"""
        try:
            await self.fetch_catalog("probe", url.rstrip("/"))
        except ToolServerError as e:
            logger.debug(f"Tool server probe {url} failed: {e}")
            return False
        return True

    async def discover(self, label: str) -> list[ToolSpec]:
        """
        发现单个服务器的工具，成功后整体替换该服务器的目录。

        异常:
            ToolServerError: 未知 label、网络失败、非 2xx 状态或格式错误
        """
        server = self.get(label)
        catalog = await self.fetch_catalog(label, server.url)
        server.catalog = catalog
        logger.debug(f"Discovered {len(catalog)} tools on {label}")
        return catalog

    async def discover_all(self) -> DiscoveryReport:
        """依次发现所有服务器；每个 label 的失败只记录在 report.errors 中。"""
        report = DiscoveryReport()
        for label in list(self._servers):
            try:
                report.catalogs[label] = await self.discover(label)
            except ToolServerError as e:
                logger.warning(f"Discovery failed for {label}: {e}")
                report.errors[label] = str(e)
        return report

    async def call(self, label: str, tool: str, arguments: list[str]) -> Any:
        """
        调用服务器上的工具。

        参数:
            label: 服务器注册名
            tool: 工具名
            arguments: 位置参数列表（原样发送，不做本地校验）

        返回:
            服务器响应体中的 output 字段；没有该字段时返回整个响应体

        异常:
            ToolServerError: 携带服务器返回的状态码和错误信息
        """
        server = self.get(label)
        try:
            async with self._client() as client:
                r = await client.post(f"{server.url}/tools/{tool}", json={"arguments": arguments})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ToolServerError(label, f"{type(e).__name__}: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = None

        if r.status_code >= 400:
            detail = body.get("error") if isinstance(body, dict) else r.text
            raise ToolServerError(label, f"HTTP {r.status_code}: {detail or r.reason_phrase}", r.status_code)

        # 非 JSON 的成功响应按纯文本输出
        if body is None:
            return r.text
        if isinstance(body, dict) and "output" in body:
            return body["output"]
        return body
