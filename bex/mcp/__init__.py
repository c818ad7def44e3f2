"""远程工具服务器客户端模块。"""

from bex.mcp.client import DiscoveryReport, ToolClient, ToolServer, ToolSpec

__all__ = ["DiscoveryReport", "ToolClient", "ToolServer", "ToolSpec"]
