"""
错误类型与错误策略表 (errors.py)
=================================
本模块集中定义 bex 的异常层次和"子系统 → 错误策略"映射表。

异常层次：
    BexError
    ├── ProviderError    - 模型后端调用失败（携带后端名称）
    ├── ToolServerError  - 远程工具服务器请求失败（携带 label 和 HTTP 状态码）
    └── CommandError     - 命令处理器内部的用法错误

错误策略表：
    各子系统遇到错误时的处理方式不再散落在各自的 try/except 里，
    而是统一在 ERROR_POLICIES 中声明，调用方通过 policy_for() 查询：

    | 子系统        | 策略      | 含义                                         |
    |---------------|-----------|----------------------------------------------|
    | command       | continue  | 分发层捕获、输出一行错误、会话继续            |
    | provider      | fallback  | 自动模式下切换到备用后端；显式模式直接抛出    |
    | tool_server   | continue  | 按 label 隔离，不影响其他服务器               |
    | agent_loop    | abort     | 任务循环中模型调用失败立即终止本次任务        |
    | top_level     | continue  | 进程级兜底：记录日志后吞掉，进程不退出        |

    注意 agent_loop 的 abort 与 top_level 的 continue 是有意不一致的两种策略。
"""

from enum import Enum


class BexError(Exception):
    """bex 所有业务异常的基类。"""


class ProviderError(BexError):
    """
    模型后端调用失败。

    属性:
        provider: 失败的后端名称（如 "gemini"）
    """

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ToolServerError(BexError):
    """
    远程工具服务器请求失败。

    属性:
        label: 工具服务器的注册名
        status: HTTP 状态码；网络层失败（连接被拒等）时为 None
    """

    def __init__(self, label: str, message: str, status: int | None = None):
        super().__init__(message)
        self.label = label
        self.status = status


class CommandError(BexError):
    """命令处理器的用法错误，分发层会把它当作一行错误信息输出。"""


class Subsystem(str, Enum):
    """可能产生错误的子系统。"""
    COMMAND = "command"
    PROVIDER = "provider"
    TOOL_SERVER = "tool_server"
    AGENT_LOOP = "agent_loop"
    TOP_LEVEL = "top_level"


class ErrorPolicy(str, Enum):
    """错误发生后的处理策略。"""
    FALLBACK = "fallback"  # 换一个后端重试同一请求
    ABORT = "abort"        # 终止当前的逻辑单元（如一次 /task）
    CONTINUE = "continue"  # 报告后继续


ERROR_POLICIES: dict[Subsystem, ErrorPolicy] = {
    Subsystem.COMMAND: ErrorPolicy.CONTINUE,
    Subsystem.PROVIDER: ErrorPolicy.FALLBACK,
    Subsystem.TOOL_SERVER: ErrorPolicy.CONTINUE,
    Subsystem.AGENT_LOOP: ErrorPolicy.ABORT,
    Subsystem.TOP_LEVEL: ErrorPolicy.CONTINUE,
}


def policy_for(subsystem: Subsystem) -> ErrorPolicy:
    """查询某个子系统的错误策略。"""
    return ERROR_POLICIES[subsystem]
