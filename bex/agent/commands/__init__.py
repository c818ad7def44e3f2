"""
斜杠命令子包 (agent/commands)

模块职责：
    定义 bex 的全部斜杠命令，是操作者和自主循环操作外部世界的入口。
    命令系统采用"注册表模式"：
      - Command（基类）：统一的元数据和 execute(session, args) 接口
      - ConfirmingCommand：需要操作者确认的命令，不进入自主循环白名单
      - CommandRegistry（注册表）：静态命令表 + 分发

内置命令分组：
    - general: /help /menu /status /clear /save /provider /auto /multiline /quit
    - filesystem: /ls /read /write /append /delete /rename /download
    - search: /grep /glob /project /memory
    - shell: /exec /git
    - agent: /task /workflow /image
    - browser: /browser /visit /click /type /dump /screenshot /google /url /open
    - mcp: /mcp_list /mcp_add /mcp_tools /mcp_call
"""

from bex.agent.commands.base import Command, ConfirmingCommand
from bex.agent.commands.registry import CommandRegistry, DispatchResult, DispatchStatus

__all__ = ["Command", "CommandRegistry", "ConfirmingCommand", "DispatchResult", "DispatchStatus"]
