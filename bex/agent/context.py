"""
上下文构建器模块 —— 负责组装发给模型的系统提示词。

系统提示词由两部分拼接：
  1. 基础指令 —— bex 的身份和完整命令清单（模型据此输出命令）
  2. 项目上下文 —— 当前工作目录下的 GEMINI.md（存在时才拼接）

每次请求都重新构建，所以在会话中途编辑 GEMINI.md 会立即生效。
"""

from pathlib import Path

BASE_INSTRUCTIONS = """You are BEX, a powerful AI CLI agent.
- You are running in a terminal environment.
- You can execute system commands, manage files, browse the web, search code, and analyze projects using the provided commands.
- Be concise, technical, and helpful.
- When providing code, use markdown blocks.
- If the user asks to perform a system action, suggest the appropriate command.
- Messages starting with "SYSTEM INFO:" carry command results, not user requests.

You have access to the following commands. Output the command to use them:

{commands}

Use these commands to fulfill user requests. For complex tasks, use /task to start an autonomous workflow.
You may also answer with a JSON array of command strings; when auto-execution is on, each one is run in order."""


class ContextBuilder:
    """
    系统提示词构建器。

    属性:
        workspace: 读取项目上下文文件的目录
        context_file: 项目上下文文件名（默认 GEMINI.md）
        command_help: 命令清单文本，由 CommandRegistry.describe() 生成
    """

    def __init__(self, workspace: Path | None = None, context_file: str = "GEMINI.md", command_help: str = ""):
        self.workspace = workspace
        self.context_file = context_file
        self.command_help = command_help

    def build_system_prompt(self) -> str:
        """拼接基础指令和项目上下文。"""
        prompt = BASE_INSTRUCTIONS.format(commands=self.command_help or "(none)")
        project = self._load_project_context()
        if project:
            prompt += (
                f"\n\n## PROJECT CONTEXT ({self.context_file})\n"
                f"The user has provided the following context for this project:\n{project}"
            )
        return prompt

    def _load_project_context(self) -> str:
        path = (self.workspace or Path.cwd()) / self.context_file
        if path.is_file():
            return path.read_text(encoding="utf-8")
        return ""
