"""
工具函数集合 - bex 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_logs_path, get_history_path
- 字符串工具：truncate_string, split_command
- 时间工具：timestamp_ms
"""

import time
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 bex 数据目录（~/.bex）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".bex")


def get_logs_path() -> Path:
    """获取日志目录（~/.bex/logs），守护进程的 worker 把日志写到这里。"""
    return ensure_dir(get_data_path() / "logs")


def get_history_path() -> Path:
    """获取交互式输入历史文件路径（~/.bex/history/cli_history）。"""
    return ensure_dir(get_data_path() / "history") / "cli_history"


def timestamp_ms() -> int:
    """当前时间的毫秒时间戳，用于截图、导出文件的默认文件名。"""
    return int(time.time() * 1000)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def split_command(line: str, prefix: str = "/") -> tuple[str, list[str]] | None:
    """
    把一行输入拆成（命令名, 位置参数）。

    按空白字符切分，不支持引号；第一个 token 必须以命令前缀开头，
    否则返回 None。返回的命令名不含前缀。

    例: "/write a.txt hello world" → ("write", ["a.txt", "hello", "world"])
    """
    parts = line.split()
    if not parts or not parts[0].startswith(prefix) or len(parts[0]) <= len(prefix):
        return None
    return parts[0][len(prefix):], parts[1:]
