"""
会话存储实现模块 - 对话历史的追加、持久化、快照与恢复。

本模块包含：
- Role：轮次角色枚举（user / model / system）
- Turn：单条对话轮次（不可变）
- ConversationStore：有序的轮次序列，进程内唯一的对话历史所有者

【存储格式 - JSON 快照】
与按行追加的 JSONL 不同，这里的持久化是"整体覆盖"：
每追加一条 model 轮次，就把完整的轮次数组写成一个 JSON 文档：

    [
      {"role": "user", "content": "..."},
      {"role": "model", "content": "..."}
    ]

启动时文件存在即原样恢复，不存在即空历史。

【只追加】
轮次只能追加，唯一的删除操作是 clear()（清空内存并删除快照文件），
不支持删除或修改中间的某一条。

【Java 开发者类比】
- Turn 类似于 Java 16 的 record
- ConversationStore 类似于一个只允许 add/clear 的 ArrayList，附带落盘逻辑
"""

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

SYSTEM_PREFIX = "SYSTEM INFO: "


class Role(str, Enum):
    """轮次角色。system 轮次用于把命令/工具的结果回填给模型。"""
    USER = "user"
    MODEL = "model"
    SYSTEM = "system"


@dataclass(frozen=True)
class Turn:
    """
    单条对话轮次。

    属性:
        role: 角色
        content: 文本内容
    """

    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "Turn":
        return cls(Role.USER, content)

    @classmethod
    def model(cls, content: str) -> "Turn":
        return cls(Role.MODEL, content)

    @classmethod
    def system(cls, content: str) -> "Turn":
        return cls(Role.SYSTEM, content)

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ConversationStore:
    """
    对话历史存储。

    属性:
        path: 快照文件路径；为 None 时只在内存中保存（测试和一次性任务使用）
        turns: 只读视图，返回轮次列表的副本
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._turns: list[Turn] = []

    @property
    def turns(self) -> list[Turn]:
        return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self):
        return iter(list(self._turns))

    def count(self, role: Role) -> int:
        """统计某个角色的轮次数量。"""
        return sum(1 for t in self._turns if t.role == role)

    def append(self, turn: Turn) -> None:
        """
        追加一条轮次。

        model 轮次追加后立即把完整快照写盘（覆盖写）。
        """
        self._turns.append(turn)
        if turn.role == Role.MODEL:
            self.save()

    def clear(self) -> None:
        """清空全部轮次并删除快照文件。"""
        self._turns = []
        if self.path and self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed conversation snapshot {self.path}")

    def snapshot(self) -> str:
        """把当前轮次序列序列化为 JSON 文本。"""
        return json.dumps([t.to_dict() for t in self._turns], indent=2, ensure_ascii=False)

    @staticmethod
    def restore(serialized: str) -> list[Turn]:
        """
        从 snapshot() 的输出还原轮次序列。

        未知角色或缺少字段的条目会引发 ValueError，由调用方决定如何处理。
        """
        data = json.loads(serialized)
        if not isinstance(data, list):
            raise ValueError("Conversation snapshot must be a JSON array")
        turns = []
        for item in data:
            try:
                turns.append(Turn(Role(item["role"]), str(item["content"])))
            except (KeyError, TypeError) as e:
                raise ValueError(f"Malformed turn in snapshot: {item!r}") from e
        return turns

    def save(self) -> None:
        """把快照写入 path（path 为 None 时什么也不做）。"""
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.snapshot(), encoding="utf-8")

    def load(self) -> int:
        """
        启动时从快照文件恢复历史。

        返回:
            恢复的轮次数。文件不存在返回 0；文件损坏时记录警告，保持空历史。
        """
        if self.path is None or not self.path.exists():
            return 0
        try:
            self._turns = self.restore(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as e:
            logger.warning(f"Failed to load conversation from {self.path}: {e}")
            self._turns = []
        return len(self._turns)

    def to_messages(self, role_map: dict[str, str], system_prefix: str = SYSTEM_PREFIX) -> list[dict[str, Any]]:
        """
        构建发给模型的消息列表。

        每个后端通过 role_map 把内部角色映射到自己协议的词汇，
        system 轮次的内容加上 system_prefix，让模型把它当作"信息"而非指令。

        参数:
            role_map: 内部角色名 → 协议角色名
            system_prefix: system 轮次的文本前缀
        """
        messages = []
        for t in self._turns:
            content = f"{system_prefix}{t.content}" if t.role == Role.SYSTEM else t.content
            messages.append({"role": role_map.get(t.role.value, t.role.value), "content": content})
        return messages

    def export_markdown(self, path: Path) -> Path:
        """把对话导出为 Markdown 文档（/save 使用）。"""
        lines = [f"# bex conversation ({datetime.now().isoformat(timespec='seconds')})", ""]
        for t in self._turns:
            lines.append(f"## {t.role.value}")
            lines.append("")
            lines.append(t.content)
            lines.append("")
        path.write_text("\n".join(lines), encoding="utf-8")
        return path
