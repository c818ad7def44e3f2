"""
搜索与分析命令：/grep /glob /project /memory。

目录遍历统一跳过隐藏目录和 node_modules。
"""

from __future__ import annotations

import fnmatch
import json
import os
from collections import Counter
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

from bex.agent.commands.base import Command
from bex.session.manager import Turn

if TYPE_CHECKING:
    from bex.agent.state import AgentSession

SKIP_DIRS = {"node_modules", "__pycache__"}
MAX_GREP_RESULTS = 50


def walk_files(root: Path) -> Iterator[Path]:
    """递归列出 root 下的普通文件（跳过隐藏目录、隐藏文件和 SKIP_DIRS）。"""
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS)
        for name in sorted(filenames):
            if not name.startswith("."):
                yield Path(dirpath) / name


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError):
        # 二进制或不可读文件
        return None


class GrepCommand(Command):
    name = "grep"
    usage = "<pattern> [file]"
    description = "Search for text patterns in files"
    category = "Search & Analysis"
    min_args = 1

    def execute(self, session: AgentSession, args: list[str]) -> None:
        pattern = args[0]
        files = [Path(args[1])] if len(args) > 1 else walk_files(Path("."))

        results = []
        for path in files:
            text = _read_text(path)
            if text is None:
                continue
            for i, line in enumerate(text.splitlines(), start=1):
                if pattern in line:
                    results.append(f"{path}:{i}:{line.strip()}")

        if not results:
            session.reporter.info("No matches found.")
            return
        session.reporter.success(f"Found {len(results)} matches:")
        session.reporter.info("\n".join(results[:MAX_GREP_RESULTS]))
        if len(results) > MAX_GREP_RESULTS:
            session.reporter.info(f"... and {len(results) - MAX_GREP_RESULTS} more matches")
        session.conversation.append(
            Turn.system(f"Output of /grep {pattern}:\n" + "\n".join(results[:MAX_GREP_RESULTS]))
        )


class GlobCommand(Command):
    name = "glob"
    usage = "<pattern>"
    description = "Find files using glob patterns"
    category = "Search & Analysis"
    min_args = 1

    def execute(self, session: AgentSession, args: list[str]) -> None:
        pattern = args[0]
        results = []
        for path in walk_files(Path(".")):
            rel = path.as_posix().removeprefix("./")
            # 不带通配符时按子串匹配
            if any(ch in pattern for ch in "*?["):
                if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(path.name, pattern):
                    results.append(rel)
            elif pattern in rel:
                results.append(rel)

        if not results:
            session.reporter.info("No files found matching pattern.")
            return
        session.reporter.success(f"Found {len(results)} files:")
        session.reporter.info("\n".join(f"  {r}" for r in results))
        session.conversation.append(Turn.system(f"Files matching {pattern}:\n" + "\n".join(results)))


class ProjectCommand(Command):
    name = "project"
    description = "Analyze project structure and statistics"
    category = "Search & Analysis"

    def execute(self, session: AgentSession, args: list[str]) -> None:
        files = 0
        dirs = 0
        total_size = 0
        extensions: Counter[str] = Counter()
        for dirpath, dirnames, filenames in os.walk("."):
            dirnames[:] = [d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS]
            dirs += len(dirnames)
            for name in filenames:
                if name.startswith("."):
                    continue
                files += 1
                try:
                    total_size += (Path(dirpath) / name).stat().st_size
                except OSError:
                    continue
                extensions[Path(name).suffix or "no-ext"] += 1

        top = extensions.most_common(10)
        summary = [
            f"Files: {files}",
            f"Directories: {dirs}",
            f"Total Size: {total_size / 1024 / 1024:.2f} MB",
            "File Extensions:",
            *(f"  {ext}: {count} files" for ext, count in top),
        ]
        session.reporter.success("Project Summary:")
        session.reporter.info("\n".join(summary))
        session.conversation.append(Turn.system("Project summary:\n" + "\n".join(summary)))


class MemoryCommand(Command):
    name = "memory"
    description = "Discover documentation/memory files (.md, .txt)"
    category = "Search & Analysis"

    # 只收录有实际内容的文件
    MIN_CHARS = 100
    MAX_CHARS = 2000

    def execute(self, session: AgentSession, args: list[str]) -> None:
        found = []
        for path in walk_files(Path(".")):
            if path.suffix not in (".md", ".txt"):
                continue
            text = _read_text(path)
            if text is None or len(text) <= self.MIN_CHARS:
                continue
            found.append({
                "path": path.as_posix().removeprefix("./"),
                "content": text[: self.MAX_CHARS] + ("..." if len(text) > self.MAX_CHARS else ""),
                "size": len(text),
            })

        if not found:
            session.reporter.info("No memory files found (.md, .txt).")
            return
        session.reporter.success(f"Found {len(found)} memory files:")
        for item in found:
            session.reporter.info(f"{item['path']} ({item['size'] / 1024:.1f} KB)")
        session.conversation.append(Turn.system(f"Memory files found: {json.dumps(found, ensure_ascii=False)}"))
