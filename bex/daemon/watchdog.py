"""
看门狗实现 - 维护一个心跳时间戳作为进程存活信号。

工作方式：
- 每处理一条输入就调用 touch() 刷新心跳
- 后台循环每隔 interval_s 秒检查一次，心跳超过 stale_after_s 秒未刷新时将其重置

看门狗唯一的纠正动作就是重置心跳：它不重启也不杀任何东西，
所以它只是一个存活信号，而不是强制机制。

架构设计：
- 基于 asyncio.Task 的定期循环
- 时钟可注入，测试时不需要真的等待
"""

import asyncio
import time
from typing import Callable

from loguru import logger

DEFAULT_INTERVAL_S = 5.0
DEFAULT_STALE_AFTER_S = 15.0


class Watchdog:
    """
    心跳看门狗。

    属性:
        interval_s: 检查间隔（秒）
        stale_after_s: 心跳过期阈值（秒）
        heartbeat: 最近一次心跳的时间戳
        resets: 累计重置次数
    """

    def __init__(
        self,
        interval_s: float = DEFAULT_INTERVAL_S,
        stale_after_s: float = DEFAULT_STALE_AFTER_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval_s = interval_s
        self.stale_after_s = stale_after_s
        self._clock = clock
        self.heartbeat = clock()
        self.resets = 0
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def age(self) -> float:
        """距离上一次心跳的秒数。"""
        return self._clock() - self.heartbeat

    @property
    def is_running(self) -> bool:
        return self._running

    def touch(self) -> None:
        """刷新心跳。"""
        self.heartbeat = self._clock()

    def check(self) -> bool:
        """
        执行一次检查。

        返回:
            True 表示心跳已过期并被重置
        """
        if self.age <= self.stale_after_s:
            return False
        logger.debug(f"Watchdog: heartbeat stale ({self.age:.1f}s), resetting")
        self.touch()
        self.resets += 1
        return True

    async def start(self) -> None:
        """启动后台检查循环。"""
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Watchdog started (every {self.interval_s}s, stale after {self.stale_after_s}s)")

    def stop(self) -> None:
        """停止检查循环。"""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    self.check()
            except asyncio.CancelledError:
                break
