"""
守护进程监督者 - 进程角色划分与兜底错误处理。

两种进程角色由启动参数决定：
- supervisor（带 --daemon）：派生一个脱离终端的 worker 子进程，
  参数与自身相同，去掉 --daemon 再加上 --worker，然后立即退出；
  派生之后两者之间没有任何通信
- worker（带 --worker）：保持事件循环一直运行，由看门狗维护心跳

兜底错误处理（错误策略表中的 top_level → continue）：
    逃逸到事件循环或解释器顶层的同步/异步异常都会被记录日志后吞掉，
    进程不会因为意外错误而退出。这与 /task 循环中模型失败立即终止的策略
    是有意不一致的两种策略。
"""

import asyncio
import subprocess
import sys
from typing import Any, Callable

from loguru import logger

from bex.config.schema import Config
from bex.daemon.watchdog import Watchdog
from bex.errors import ErrorPolicy, Subsystem, policy_for
from bex.utils.helpers import get_logs_path

DAEMON_FLAG = "--daemon"
WORKER_FLAG = "--worker"


def worker_command(argv: list[str]) -> list[str]:
    """
    计算 worker 子进程的命令行。

    参数:
        argv: 当前进程的参数（不含程序名）

    返回:
        [python, -m, bex, --worker, *参数（去掉 --daemon）]
        --worker 是根命令的选项，必须放在子命令之前
    """
    args = [a for a in argv if a not in (DAEMON_FLAG, WORKER_FLAG)]
    return [sys.executable, "-m", "bex", WORKER_FLAG, *args]


def spawn_worker(argv: list[str], popen: Callable[..., Any] = subprocess.Popen) -> int:
    """
    派生脱离终端的 worker 进程（发射后不管）。

    返回:
        子进程 PID
    """
    cmd = worker_command(argv)
    proc = popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )
    logger.info(f"Spawned worker pid={proc.pid}: {' '.join(cmd)}")
    return proc.pid


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    message = context.get("message", "Unhandled error in event loop")
    if policy_for(Subsystem.TOP_LEVEL) != ErrorPolicy.CONTINUE:
        loop.default_exception_handler(context)
        return
    if exc is not None:
        logger.opt(exception=exc).error(f"Unhandled async error (suppressed): {message}")
    else:
        logger.error(f"Unhandled async error (suppressed): {message}")


def _excepthook(exc_type, exc, tb) -> None:
    if issubclass(exc_type, KeyboardInterrupt) or policy_for(Subsystem.TOP_LEVEL) != ErrorPolicy.CONTINUE:
        sys.__excepthook__(exc_type, exc, tb)
        return
    logger.opt(exception=(exc_type, exc, tb)).error(f"Unhandled error (suppressed): {exc}")


def install_crash_guard(loop: asyncio.AbstractEventLoop) -> None:
    """给事件循环和解释器顶层装上"记录并吞掉"的兜底处理器。"""
    loop.set_exception_handler(_loop_exception_handler)
    sys.excepthook = _excepthook


def add_worker_log_sink(config: Config) -> None:
    """worker 没有终端，日志写入 ~/.bex/logs/ 下的滚动文件。"""
    logger.add(
        get_logs_path() / config.daemon.log_file,
        rotation="10 MB",
        retention=5,
        enqueue=True,
    )


async def run_worker(config: Config, stop: asyncio.Event | None = None) -> None:
    """
    worker 主体：装上兜底处理器、启动看门狗，然后一直运行。

    参数:
        stop: 测试用的停止信号；为 None 时永远等待
    """
    install_crash_guard(asyncio.get_running_loop())
    watchdog = Watchdog(config.daemon.watchdog_interval_s, config.daemon.stale_after_s)
    await watchdog.start()
    logger.info("Worker running")
    try:
        await (stop or asyncio.Event()).wait()
    finally:
        watchdog.stop()
        logger.info("Worker stopped")
