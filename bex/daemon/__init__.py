"""守护进程模块：supervisor/worker 角色和心跳看门狗。"""

from bex.daemon.supervisor import install_crash_guard, run_worker, spawn_worker
from bex.daemon.watchdog import Watchdog

__all__ = ["Watchdog", "install_crash_guard", "run_worker", "spawn_worker"]
