"""Tests for the supervisor/worker split, the crash guard and the watchdog."""

import asyncio
import subprocess
import sys

import pytest

from bex.config.schema import Config
from bex.daemon import supervisor
from bex.daemon.supervisor import install_crash_guard, run_worker, spawn_worker, worker_command
from bex.daemon.watchdog import Watchdog


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeProcess:
    pid = 4242


class TestWorkerSpawn:
    def test_worker_command_swaps_flags(self):
        cmd = worker_command(["--daemon", "--logs"])
        assert cmd == [sys.executable, "-m", "bex", "--worker", "--logs"]

    def test_worker_flag_goes_before_subcommand(self):
        cmd = worker_command(["status", "--daemon"])
        assert cmd[3:] == ["--worker", "status"]

    def test_spawn_is_detached(self):
        calls = []

        def fake_popen(cmd, **kwargs):
            calls.append((cmd, kwargs))
            return FakeProcess()

        pid = spawn_worker(["--daemon"], popen=fake_popen)

        assert pid == 4242
        cmd, kwargs = calls[0]
        assert "--worker" in cmd and "--daemon" not in cmd
        assert kwargs["start_new_session"] is True
        assert kwargs["stdin"] is subprocess.DEVNULL
        assert kwargs["stdout"] is subprocess.DEVNULL


class TestWatchdog:
    def test_fresh_heartbeat_is_left_alone(self):
        clock = FakeClock()
        dog = Watchdog(interval_s=5, stale_after_s=15, clock=clock)
        clock.now = 10
        assert dog.check() is False
        assert dog.resets == 0

    def test_stale_heartbeat_is_reset(self):
        clock = FakeClock()
        dog = Watchdog(interval_s=5, stale_after_s=15, clock=clock)
        clock.now = 16

        assert dog.check() is True
        assert dog.heartbeat == 16
        assert dog.resets == 1
        assert dog.age == 0

    def test_touch_refreshes_heartbeat(self):
        clock = FakeClock()
        dog = Watchdog(clock=clock)
        clock.now = 14
        dog.touch()
        clock.now = 20
        assert dog.check() is False

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        dog = Watchdog(interval_s=0.01, stale_after_s=100)
        await dog.start()
        assert dog.is_running
        await asyncio.sleep(0.03)
        dog.stop()
        assert not dog.is_running

    def test_session_touch_feeds_watchdog(self, session):
        clock = FakeClock()
        session.watchdog = Watchdog(clock=clock)
        clock.now = 30
        session.touch()
        assert session.watchdog.age == 0


class TestCrashGuard:
    @pytest.mark.asyncio
    async def test_async_errors_are_logged_not_raised(self):
        loop = asyncio.get_running_loop()
        previous_handler = loop.get_exception_handler()
        previous_hook = sys.excepthook
        try:
            install_crash_guard(loop)
            loop.call_exception_handler({"message": "stray", "exception": RuntimeError("boom")})
            assert sys.excepthook is supervisor._excepthook
        finally:
            loop.set_exception_handler(previous_handler)
            sys.excepthook = previous_hook

    def test_excepthook_swallows_errors(self, monkeypatch):
        seen = []
        monkeypatch.setattr(sys, "__excepthook__", lambda *a: seen.append(a))

        supervisor._excepthook(RuntimeError, RuntimeError("boom"), None)
        assert seen == []

        supervisor._excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_run_worker_until_stopped(self):
        loop = asyncio.get_running_loop()
        previous_handler = loop.get_exception_handler()
        previous_hook = sys.excepthook
        stop = asyncio.Event()
        config = Config()
        config.daemon.watchdog_interval_s = 0.01
        try:
            worker = asyncio.create_task(run_worker(config, stop=stop))
            await asyncio.sleep(0.03)
            assert not worker.done()
            stop.set()
            await asyncio.wait_for(worker, timeout=1)
        finally:
            loop.set_exception_handler(previous_handler)
            sys.excepthook = previous_hook
