"""Tests for the bounded autonomous task loop."""

import pytest

from bex.agent.loop import AgentLoop, TaskState
from bex.errors import ErrorPolicy
from bex.session.manager import Role, Turn


class TestTerminalStates:
    @pytest.mark.asyncio
    async def test_done_on_first_step(self, runtime, session, primary):
        primary.script = ["/done"]
        before = len(session.conversation)

        task = await runtime.loop.run(session, "say hi", max_steps=5)

        assert task.state == TaskState.DONE
        assert task.step == 1
        assert len(session.conversation) == before + 2
        assert session.conversation.turns[-2].role == Role.USER
        assert session.conversation.turns[-1] == Turn.model("/done")

    @pytest.mark.asyncio
    async def test_completion_token_ignores_case_and_whitespace(self, runtime, session, primary):
        primary.script = ["  /DONE \n"]
        task = await runtime.loop.run(session, "goal", max_steps=2)
        assert task.state == TaskState.DONE

    @pytest.mark.asyncio
    async def test_max_steps_reached_without_error(self, runtime, session, primary):
        primary.script = ["thinking...", "still thinking", "almost"]

        task = await runtime.loop.run(session, "never finishes", max_steps=3)

        assert task.state == TaskState.MAX_STEPS_REACHED
        assert task.step == 3
        assert len(primary.calls) == 3
        assert session.conversation.count(Role.MODEL) == 3

    @pytest.mark.asyncio
    async def test_provider_failure_aborts(self, runtime, session, reporter, primary, secondary):
        primary.script = [RuntimeError("primary down")]
        secondary.script = [RuntimeError("secondary down")]

        task = await runtime.loop.run(session, "goal", max_steps=5)

        assert task.state == TaskState.ABORTED
        assert task.step == 1
        assert "secondary down" in task.error
        assert reporter.errors == [f"Agent aborted: {task.error}"]

    @pytest.mark.asyncio
    async def test_provider_failure_can_continue_when_configured(self, runtime, session, primary, secondary):
        loop = AgentLoop(runtime.gateway, runtime.registry, max_steps=2, on_provider_error=ErrorPolicy.CONTINUE)
        primary.script = [RuntimeError("down"), RuntimeError("down")]
        secondary.script = [RuntimeError("down"), RuntimeError("down")]

        task = await loop.run(session, "goal")

        assert task.state == TaskState.MAX_STEPS_REACHED
        assert session.conversation.count(Role.SYSTEM) == 2
        assert session.conversation.turns[-1].content.startswith("Provider error:")

    @pytest.mark.asyncio
    async def test_each_run_starts_fresh(self, runtime, session, primary):
        primary.script = ["nothing", "/done"]
        first = await runtime.loop.run(session, "one", max_steps=1)
        second = await runtime.loop.run(session, "two", max_steps=1)

        assert first.state == TaskState.MAX_STEPS_REACHED
        assert second.state == TaskState.DONE
        assert second.step == 1


class TestCommandExecution:
    @pytest.mark.asyncio
    async def test_ls_then_done(self, runtime, session, primary, isolated_cwd):
        (isolated_cwd / "readme.md").write_text("hi")
        primary.script = ["/ls .", "/done"]

        task = await runtime.loop.run(session, "list files", max_steps=5)

        assert task.state == TaskState.DONE
        assert task.step == 2
        contents = [t.content for t in session.conversation.turns]
        assert "Output of /ls .:\nreadme.md" in contents
        # 第二次调用时模型能看到 /ls 的结果
        assert any("readme.md" in m["content"] for m in primary.calls[1] if isinstance(m["content"], str))

    @pytest.mark.asyncio
    async def test_list_files_scenario(self, runtime, session, primary, isolated_cwd):
        (isolated_cwd / "main.py").write_text("print('hi')")
        primary.script = ["/ls .", "/ls .", "/done"]

        task = await runtime.loop.run(session, "list files", max_steps=3)

        assert task.state == TaskState.DONE
        assert task.step == 3
        assert session.conversation.count(Role.MODEL) == 3
        assert session.conversation.count(Role.SYSTEM) >= 2

    @pytest.mark.asyncio
    async def test_confirming_command_is_rejected(self, runtime, session, reporter, primary, isolated_cwd):
        target = isolated_cwd / "keep.txt"
        target.write_text("x")
        primary.script = ["/delete keep.txt", "/done"]

        task = await runtime.loop.run(session, "clean up", max_steps=3)

        assert task.state == TaskState.DONE
        assert target.exists()
        assert reporter.questions == []
        assert Turn.system("Unknown command: /delete") in session.conversation.turns

    @pytest.mark.asyncio
    async def test_failed_command_is_fed_back(self, runtime, session, primary):
        primary.script = ["/read missing.txt", "/done"]

        await runtime.loop.run(session, "read it", max_steps=3)

        failures = [t for t in session.conversation.turns if t.content.startswith("Command /read failed:")]
        assert len(failures) == 1

    @pytest.mark.asyncio
    async def test_plain_text_action_is_not_executed(self, runtime, session, primary):
        primary.script = ["I will now list files", "/done"]

        task = await runtime.loop.run(session, "goal", max_steps=3)

        assert task.state == TaskState.DONE
        assert session.conversation.count(Role.SYSTEM) == 0


class TestGoalPrompt:
    def test_lists_only_unattended_commands(self, runtime):
        prompt = runtime.loop.build_goal_prompt("tidy the repo")

        assert prompt.startswith("GOAL: tidy the repo")
        assert "/ls [path]" in prompt
        assert "/delete" not in prompt
        assert '"/done"' in prompt
