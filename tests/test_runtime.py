"""Tests for the runtime: input routing, startup, plans and the agent commands."""

import pytest

from bex.agent.runtime import GREETING_PROMPT, LOCAL_SERVER_LABEL, parse_plan
from bex.providers.base import ProviderMode
from bex.session.manager import Role, Turn


class TestChat:
    @pytest.mark.asyncio
    async def test_plain_text_goes_to_model(self, runtime, session, reporter, primary):
        primary.script = ["hi there"]

        await runtime.handle_input("hello")

        assert session.conversation.turns == [Turn.user("hello"), Turn.model("hi there")]
        assert reporter.responses == ["hi there"]

    @pytest.mark.asyncio
    async def test_provider_error_is_one_line(self, runtime, session, reporter, primary, secondary):
        primary.script = [RuntimeError("down")]
        secondary.script = [RuntimeError("also down")]

        await runtime.handle_input("hello")

        assert reporter.errors == ["Error: also down"]
        assert session.conversation.turns == [Turn.user("hello")]

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, runtime, session, primary):
        await runtime.handle_input("   ")
        assert primary.calls == []
        assert len(session.conversation) == 0


class TestPlans:
    def test_parse_plan(self):
        assert parse_plan('["/ls .", "/read a.txt"]') == ["/ls .", "/read a.txt"]
        assert parse_plan("  []  ") == []
        assert parse_plan("[1, 2]") is None
        assert parse_plan("[not json]") is None
        assert parse_plan("Here is a plan: [\"/ls\"]") is None

    @pytest.mark.asyncio
    async def test_plan_runs_only_when_auto_enabled(self, runtime, session, primary, isolated_cwd):
        primary.script = ['["/write plan.txt done"]', '["/write plan.txt done"]']

        await runtime.handle_input("make a plan")
        assert not (isolated_cwd / "plan.txt").exists()

        await runtime.handle_input("/auto")
        assert session.auto_execute is True
        await runtime.handle_input("make a plan")
        assert (isolated_cwd / "plan.txt").read_text() == "done"


class TestMultiline:
    @pytest.mark.asyncio
    async def test_buffered_lines_are_sent_together(self, runtime, session, primary):
        primary.script = ["got it"]
        await runtime.handle_input("/multiline")
        assert session.multiline is True

        for line in ["<<<", "first line", "second line", ">>>"]:
            await runtime.handle_input(line)

        assert session.conversation.turns[0] == Turn.user("first line\nsecond line")
        assert session.multiline_buffer == []

    @pytest.mark.asyncio
    async def test_commands_pass_through_when_buffer_empty(self, runtime, session):
        await runtime.handle_input("/multiline")
        await runtime.handle_input("/multiline")
        assert session.multiline is False

    def test_prompt_label(self, runtime, session):
        session.mode = ProviderMode.SECONDARY
        session.auto_execute = True
        assert runtime.prompt_label == "[secondary:AUTO]"


class TestStart:
    def test_injected_empty_tool_client_is_kept(self, runtime, tool_client):
        assert len(tool_client) == 0
        assert runtime.session.tools is tool_client

    @pytest.mark.asyncio
    async def test_greeting_is_ephemeral(self, runtime, session, primary):
        primary.script = ["Hello, I am BEX."]

        await runtime.start()

        assert primary.calls[0][-1] == {"role": "user", "content": GREETING_PROMPT}
        assert session.conversation.turns == [Turn.model("Hello, I am BEX.")]

    @pytest.mark.asyncio
    async def test_restored_history_skips_greeting(self, runtime, session, reporter, primary, conversation):
        conversation.append(Turn.user("old"))
        conversation.append(Turn.model("old reply"))
        conversation._turns = []

        await runtime.start()

        assert primary.calls == []
        assert len(session.conversation) == 2
        assert reporter.infos[0] == "Restored agent memory (2 turns)."

    @pytest.mark.asyncio
    async def test_autoconnect_registers_local_server(self, runtime, session, config, tool_handler):
        config.tools.mcp.autoconnect = True
        config.tools.mcp.local_url = "http://files.test"
        tool_handler[("GET", "files.test/tools")] = (200, {"tools": []})

        await runtime.start(greet=False)

        assert LOCAL_SERVER_LABEL in session.tools

    @pytest.mark.asyncio
    async def test_unreachable_local_server_is_skipped(self, runtime, session, config):
        config.tools.mcp.autoconnect = True
        config.tools.mcp.local_url = "http://nothing.test"

        await runtime.start(greet=False)

        assert LOCAL_SERVER_LABEL not in session.tools

    @pytest.mark.asyncio
    async def test_preset_servers_registered(self, runtime, session, config):
        config.tools.mcp.servers = {"docs": "http://docs.test"}
        await runtime.start(greet=False)
        assert "docs" in session.tools


class TestAgentCommands:
    @pytest.mark.asyncio
    async def test_workflow_runs_each_line(self, runtime, session, isolated_cwd):
        (isolated_cwd / "steps.txt").write_text("/write a.txt one\n\n/write b.txt two\n")

        await runtime.handle_input("/workflow steps.txt")

        assert (isolated_cwd / "a.txt").read_text() == "one"
        assert (isolated_cwd / "b.txt").read_text() == "two"

    @pytest.mark.asyncio
    async def test_image_sets_pending_attachment(self, runtime, session, isolated_cwd):
        (isolated_cwd / "cat.png").write_bytes(b"\x89PNG")

        await runtime.handle_input("/image cat.png")

        assert session.pending_attachment.mime == "image/png"
        assert session.pending_attachment.source == "cat.png"

    @pytest.mark.asyncio
    async def test_image_rejects_non_images(self, runtime, session, reporter, isolated_cwd):
        (isolated_cwd / "notes.txt").write_text("x")

        await runtime.handle_input("/image notes.txt")

        assert session.pending_attachment is None
        assert reporter.errors == ["Not an image file: notes.txt"]

    @pytest.mark.asyncio
    async def test_task_command_reports_state(self, runtime, session, reporter, primary):
        primary.script = ["/done"]

        await runtime.handle_input("/task finish quickly")

        assert "Task finished: done after 1 steps" in reporter.infos
        assert session.conversation.count(Role.MODEL) == 1


class TestContext:
    def test_project_context_file_is_appended(self, runtime, tmp_path):
        (tmp_path / "GEMINI.md").write_text("Use tabs, not spaces.")
        prompt = runtime.context.build_system_prompt()
        assert "## PROJECT CONTEXT (GEMINI.md)" in prompt
        assert "Use tabs, not spaces." in prompt
        assert "/mcp_call <label> <tool> [args...]" in prompt

    def test_no_context_file(self, runtime):
        assert "PROJECT CONTEXT" not in runtime.context.build_system_prompt()
