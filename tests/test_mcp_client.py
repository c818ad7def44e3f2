"""Tests for the HTTP tool-server client and the /mcp_* commands."""

import json

import httpx
import pytest

from bex.errors import ToolServerError
from bex.mcp.client import ToolClient
from bex.session.manager import Role

READ_FILE = {
    "name": "read_file",
    "description": "Read a file",
    "input_schema": {"type": "object", "properties": {"path": {"type": "string"}}},
}
LIST_DIR = {"name": "list_dir", "description": "List a directory", "input_schema": {}}


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_discover_parses_catalog(self, tool_client, tool_handler):
        tool_handler[("GET", "files.test/tools")] = (200, {"tools": [READ_FILE, LIST_DIR]})
        tool_client.add("files", "http://files.test/")

        catalog = await tool_client.discover("files")

        assert [t.name for t in catalog] == ["read_file", "list_dir"]
        assert catalog[0].input_schema["properties"]["path"]["type"] == "string"
        assert tool_client.get("files").catalog == catalog

    @pytest.mark.asyncio
    async def test_bare_list_is_accepted(self, tool_client, tool_handler):
        tool_handler[("GET", "files.test/tools")] = (200, [LIST_DIR])
        tool_client.add("files", "http://files.test")

        assert [t.name for t in await tool_client.discover("files")] == ["list_dir"]

    @pytest.mark.asyncio
    async def test_rediscovery_replaces_catalog(self, tool_client, tool_handler):
        tool_client.add("files", "http://files.test")
        tool_handler[("GET", "files.test/tools")] = (200, {"tools": [READ_FILE, LIST_DIR]})
        await tool_client.discover("files")

        tool_handler[("GET", "files.test/tools")] = (200, {"tools": [LIST_DIR]})
        await tool_client.discover("files")

        assert [t.name for t in tool_client.get("files").catalog] == ["list_dir"]

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_label(self, tool_client, tool_handler):
        tool_handler[("GET", "a.test/tools")] = (200, {"tools": [READ_FILE]})
        tool_handler[("GET", "b.test/tools")] = (500, {"error": "broken"})
        tool_handler[("GET", "c.test/tools")] = (200, {"tools": [LIST_DIR]})
        tool_client.add("a", "http://a.test")
        tool_client.add("b", "http://b.test")
        tool_client.add("c", "http://c.test")

        report = await tool_client.discover_all()

        assert set(report.catalogs) == {"a", "c"}
        assert set(report.errors) == {"b"}
        assert [(label, t.name) for label, t in report.tools] == [("a", "read_file"), ("c", "list_dir")]

    @pytest.mark.asyncio
    async def test_invalid_format(self, tool_client, tool_handler):
        tool_handler[("GET", "files.test/tools")] = (200, {"tools": "nope"})
        tool_client.add("files", "http://files.test")

        with pytest.raises(ToolServerError, match="Invalid tools format"):
            await tool_client.discover("files")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = ToolClient(transport=httpx.MockTransport(handler))
        client.add("files", "http://localhost:4000")

        with pytest.raises(ToolServerError) as exc:
            await client.discover("files")
        assert exc.value.status is None
        assert await client.probe("http://localhost:4000") is False

    @pytest.mark.asyncio
    async def test_malformed_url_is_isolated_to_its_label(self, tool_client, tool_handler):
        tool_handler[("GET", "good.test/tools")] = (200, {"tools": [LIST_DIR]})
        tool_client.add("bad", "http://[::1")
        tool_client.add("good", "http://good.test")

        report = await tool_client.discover_all()

        assert set(report.catalogs) == {"good"}
        assert set(report.errors) == {"bad"}
        assert report.errors["bad"].startswith("InvalidURL")

    @pytest.mark.asyncio
    async def test_call_with_malformed_url_raises_tool_error(self, tool_client):
        tool_client.add("bad", "http://[::1")

        with pytest.raises(ToolServerError) as exc:
            await tool_client.call("bad", "read_file", ["a.txt"])
        assert exc.value.status is None

    def test_add_replaces_label(self, tool_client):
        tool_client.add("files", "http://one.test")
        tool_client.add("files", "http://two.test")
        assert len(tool_client) == 1
        assert tool_client.get("files").url == "http://two.test"

    def test_unknown_label(self, tool_client):
        with pytest.raises(ToolServerError, match="Unknown MCP server: nope"):
            tool_client.get("nope")


class TestCall:
    @pytest.mark.asyncio
    async def test_call_posts_arguments_and_returns_output(self, tool_client, tool_handler):
        seen = {}

        def respond(request):
            seen.update(json.loads(request.content))
            return {"output": "file body"}

        tool_handler[("POST", "files.test/tools/read_file")] = (200, respond)
        tool_client.add("files", "http://files.test")

        assert await tool_client.call("files", "read_file", ["notes.txt"]) == "file body"
        assert seen == {"arguments": ["notes.txt"]}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,body",
        [
            (400, {"error": "Path traversal detected"}),
            (404, {"error": "Tool not found"}),
            (500, {"error": "EACCES"}),
        ],
    )
    async def test_error_statuses_are_surfaced(self, tool_client, tool_handler, status, body):
        tool_handler[("POST", "files.test/tools/read_file")] = (status, body)
        tool_client.add("files", "http://files.test")

        with pytest.raises(ToolServerError) as exc:
            await tool_client.call("files", "read_file", ["../etc/passwd"])

        assert exc.value.status == status
        assert body["error"] in str(exc.value)


class TestNonJsonBodies:
    @pytest.mark.asyncio
    async def test_plain_text_success_is_returned_as_output(self):
        client = ToolClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="hello")))
        client.add("files", "http://files.test")

        assert await client.call("files", "echo", ["hello"]) == "hello"

    @pytest.mark.asyncio
    async def test_plain_text_error_keeps_status_and_text(self):
        client = ToolClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="disk full")))
        client.add("files", "http://files.test")

        with pytest.raises(ToolServerError) as exc:
            await client.call("files", "write_file", ["a.txt"])
        assert exc.value.status == 500
        assert str(exc.value) == "HTTP 500: disk full"

    @pytest.mark.asyncio
    async def test_mcp_call_records_plain_text_result(self, runtime, session):
        session.tools = ToolClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="a.txt b.txt")))
        session.tools.add("files", "http://files.test")

        await runtime.registry.dispatch("/mcp_call files list_dir .", session)

        assert session.conversation.turns[-1].content == "MCP Call list_dir result: a.txt b.txt"


class TestMcpCommands:
    @pytest.mark.asyncio
    async def test_mcp_tools_records_catalog_and_reports_failures(self, runtime, session, reporter, tool_handler):
        tool_handler[("GET", "good.test/tools")] = (200, {"tools": [READ_FILE]})
        session.tools.add("good", "http://good.test")
        session.tools.add("bad", "http://bad.test")

        result = await runtime.registry.dispatch("/mcp_tools", session)

        assert result.ok
        system_turns = [t.content for t in session.conversation.turns if t.role == Role.SYSTEM]
        assert len(system_turns) == 1
        assert system_turns[0].startswith("Available tools on good: ")
        assert len(reporter.errors) == 1
        assert reporter.errors[0].startswith("Error fetching tools from bad:")

    @pytest.mark.asyncio
    async def test_mcp_call_records_result(self, runtime, session, tool_handler):
        tool_handler[("POST", "files.test/tools/list_dir")] = (200, {"output": ["a.txt", "b.txt"]})
        session.tools.add("files", "http://files.test")

        await runtime.registry.dispatch("/mcp_call files list_dir .", session)

        assert session.conversation.turns[-1].content.startswith("MCP Call list_dir result: [")

    @pytest.mark.asyncio
    async def test_mcp_call_error_is_one_line(self, runtime, session, reporter, tool_handler):
        session.tools.add("files", "http://files.test")

        result = await runtime.registry.dispatch("/mcp_call files missing_tool", session)

        assert not result.ok
        assert len(reporter.errors) == 1
        assert "HTTP 404" in reporter.errors[0]

    @pytest.mark.asyncio
    async def test_mcp_add_rejects_bad_url(self, runtime, session, reporter):
        await runtime.registry.dispatch("/mcp_add files ftp://nope", session)
        assert "files" not in session.tools
        assert reporter.errors == ["Invalid server URL: ftp://nope"]
