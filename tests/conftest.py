"""Pytest configuration and fixtures for bex tests."""

from pathlib import Path
from typing import Any

import httpx
import pytest

from bex.agent.runtime import Runtime
from bex.config.schema import Config
from bex.mcp.client import ToolClient
from bex.providers.base import LLMProvider, LLMResponse
from bex.providers.gateway import ProviderGateway
from bex.session.manager import ConversationStore


class RecordingReporter:
    """Reporter that keeps every message so tests can assert on operator output."""

    def __init__(self, answers: list[str] | None = None):
        self.infos: list[str] = []
        self.successes: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.responses: list[str] = []
        self.tables: list[tuple[str, list[str], list[list[str]]]] = []
        self.questions: list[str] = []
        self.answers = list(answers or [])

    def info(self, message: str) -> None:
        self.infos.append(message)

    def success(self, message: str) -> None:
        self.successes.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def show_response(self, text: str) -> None:
        self.responses.append(text)

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        self.tables.append((title, columns, rows))

    async def ask(self, prompt: str) -> str:
        self.questions.append(prompt)
        return self.answers.pop(0) if self.answers else ""


class FakeProvider(LLMProvider):
    """
    Scripted backend.

    Each call pops the next item from ``script``: a string becomes a normal
    response, an exception is raised, an ``LLMResponse`` is returned as is.
    """

    def __init__(self, name: str, script: list[Any] | None = None, api_key: str | None = "test-key"):
        super().__init__(name, api_key=api_key)
        self.script = list(script or [])
        self.calls: list[list[dict[str, Any]]] = []

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.7) -> LLMResponse:
        self.calls.append(messages)
        if not self.script:
            return LLMResponse(content="no more scripted responses", finish_reason="error")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, LLMResponse):
            return item
        return LLMResponse(content=item)

    def get_default_model(self) -> str:
        return f"{self.name}-test"


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run every test in its own working directory so command side effects stay local."""
    workdir = tmp_path / "cwd"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def config() -> Config:
    cfg = Config()
    cfg.tools.mcp.autoconnect = False
    return cfg


@pytest.fixture
def conversation(tmp_path: Path) -> ConversationStore:
    return ConversationStore(tmp_path / "memory.json")


@pytest.fixture
def primary() -> FakeProvider:
    return FakeProvider("gemini")


@pytest.fixture
def secondary() -> FakeProvider:
    return FakeProvider("deepseek")


@pytest.fixture
def gateway(primary: FakeProvider, secondary: FakeProvider) -> ProviderGateway:
    return ProviderGateway(primary, secondary)


@pytest.fixture
def tool_handler():
    """Mutable routing table for the mock tool server: {(method, path): (status, json)}."""
    return {}


@pytest.fixture
def tool_client(tool_handler) -> ToolClient:
    def handler(request: httpx.Request) -> httpx.Response:
        key = (request.method, f"{request.url.host}{request.url.path}")
        if key not in tool_handler:
            return httpx.Response(404, json={"error": "Not found"})
        status, body = tool_handler[key]
        if callable(body):
            body = body(request)
        return httpx.Response(status, json=body)

    return ToolClient(timeout=5.0, transport=httpx.MockTransport(handler))


@pytest.fixture
def runtime(config, reporter, gateway, tool_client, conversation, tmp_path) -> Runtime:
    return Runtime(
        config,
        reporter,
        gateway=gateway,
        tools=tool_client,
        conversation=conversation,
        workspace=tmp_path,
    )


@pytest.fixture
def session(runtime: Runtime):
    return runtime.session
