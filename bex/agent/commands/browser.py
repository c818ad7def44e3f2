"""
网页浏览命令 (agent/commands/browser.py)

模块职责：
    - BrowserSession: 对 playwright 的薄封装，对外只暴露
      导航、点击、输入、提取文本、截图五种能力
    - /browser /visit /click /type /dump /screenshot /google: 基于 BrowserSession
    - /url: httpx 抓取 + readability 提取正文，不启动浏览器
    - /open: 用系统默认浏览器打开链接

组合命令：
    /google 依次执行 启动浏览器 → 导航到搜索页 → 提取页面文本，
    每一步都 await 完成后才进行下一步。

技术选型：
    - 浏览器自动化：playwright（异步 API）
    - HTTP 客户端：httpx
    - 正文提取：readability-lxml
"""

from __future__ import annotations

import re
import webbrowser
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import quote_plus

import httpx
from loguru import logger

from bex.agent.commands.base import Command
from bex.errors import CommandError
from bex.session.manager import Turn
from bex.utils.helpers import timestamp_ms

if TYPE_CHECKING:
    from bex.agent.state import AgentSession

USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_2) AppleWebKit/537.36"
MAX_PAGE_CHARS = 20000


class BrowserSession:
    """
    playwright 浏览器会话（一个浏览器、一个页面）。

    参数:
        headless: 是否无头模式
        timeout_ms: 页面操作的默认超时
        starter: 返回 playwright 上下文管理器的工厂，默认 async_playwright（测试时替换）
    """

    def __init__(self, headless: bool = False, timeout_ms: int = 30000, starter: Callable[[], Any] | None = None):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._starter = starter
        self._playwright: Any = None
        self._browser: Any = None
        self._page: Any = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    async def launch(self) -> None:
        starter = self._starter
        if starter is None:
            from playwright.async_api import async_playwright

            starter = async_playwright

        self._playwright = await starter().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._page = await self._browser.new_page()
            self._page.set_default_timeout(self.timeout_ms)
        except Exception:
            # 启动失败时停掉已经起来的 playwright 驱动进程
            await self.close()
            raise
        logger.info(f"Browser launched (headless={self.headless})")

    def _require_page(self) -> Any:
        if self._page is None:
            raise CommandError("Run /browser first.")
        return self._page

    async def goto(self, url: str) -> None:
        await self._require_page().goto(url, wait_until="domcontentloaded")

    async def click(self, selector: str) -> None:
        await self._require_page().click(selector)

    async def type(self, selector: str, text: str) -> None:
        await self._require_page().fill(selector, text)

    async def text(self) -> str:
        return await self._require_page().inner_text("body")

    async def screenshot(self, path: str) -> None:
        await self._require_page().screenshot(path=path)

    async def close(self) -> None:
        browser, pw = self._browser, self._playwright
        self._page = self._browser = self._playwright = None
        if browser is not None:
            await browser.close()
        if pw is not None:
            await pw.stop()
        logger.info("Browser closed")


def _require_browser(session: AgentSession) -> BrowserSession:
    if session.browser is None or not session.browser.is_open:
        raise CommandError("Run /browser first.")
    return session.browser


class BrowserCommand(Command):
    name = "browser"
    description = "Launch browser automation"
    category = "Web Browsing"
    loop_visible = True

    def __init__(self, factory: Callable[[], BrowserSession] | None = None):
        self.factory = factory or BrowserSession

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        if session.browser is not None and session.browser.is_open:
            session.reporter.warn("Browser already open.")
            session.conversation.append(Turn.system("Browser is already open."))
            return
        browser = self.factory()
        await browser.launch()
        session.browser = browser
        session.reporter.success("Browser ready.")
        session.conversation.append(Turn.system("Browser launched and ready."))


class VisitCommand(Command):
    name = "visit"
    usage = "<url>"
    description = "Navigate browser to URL"
    category = "Web Browsing"
    min_args = 1
    loop_visible = True

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        await _require_browser(session).goto(args[0])
        session.reporter.success(f"Visited {args[0]}")
        session.conversation.append(Turn.system(f"Visited {args[0]}"))


class ClickCommand(Command):
    name = "click"
    usage = "<selector>"
    description = "Click element by CSS selector"
    category = "Web Browsing"
    min_args = 1
    loop_visible = True

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        selector = " ".join(args)
        await _require_browser(session).click(selector)
        session.reporter.success("Clicked.")
        session.conversation.append(Turn.system(f"Clicked {selector}"))


class TypeCommand(Command):
    name = "type"
    usage = "<selector> <text>"
    description = "Type text into input field"
    category = "Web Browsing"
    min_args = 2
    loop_visible = True

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        selector, text = args[0], " ".join(args[1:])
        await _require_browser(session).type(selector, text)
        session.reporter.success("Typed.")
        session.conversation.append(Turn.system(f"Typed '{text}' into {selector}"))


class DumpCommand(Command):
    name = "dump"
    description = "Get current page text content"
    category = "Web Browsing"
    loop_visible = True

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        text = await _require_browser(session).text()
        session.conversation.append(Turn.system(f"Browser Page Content:\n{text[:MAX_PAGE_CHARS]}"))
        session.reporter.success("Page content added to context.")


class ScreenshotCommand(Command):
    name = "screenshot"
    description = "Save page screenshot"
    category = "Web Browsing"

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        path = f"screen-{timestamp_ms()}.png"
        await _require_browser(session).screenshot(path)
        session.reporter.success(f"Saved {path}")


class GoogleCommand(Command):
    name = "google"
    usage = "<query>"
    description = "Search Google"
    category = "Web Browsing"
    min_args = 1
    loop_visible = True

    def __init__(self, launch: BrowserCommand, visit: VisitCommand, dump: DumpCommand):
        self.launch = launch
        self.visit = visit
        self.dump = dump

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        if session.browser is None or not session.browser.is_open:
            await self.launch.execute(session, [])
        url = f"https://www.google.com/search?q={quote_plus(' '.join(args))}"
        await self.visit.execute(session, [url])
        await self.dump.execute(session, [])


def _strip_tags(text: str) -> str:
    text = re.sub(r"<(script|style)[\s\S]*?</\1>", "", text, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    return re.sub(r"[ \t]+", " ", re.sub(r"\n{3,}", "\n\n", text)).strip()


class UrlCommand(Command):
    name = "url"
    usage = "<url>"
    description = "Fetch website text content"
    category = "Web Browsing"
    min_args = 1

    def __init__(self, max_chars: int = 5000, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.max_chars = max_chars
        self.timeout = timeout
        self._transport = transport

    async def execute(self, session: AgentSession, args: list[str]) -> None:
        from readability import Document

        url = args[0]
        try:
            async with httpx.AsyncClient(
                follow_redirects=True, timeout=self.timeout, transport=self._transport
            ) as client:
                r = await client.get(url, headers={"User-Agent": USER_AGENT})
                r.raise_for_status()
        except httpx.HTTPError as e:
            raise CommandError(f"Fetch failed: {e}") from e

        ctype = r.headers.get("content-type", "")
        if "text/html" in ctype or r.text[:256].lower().startswith(("<!doctype", "<html")):
            doc = Document(r.text)
            body = _strip_tags(doc.summary())
            text = f"{doc.title()}\n\n{body}" if doc.title() else body
        else:
            text = r.text

        clipped = text[: self.max_chars]
        suffix = "..." if len(text) > self.max_chars else ""
        session.conversation.append(Turn.system(f"Content of {url}:\n{clipped}{suffix}"))
        session.reporter.success(f"Fetched {len(text)} chars.")


class OpenCommand(Command):
    name = "open"
    usage = "<url>"
    description = "Open URL in system browser"
    category = "Web Browsing"
    min_args = 1

    def execute(self, session: AgentSession, args: list[str]) -> None:
        if not webbrowser.open(args[0]):
            raise CommandError(f"No system browser available to open {args[0]}")
        session.reporter.success("Opened in system browser.")
