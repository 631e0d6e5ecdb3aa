"""Playwright-backed automation capability."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from webcheck.models.config import BrowserConfig

from .automation import AutomationCapability

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PlaywrightAutomation(AutomationCapability):
    """Lazily opens a browser, context and page on first use.

    When ``ws_endpoint`` is configured the browser is a remote one reached
    over CDP; otherwise a local Chromium is launched. Any failing call tears
    everything down, and the next call starts a fresh browser session.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def _get_page(self) -> Page:
        if self._page is not None:
            return self._page
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        if self._browser is None:
            if self.config.ws_endpoint:
                logger.debug("Connecting to remote browser at %s", self.config.ws_endpoint)
                self._browser = await self._playwright.chromium.connect_over_cdp(
                    self.config.ws_endpoint)
            else:
                logger.debug("Launching Chromium (headless=%s)", self.config.headless)
                self._browser = await self._playwright.chromium.launch(
                    headless=self.config.headless)
        if self._context is None:
            viewport = self.config.viewport
            self._context = await self._browser.new_context(
                viewport={"width": viewport.width, "height": viewport.height},
                user_agent=self.config.user_agent,
            )
        self._page = await self._context.new_page()
        return self._page

    async def _run(self, action: Callable[[Page], Awaitable[T]]) -> T:
        try:
            page = await self._get_page()
            return await action(page)
        except Exception:
            await self.dispose()
            raise

    async def navigate(self, url: str) -> None:
        timeout = self.config.navigation_timeout_ms

        async def _goto(page: Page) -> None:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            try:
                await page.wait_for_load_state("networkidle", timeout=min(timeout, 10000))
            except Exception:
                logger.debug("Network idle timeout, continuing")

        await self._run(_goto)

    async def click(self, selector: str) -> None:
        await self._run(lambda page: page.click(selector, timeout=self.config.selector_timeout_ms))

    async def type(self, selector: str, text: str) -> None:
        await self._run(lambda page: page.fill(
            selector, text, timeout=self.config.selector_timeout_ms))

    async def select_option(self, selector: str, value: str) -> None:
        await self._run(lambda page: page.select_option(
            selector, value=value, timeout=self.config.selector_timeout_ms))

    async def take_screenshot(self) -> bytes:
        return await self._run(lambda page: page.screenshot(type="png", full_page=False))

    async def snapshot(self) -> str:
        return await self._run(lambda page: page.content())

    async def element_exists(self, selector: str) -> bool:
        return await self._run(lambda page: page.locator(selector).count()) > 0

    async def element_visible(self, selector: str) -> bool:
        return await self._run(lambda page: page.locator(selector).first.is_visible())

    async def element_text(self, selector: str) -> str:
        text = await self._run(lambda page: page.locator(selector).first.text_content(
            timeout=self.config.selector_timeout_ms))
        return text or ""

    async def element_value(self, selector: str) -> str:
        return await self._run(lambda page: page.locator(selector).first.input_value(
            timeout=self.config.selector_timeout_ms))

    async def element_count(self, selector: str) -> int:
        return await self._run(lambda page: page.locator(selector).count())

    async def wait_for_element(self, selector: str, timeout_ms: int) -> None:
        await self._run(lambda page: page.wait_for_selector(
            selector, state="visible", timeout=timeout_ms))

    async def dispose(self) -> None:
        page, context, browser, pw = self._page, self._context, self._browser, self._playwright
        self._page = self._context = self._browser = self._playwright = None

        for name, resource in (("page", page), ("context", context), ("browser", browser)):
            if resource is None:
                continue
            try:
                await resource.close()
            except Exception as e:
                logger.warning("Failed to close Playwright %s: %s", name, e)
        if pw is not None:
            try:
                await pw.stop()
            except Exception as e:
                logger.warning("Failed to stop Playwright: %s", e)
