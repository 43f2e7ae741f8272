"""Playwright browser session bound to the capture proxy."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page

from pagepack.commands.capture.config import CaptureOptions
from pagepack.commands.capture.proxy import IngestFn, run_proxy


@dataclass
class CaptureSession:
    """Live resources of one capture, owned by the controller."""

    page: Page
    browser: Browser | None = None

    async def describe(self) -> dict[str, Any]:
        """Browser facts recorded in the provenance summary."""
        info: dict[str, Any] = {}
        if self.browser is not None:
            info["browser"] = self.browser.browser_type.name
            info["browserVersion"] = self.browser.version
        info["userAgent"] = await self.page.evaluate("() => navigator.userAgent")
        return info


@asynccontextmanager
async def open_capture_session(
    options: CaptureOptions, ingest: IngestFn
) -> AsyncIterator[CaptureSession]:
    """Start the proxy, then a Chromium page routed through it.

    Everything acquired here is released in reverse order when the block
    exits, including when a later acquisition fails.
    """
    from playwright.async_api import async_playwright

    async with AsyncExitStack() as stack:
        await stack.enter_async_context(run_proxy(options, ingest))
        playwright = await stack.enter_async_context(async_playwright())
        browser = await playwright.chromium.launch(
            headless=options.headless,
            proxy={"server": f"http://{options.proxy_host}:{options.proxy_port}"},
        )
        stack.push_async_callback(browser.close)
        context = await browser.new_context(
            ignore_https_errors=True,
            viewport={
                "width": options.capture_window_x,
                "height": options.capture_window_y,
            },
        )
        page = await context.new_page()
        yield CaptureSession(page=page, browser=browser)
