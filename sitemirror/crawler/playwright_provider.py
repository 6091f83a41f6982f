"""
Playwright-based browser provider for sitemirror.

Implements the browser capability with Chromium driven by Playwright:
- ``page.route("**/*")`` pauses every request and publishes it as an
  InterceptedRequest event
- ``page.on("response")`` publishes every response as a CapturedResponse
- multi-condition waits are a ``goto`` on the first condition followed by
  ``wait_for_load_state`` for the rest, sharing one deadline
"""

import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from sitemirror.crawler.browser_provider import (
    DEFAULT_WAIT_UNTIL,
    BaseBrowserPage,
    BaseBrowserProvider,
    CapturedResponse,
    InterceptedRequest,
)
from sitemirror.utils.config import BrowserConfig, get_settings
from sitemirror.utils.errors import (
    BrowserLaunchError,
    NavigationError,
    NavigationTimeoutError,
)
from sitemirror.utils.logging import get_logger

if TYPE_CHECKING:
    from playwright.async_api import Browser, Page, Playwright, Request, Response, Route

logger = get_logger(__name__)


class PlaywrightRequest(InterceptedRequest):
    """Intercepted request backed by a Playwright route."""

    def __init__(self, route: "Route") -> None:
        self._route = route
        self._request: "Request" = route.request

    @property
    def url(self) -> str:
        return self._request.url

    @property
    def resource_type(self) -> str:
        return self._request.resource_type

    async def abort(self) -> None:
        await self._route.abort()

    async def continue_(self) -> None:
        await self._route.continue_()


class PlaywrightResponse(CapturedResponse):
    """Captured response backed by a Playwright response."""

    def __init__(self, response: "Response") -> None:
        self._response = response

    @property
    def url(self) -> str:
        return self._response.url

    @property
    def status(self) -> int:
        return self._response.status

    @property
    def ok(self) -> bool:
        return self._response.ok

    @property
    def resource_type(self) -> str:
        return self._response.request.resource_type

    async def body(self) -> bytes:
        return await self._response.body()

    async def text(self) -> str:
        return await self._response.text()


class PlaywrightPage(BaseBrowserPage):
    """Browser page backed by a Playwright page."""

    def __init__(self, page: "Page") -> None:
        super().__init__()
        self._page = page
        self._intercepting = False
        page.on("response", self._on_response)

    def _on_response(self, response: "Response") -> None:
        self.emit(PlaywrightResponse(response))

    async def _on_route(self, route: "Route") -> None:
        self.emit(PlaywrightRequest(route))

    async def set_request_interception(self, enabled: bool) -> None:
        if enabled == self._intercepting:
            return
        if enabled:
            await self._page.route("**/*", self._on_route)
        else:
            await self._page.unroute("**/*", self._on_route)
        self._intercepting = enabled

    async def goto(
        self,
        url: str,
        *,
        wait_until: Sequence[str] = DEFAULT_WAIT_UNTIL,
        timeout_ms: int = 30000,
    ) -> None:
        from playwright.async_api import Error as PlaywrightError
        from playwright.async_api import TimeoutError as PlaywrightTimeoutError

        conditions = list(wait_until) or ["load"]
        deadline = time.monotonic() + timeout_ms / 1000

        try:
            await self._page.goto(url, wait_until=conditions[0], timeout=timeout_ms)
            for state in conditions[1:]:
                remaining_ms = max((deadline - time.monotonic()) * 1000, 1)
                await self._page.wait_for_load_state(state, timeout=remaining_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeoutError(
                f"Navigation to {url} timed out after {timeout_ms} ms",
                details={"url": url, "timeout_ms": timeout_ms},
            ) from e
        except PlaywrightError as e:
            raise NavigationError(
                f"Navigation to {url} failed: {e.message}",
                details={"url": url},
            ) from e

    async def query_hrefs(self, selector: str) -> list[str]:
        from playwright.async_api import Error as PlaywrightError

        hrefs: list[str] = []
        try:
            handles = await self._page.query_selector_all(selector)
            for handle in handles:
                prop = await handle.get_property("href")
                value = await prop.json_value()
                if isinstance(value, str) and value:
                    hrefs.append(value)
                await prop.dispose()
                await handle.dispose()
        except PlaywrightError as e:
            raise NavigationError(
                f"DOM query failed: {e.message}",
                details={"selector": selector},
            ) from e
        return hrefs

    async def close(self) -> None:
        if not self.is_closed and not self._page.is_closed():
            await self._page.close()
        await super().close()


class PlaywrightProvider(BaseBrowserProvider):
    """Browser provider launching Chromium through Playwright."""

    def __init__(self, config: BrowserConfig | None = None) -> None:
        super().__init__("playwright")
        self._config = config or get_settings().browser
        self._playwright: "Playwright | None" = None
        self._browser: "Browser | None" = None

    async def launch(self) -> None:
        if self._browser is not None:
            return
        try:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
            )
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(f"Browser launch failed: {e}") from e

        logger.info("Browser launched", provider=self.name, headless=self._config.headless)

    async def new_page(self) -> PlaywrightPage:
        if self._browser is None:
            raise BrowserLaunchError("Browser is not launched")
        page = await self._browser.new_page()
        return PlaywrightPage(page)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            logger.info("Browser closed", provider=self.name)
