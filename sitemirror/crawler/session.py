"""
Browser-driven crawl session.

A session owns one browser page for its lifetime. Entering the session
enables request interception and starts a listener task that consumes the
page's network events:

- requests: aborted when the request filter matches, continued otherwise
- responses: claimed in the dedup registry and written into the mirror,
  HTML documents after link rewriting

``save_page()`` then drives one entry page through
navigating -> extracting -> downloading -> done while the listener keeps
capturing in the background. Captures started by navigation are settled
before the downloader runs, so a capture that fails hands its URL back to
the downloader instead of silently holding the claim. Leaving the session
settles pending captures before the page closes.
"""

import asyncio
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

from sitemirror.crawler.browser_provider import (
    BaseBrowserPage,
    BrowserEvent,
    CapturedResponse,
    InterceptedRequest,
)
from sitemirror.crawler.dedup import DedupRegistry, FetchOutcome
from sitemirror.crawler.downloader import ConcurrentDownloader
from sitemirror.crawler.files import write_file_atomic
from sitemirror.crawler.link_rewriter import rewrite_document
from sitemirror.crawler.path_mapper import map_path
from sitemirror.utils.config import BrowserConfig, get_settings
from sitemirror.utils.errors import MirrorErrorCode, NavigationError
from sitemirror.utils.logging import entry_page_context, get_logger

logger = get_logger(__name__)


class LinkKind(str, Enum):
    """Which links an entry page contributes to the downloader."""

    DOWNLOADS = "downloads"  # download anchors inside article content
    PROOFS = "proofs"  # every anchor pointing at a non-HTML file


class SessionState(str, Enum):
    """Per-entry-page progress."""

    NAVIGATING = "navigating"
    EXTRACTING = "extracting"
    DOWNLOADING = "downloading"
    DONE = "done"


class RequestFilter(Protocol):
    """Decides whether an intercepted request should be aborted."""

    def __call__(self, url: str) -> bool: ...


class PathPrefixFilter:
    """Blocks requests whose URL path starts with one of the given prefixes."""

    def __init__(self, prefixes: Iterable[str]) -> None:
        self.prefixes = tuple(prefixes)

    def __call__(self, url: str) -> bool:
        try:
            path = urlsplit(url).path
        except ValueError:
            return False
        return path.startswith(self.prefixes)


@dataclass
class PageResult:
    """Outcome of one entry page."""

    url: str
    link_kind: LinkKind
    links_found: int = 0
    failures: int = 0
    navigation_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failures == 0


class CrawlSession:
    """Drives one browser page through the entry pages of a backup."""

    def __init__(
        self,
        page: BaseBrowserPage,
        registry: DedupRegistry,
        downloader: ConcurrentDownloader,
        site_url: str,
        *,
        mirror_root: str | Path = "www",
        config: BrowserConfig | None = None,
        request_filter: RequestFilter | None = None,
    ) -> None:
        self._page = page
        self._registry = registry
        self._downloader = downloader
        self._site_url = site_url
        self._mirror_root = Path(mirror_root)
        self._config = config or get_settings().browser
        self._request_filter = request_filter or PathPrefixFilter(
            self._config.blocked_path_prefixes
        )
        self._proof_pattern = re.compile(self._config.proof_link_pattern)
        self._listener: asyncio.Task[None] | None = None
        self._captures: set[asyncio.Task[None]] = set()
        self.state: SessionState | None = None

    async def __aenter__(self) -> "CrawlSession":
        self._listener = asyncio.create_task(self._listen())
        try:
            await self._page.set_request_interception(True)
        except BaseException:
            await self.__aexit__(None, None, None)
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._listener is not None and not self._listener.done():
            await self.settle_captures()
        await self._page.close()
        if self._listener is not None:
            await self._listener
            self._listener = None

    # =========================================================================
    # Capture
    # =========================================================================

    async def _listen(self) -> None:
        """Consume the page's network events until the page closes."""
        async for event in self._page.events():
            try:
                await self._dispatch(event)
            except Exception as e:
                logger.error("Network event handling failed", url=event.url, error=str(e))

        if self._captures:
            await asyncio.gather(*self._captures)

    async def settle_captures(self) -> None:
        """Wait until every network event seen so far has been handled and
        every capture it started has finished.
        """
        while True:
            await self._page.drain()
            if not self._captures:
                return
            await asyncio.gather(*list(self._captures), return_exceptions=True)

    async def _dispatch(self, event: BrowserEvent) -> None:
        if isinstance(event, InterceptedRequest):
            await self._on_request(event)
        elif isinstance(event, CapturedResponse):
            task = asyncio.create_task(self._on_response(event))
            self._captures.add(task)
            task.add_done_callback(self._captures.discard)

    async def _on_request(self, request: InterceptedRequest) -> None:
        url = request.url
        if url.startswith("data:") or self._registry.is_claimed(url):
            await request.continue_()
            return
        if self._request_filter(url):
            logger.debug("Request blocked", url=url)
            await request.abort()
            return
        await request.continue_()

    async def _on_response(self, response: CapturedResponse) -> None:
        url = response.url
        if url.startswith("data:") or not response.ok:
            return
        if not self._registry.try_claim(url):
            return

        try:
            dest = map_path(url, self._site_url, self._mirror_root)
            if response.resource_type == "document":
                html = await response.text()
                content: bytes | str = rewrite_document(html, self._site_url)
            else:
                content = await response.body()
            await asyncio.to_thread(write_file_atomic, dest, content)
        except Exception as e:
            self._registry.record(url, FetchOutcome.FAILED)
            self._registry.release(url)
            logger.error(
                "Capture failed",
                url=url,
                error=str(e),
                error_code=MirrorErrorCode.CAPTURE_FAILED.value,
            )
            return

        self._registry.record(url, FetchOutcome.CAPTURED)
        logger.info("Captured", url=url, path=str(dest))

    # =========================================================================
    # Entry pages
    # =========================================================================

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        logger.debug("Session state", state=state.value)

    async def save_page(self, url: str, link_kind: LinkKind = LinkKind.DOWNLOADS) -> PageResult:
        """Mirror one entry page and the links it exposes.

        Args:
            url: Entry page URL.
            link_kind: Which link class to extract for the downloader.

        Returns:
            PageResult whose failures count page-level errors plus downloads
            that could not be completed.
        """
        result = PageResult(url=url, link_kind=link_kind)

        with entry_page_context(url):
            self._set_state(SessionState.NAVIGATING)
            try:
                await self._page.goto(
                    url,
                    wait_until=self._config.wait_until,
                    timeout_ms=self._config.navigation_timeout_ms,
                )
            except NavigationError as e:
                # Extraction still runs on whatever loaded
                result.failures += 1
                result.navigation_error = e.message
                logger.error("Navigation failed", **e.to_dict())

            # Captures that fail release their claim for the downloader
            await self.settle_captures()

            self._set_state(SessionState.EXTRACTING)
            try:
                links = await self.extract_links(link_kind)
            except NavigationError as e:
                result.failures += 1
                logger.error("Link extraction failed", **e.to_dict())
                links = []
            result.links_found = len(links)
            logger.info("Links extracted", kind=link_kind.value, count=len(links))

            self._set_state(SessionState.DOWNLOADING)
            result.failures += await self._downloader.download_all(links, self._site_url)

            self._set_state(SessionState.DONE)
            logger.info("Entry page done", failures=result.failures)

        return result

    async def extract_links(self, link_kind: LinkKind) -> list[str]:
        """Query the loaded document for the link set of the given kind.

        Returns:
            Deduplicated hrefs in document order.
        """
        if link_kind is LinkKind.PROOFS:
            hrefs = await self._page.query_hrefs(self._config.proof_selector)
            hrefs = [href for href in hrefs if self._proof_pattern.search(href)]
        else:
            hrefs = await self._page.query_hrefs(self._config.download_selector)
        return list(dict.fromkeys(hrefs))
