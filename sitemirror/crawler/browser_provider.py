"""
Browser provider abstraction layer for sitemirror.

The crawl session only needs a small capability from a browser engine:
navigate with wait conditions, run DOM queries for link targets, and expose
the page's network traffic as a stream of request/response events. Request
events can be aborted or continued while request interception is enabled.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Union

from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_WAIT_UNTIL: tuple[str, ...] = ("load", "networkidle")


# ============================================================================
# Network events
# ============================================================================


class InterceptedRequest(ABC):
    """An outbound request paused by interception, awaiting a decision."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Request URL."""

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """Resource type (document, script, image, ...)."""

    @abstractmethod
    async def abort(self) -> None:
        """Fail the request without sending it."""

    @abstractmethod
    async def continue_(self) -> None:
        """Let the request proceed unchanged."""


class CapturedResponse(ABC):
    """An inbound response observed by the page."""

    @property
    @abstractmethod
    def url(self) -> str:
        """Response URL."""

    @property
    @abstractmethod
    def status(self) -> int:
        """HTTP status code."""

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """Resource type of the originating request."""

    @property
    def ok(self) -> bool:
        """Whether the status is successful (2xx)."""
        return 200 <= self.status < 300

    @abstractmethod
    async def body(self) -> bytes:
        """Response body as bytes."""

    async def text(self) -> str:
        """Response body decoded as text."""
        return (await self.body()).decode("utf-8", errors="replace")


BrowserEvent = Union[InterceptedRequest, CapturedResponse]


# ============================================================================
# Page and provider
# ============================================================================


class _StreamEnd:
    """Sentinel closing a page's event stream."""


_STREAM_END = _StreamEnd()


class BaseBrowserPage(ABC):
    """A browser tab whose network activity is delivered as an event stream.

    Implementations call ``emit()`` from their engine callbacks. A single
    consumer iterates ``events()`` for the lifetime of the page; the stream
    ends after ``close()``.
    """

    def __init__(self) -> None:
        self._events: asyncio.Queue[BrowserEvent | _StreamEnd] = asyncio.Queue()
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def emit(self, event: BrowserEvent) -> None:
        """Publish a network event to the stream consumer."""
        if self._closed:
            logger.debug("Event dropped after page close", url=event.url)
            return
        self._events.put_nowait(event)

    async def events(self) -> AsyncIterator[BrowserEvent]:
        """Iterate network events until the page is closed.

        An event counts as handled once the consumer asks for the next one.
        """
        while True:
            event = await self._events.get()
            if isinstance(event, _StreamEnd):
                self._events.task_done()
                return
            try:
                yield event
            finally:
                self._events.task_done()

    async def drain(self) -> None:
        """Wait until every event emitted so far has been handled."""
        await self._events.join()

    @abstractmethod
    async def set_request_interception(self, enabled: bool) -> None:
        """Enable or disable pausing of outbound requests."""

    @abstractmethod
    async def goto(
        self,
        url: str,
        *,
        wait_until: Sequence[str] = DEFAULT_WAIT_UNTIL,
        timeout_ms: int = 30000,
    ) -> None:
        """Navigate and wait for every condition in wait_until.

        Raises:
            NavigationTimeoutError: If the conditions are not met in time.
            NavigationError: If navigation fails for any other reason.
        """

    @abstractmethod
    async def query_hrefs(self, selector: str) -> list[str]:
        """Return the resolved ``href`` property of every element matching selector.

        Raises:
            NavigationError: If the query cannot be evaluated.
        """

    async def close(self) -> None:
        """Close the page and end its event stream."""
        if self._closed:
            return
        self._closed = True
        self._events.put_nowait(_STREAM_END)


class BaseBrowserProvider(ABC):
    """Launches a browser engine and opens pages on it."""

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @abstractmethod
    async def launch(self) -> None:
        """Start the browser.

        Raises:
            BrowserLaunchError: If the browser cannot be started.
        """

    @abstractmethod
    async def new_page(self) -> BaseBrowserPage:
        """Open a new page."""

    @abstractmethod
    async def close(self) -> None:
        """Close the browser and release resources."""

    async def __aenter__(self) -> "BaseBrowserProvider":
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
