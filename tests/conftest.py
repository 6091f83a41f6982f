"""
Pytest fixtures and configuration for sitemirror tests.

=============================================================================
Test Classification
=============================================================================

- @pytest.mark.unit: Single class/function, no external dependencies
  - DEFAULT: Tests without marker are auto-classified as unit
- @pytest.mark.integration: Multiple components wired together, with the
  browser and the origin server replaced by in-memory fakes
- @pytest.mark.e2e: Real Chromium via Playwright against a local HTTP server
  - DEFAULT EXCLUDED: run with `pytest -m e2e`
- @pytest.mark.slow: Tests taking >5 seconds (excluded by default)

=============================================================================
Mock Strategy
=============================================================================

- Browser: FakeBrowserPage / FakeBrowserProvider implement the browser
  capability and replay a scripted site through the event stream
- Origin server: httpx.MockTransport (see Origin)
- File I/O: tmp_path / temp_dir fixtures
- Network: never used outside e2e tests
"""

import asyncio
import os
import tempfile
from collections.abc import Generator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

# Set test environment before importing anything else
os.environ["SITEMIRROR_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["SITEMIRROR_GENERAL__LOG_LEVEL"] = "DEBUG"

from sitemirror.crawler.browser_provider import (  # noqa: E402
    BaseBrowserPage,
    BaseBrowserProvider,
    CapturedResponse,
    InterceptedRequest,
)
from sitemirror.crawler.dedup import DedupRegistry  # noqa: E402
from sitemirror.crawler.downloader import ConcurrentDownloader  # noqa: E402
from sitemirror.utils.config import (  # noqa: E402
    BrowserConfig,
    DownloaderConfig,
    GeneralConfig,
    MirrorConfig,
    Settings,
)
from sitemirror.utils.errors import BrowserLaunchError  # noqa: E402

SITE = "https://site.example/"


# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests with in-memory browser and origin fakes"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring real Chromium (excluded by default)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """Tests without an explicit classification marker are unit tests."""
    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Filesystem / settings fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mirror_root(temp_dir: Path) -> Path:
    return temp_dir / "www"


@pytest.fixture
def staging_dir(temp_dir: Path) -> Path:
    path = temp_dir / "staging"
    path.mkdir()
    return path


@pytest.fixture
def downloader_config(staging_dir: Path) -> DownloaderConfig:
    """Downloader settings without throttling, staging into a known directory."""
    return DownloaderConfig(throttle_ms=0, temp_dir=str(staging_dir))


@pytest.fixture
def mock_settings(mirror_root: Path, downloader_config: DownloaderConfig) -> Settings:
    """Create settings for testing."""
    return Settings(
        general=GeneralConfig(log_level="DEBUG", logs_dir=None),
        mirror=MirrorConfig(output_dir=str(mirror_root)),
        downloader=downloader_config,
        browser=BrowserConfig(navigation_timeout_ms=1000),
    )


@pytest.fixture
def registry() -> DedupRegistry:
    return DedupRegistry()


# =============================================================================
# Origin server fake (httpx)
# =============================================================================


@dataclass
class Origin:
    """Scripted origin server behind an httpx.MockTransport."""

    files: dict[str, bytes] = field(default_factory=dict)
    # url -> number of leading requests that time out (-1 = always)
    timeouts: dict[str, int] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)

        remaining = self.timeouts.get(url, 0)
        if remaining != 0:
            if remaining > 0:
                self.timeouts[url] = remaining - 1
            raise httpx.ReadTimeout("timed out", request=request)

        if url in self.files:
            return httpx.Response(200, content=self.files[url])
        return httpx.Response(404, content=b"not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_for(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture
def origin() -> Origin:
    return Origin()


@pytest_asyncio.fixture
async def downloader(registry, mirror_root, downloader_config, origin):
    """Downloader wired to the scripted origin."""
    client = origin.client()
    downloader = ConcurrentDownloader(
        registry,
        mirror_root=mirror_root,
        config=downloader_config,
        client=client,
    )
    yield downloader
    await client.aclose()


# =============================================================================
# Browser fakes
# =============================================================================


@dataclass
class FakeResource:
    """A resource served to the fake browser."""

    body: bytes
    resource_type: str = "other"
    status: int = 200
    # seconds the body takes to arrive
    delay: float = 0.0


class FakeRequest(InterceptedRequest):
    """Intercepted request that records the session's decision."""

    def __init__(self, url: str, resource_type: str) -> None:
        self._url = url
        self._resource_type = resource_type
        self.decision: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    @property
    def url(self) -> str:
        return self._url

    @property
    def resource_type(self) -> str:
        return self._resource_type

    async def abort(self) -> None:
        self.decision.set_result("abort")

    async def continue_(self) -> None:
        self.decision.set_result("continue")


class FakeResponse(CapturedResponse):
    """Response whose body read fails once its page is closed."""

    def __init__(
        self,
        page: BaseBrowserPage,
        url: str,
        resource: FakeResource,
        body_error: Exception | None = None,
    ) -> None:
        self._page = page
        self._url = url
        self._resource = resource
        self._body_error = body_error

    @property
    def url(self) -> str:
        return self._url

    @property
    def status(self) -> int:
        return self._resource.status

    @property
    def resource_type(self) -> str:
        return self._resource.resource_type

    async def body(self) -> bytes:
        if self._resource.delay:
            await asyncio.sleep(self._resource.delay)
        if self._page.is_closed:
            raise RuntimeError("Target page, context or browser has been closed")
        if self._body_error is not None:
            raise self._body_error
        return self._resource.body


class FakeBrowserPage(BaseBrowserPage):
    """Replays a scripted site through the browser capability.

    ``goto`` emits a request event for the page and each of its
    sub-resources, waits for the session's abort/continue decision, and
    emits a response event for every continued request.
    """

    def __init__(
        self,
        resources: dict[str, FakeResource] | None = None,
        subresources: dict[str, list[str]] | None = None,
        hrefs: dict[tuple[str, str], list[str]] | None = None,
        navigation_errors: dict[str, Exception] | None = None,
        body_errors: dict[str, Exception] | None = None,
    ) -> None:
        super().__init__()
        self.resources = resources or {}
        self.subresources = subresources or {}
        self.hrefs = hrefs or {}
        self.navigation_errors = navigation_errors or {}
        self.body_errors = body_errors or {}
        self.intercepting = False
        self.current_url: str | None = None
        self.visited: list[str] = []
        self.decisions: dict[str, str] = {}
        self.wait_conditions: list[tuple[str, ...]] = []

    async def set_request_interception(self, enabled: bool) -> None:
        self.intercepting = enabled

    async def goto(
        self,
        url: str,
        *,
        wait_until: Sequence[str] = ("load", "networkidle"),
        timeout_ms: int = 30000,
    ) -> None:
        self.visited.append(url)
        self.current_url = url
        self.wait_conditions.append(tuple(wait_until))

        for resource_url in [url, *self.subresources.get(url, [])]:
            resource = self.resources.get(resource_url, FakeResource(b"", status=404))
            decision = "continue"
            if self.intercepting:
                request = FakeRequest(resource_url, resource.resource_type)
                self.emit(request)
                decision = await request.decision
            self.decisions[resource_url] = decision
            if decision == "continue":
                self.emit(
                    FakeResponse(self, resource_url, resource, self.body_errors.get(resource_url))
                )

        error = self.navigation_errors.get(url)
        if error is not None:
            raise error

    async def query_hrefs(self, selector: str) -> list[str]:
        return list(self.hrefs.get((self.current_url or "", selector), []))


class FakeBrowserProvider(BaseBrowserProvider):
    def __init__(self, page: FakeBrowserPage, *, fail_launch: bool = False) -> None:
        super().__init__("fake")
        self.page = page
        self.fail_launch = fail_launch
        self.launched = False
        self.closed = False

    async def launch(self) -> None:
        if self.fail_launch:
            raise BrowserLaunchError("Browser launch failed: no executable")
        self.launched = True

    async def new_page(self) -> FakeBrowserPage:
        return self.page

    async def close(self) -> None:
        self.closed = True


def html_page(body: str) -> FakeResource:
    return FakeResource(body.encode("utf-8"), resource_type="document")
