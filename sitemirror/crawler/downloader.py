"""
Concurrent downloader for assets linked from mirrored pages.

Fetches a batch of URLs straight over HTTP with:
- bounded concurrency (semaphore)
- a fixed per-slot throttle that caps the outbound request rate
- claim-before-fetch deduplication shared with the browser capture path
- skip-if-exists for cheap re-runs
- retry passes over a shrinking pending set
- temp-file-then-atomic-rename placement
"""

import asyncio
import os
import time
from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urljoin

import httpx

from sitemirror.crawler.dedup import DedupRegistry, FetchOutcome
from sitemirror.crawler.files import create_temp_file, has_content, move_file
from sitemirror.crawler.path_mapper import map_path
from sitemirror.utils.config import DownloaderConfig, get_settings
from sitemirror.utils.errors import MalformedURLError, classify_fetch_error
from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)


class ConcurrentDownloader:
    """Bounded, throttled, retrying fetch-to-disk engine.

    Example:
        async with ConcurrentDownloader(registry, mirror_root="www") as downloader:
            failures = await downloader.download_all(links, "https://example.com/")
    """

    def __init__(
        self,
        registry: DedupRegistry,
        *,
        mirror_root: str | Path = "www",
        config: DownloaderConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize downloader.

        Args:
            registry: Run-wide dedup registry.
            mirror_root: Root directory of the mirror.
            config: Downloader settings (defaults to loaded settings).
            client: HTTP client to use. Created lazily and owned by the
                downloader when not given.
        """
        self._registry = registry
        self._mirror_root = Path(mirror_root)
        self._config = config or get_settings().downloader
        self._client = client
        self._owns_client = client is None
        self.fetch_attempts = 0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._config.timeout_ms / 1000,
                headers={"User-Agent": self._config.user_agent},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if the downloader created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ConcurrentDownloader":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def download_all(self, urls: Iterable[str], site_root: str) -> int:
        """Download every URL not yet present in the mirror.

        Args:
            urls: Absolute or site-relative resource URLs.
            site_root: URL of the mirrored site.

        Returns:
            Number of URLs still unresolved after all passes (0 = success).
        """
        pending = self._resolve_urls(urls, site_root)
        if not pending:
            return 0

        logger.info("Download batch started", urls=len(pending))

        for attempt in range(1, self._config.max_retries + 1):
            if not pending:
                break
            if attempt > 1:
                logger.info("Retrying downloads", attempt=attempt, pending=len(pending))
            await self._run_pass(pending, site_root)

        for url in sorted(pending):
            self._registry.record(url, FetchOutcome.FAILED)
            logger.warning("Download gave up", url=url, attempts=self._config.max_retries)

        logger.info("Download batch finished", failed=len(pending))
        return len(pending)

    def _resolve_urls(self, urls: Iterable[str], site_root: str) -> set[str]:
        pending: set[str] = set()
        for raw in urls:
            url = urljoin(site_root, raw)
            try:
                map_path(url, site_root, self._mirror_root)
            except MalformedURLError as e:
                logger.warning("Skipping link", url=str(raw), **e.to_dict())
                continue
            pending.add(url)
        return pending

    async def _run_pass(self, pending: set[str], site_root: str) -> None:
        """Process one snapshot of the pending set; returns once the pool drains."""
        semaphore = asyncio.Semaphore(self._config.concurrency)

        async def worker(url: str) -> None:
            async with semaphore:
                await self._process(url, pending, site_root)

        await asyncio.gather(*(worker(url) for url in sorted(pending)))

    async def _process(self, url: str, pending: set[str], site_root: str) -> None:
        if not self._registry.try_claim(url):
            pending.discard(url)
            return

        dest = map_path(url, site_root, self._mirror_root)
        if has_content(dest):
            self._registry.record(url, FetchOutcome.SKIPPED_EXISTING)
            pending.discard(url)
            logger.debug("Already mirrored", url=url, path=str(dest))
            return

        fetch_result, _ = await asyncio.gather(
            self._fetch_to_path(url, dest),
            asyncio.sleep(self._config.throttle_ms / 1000),
            return_exceptions=True,
        )

        if isinstance(fetch_result, BaseException):
            if not isinstance(fetch_result, Exception):
                raise fetch_result
            self._registry.release(url)
            logger.error(
                "Download failed",
                url=url,
                error=str(fetch_result) or type(fetch_result).__name__,
                error_code=classify_fetch_error(fetch_result).value,
            )
            return

        self._registry.record(url, FetchOutcome.DOWNLOADED)
        pending.discard(url)
        logger.info("Downloaded", url=url, path=str(dest))

    async def _fetch_to_path(self, url: str, dest: Path) -> None:
        """Stream a URL into a staging file, then move it into place.

        The staging file exists before the request starts and is either
        promoted to dest or deleted.
        """
        self.fetch_attempts += 1
        client = await self._get_client()
        fd, staged = create_temp_file(self._config.temp_dir)
        start = time.monotonic()
        try:
            with os.fdopen(fd, "wb") as f:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
            move_file(staged, dest)
        except BaseException:
            staged.unlink(missing_ok=True)
            raise

        logger.debug(
            "Fetch complete",
            url=url,
            elapsed_ms=round((time.monotonic() - start) * 1000),
        )
