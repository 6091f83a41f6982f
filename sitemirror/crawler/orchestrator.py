"""
Backup orchestration.

Runs the entry pages of a site one after another through a single crawl
session: one browser page, one dedup registry, one downloader. Pages are not
run in parallel because they share that page and registry.
"""

from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urljoin

from sitemirror.crawler.browser_provider import BaseBrowserProvider
from sitemirror.crawler.dedup import DedupRegistry
from sitemirror.crawler.downloader import ConcurrentDownloader
from sitemirror.crawler.session import CrawlSession, LinkKind, PageResult, RequestFilter
from sitemirror.utils.config import Settings, get_settings
from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BackupResult:
    """Outcome of a full backup run."""

    site_url: str
    mirror_root: Path
    pages: list[PageResult] = field(default_factory=list)
    outcomes: dict[str, int] = field(default_factory=dict)

    @property
    def failures(self) -> int:
        return sum(page.failures for page in self.pages)

    @property
    def ok(self) -> bool:
        return self.failures == 0

    def summary_line(self) -> str:
        """User-facing completion message."""
        if self.ok:
            return f"BACKUP COMPLETE! Mirror written to {self.mirror_root}"
        return (
            f"{self.failures} file(s) failed to download. "
            "Re-run the backup to retry."
        )


class BackupOrchestrator:
    """Sequences crawl sessions over the entry pages of a site."""

    def __init__(
        self,
        site_url: str,
        provider: BaseBrowserProvider,
        *,
        settings: Settings | None = None,
        mirror_root: str | Path | None = None,
        registry: DedupRegistry | None = None,
        downloader: ConcurrentDownloader | None = None,
        request_filter: RequestFilter | None = None,
    ) -> None:
        """Initialize orchestrator.

        Args:
            site_url: Absolute http(s) URL of the site to mirror.
            provider: Browser provider (launched by ``run``).
            settings: Settings (defaults to loaded settings).
            mirror_root: Mirror directory (defaults to ``mirror.output_dir``).
            registry: Dedup registry (a fresh one per run if None).
            downloader: Downloader (created from settings if None).
            request_filter: Override for the request abort predicate.
        """
        self._settings = settings or get_settings()
        self._site_url = site_url
        self._provider = provider
        self._mirror_root = Path(mirror_root or self._settings.mirror.output_dir)
        self._registry = registry or DedupRegistry()
        self._downloader = downloader
        self._request_filter = request_filter

    @property
    def registry(self) -> DedupRegistry:
        return self._registry

    def entry_pages(self) -> list[tuple[str, LinkKind]]:
        """Resolve the configured entry pages against the site URL."""
        return [
            (urljoin(self._site_url, entry.path), LinkKind(entry.links))
            for entry in self._settings.mirror.entry_pages
        ]

    async def run(self) -> BackupResult:
        """Mirror every entry page.

        Returns:
            BackupResult with per-page failures and the outcome summary.

        Raises:
            BrowserLaunchError: If the browser cannot be started.
        """
        result = BackupResult(site_url=self._site_url, mirror_root=self._mirror_root)
        logger.info("Backup started", site=self._site_url, mirror_root=str(self._mirror_root))

        downloader = self._downloader or ConcurrentDownloader(
            self._registry,
            mirror_root=self._mirror_root,
            config=self._settings.downloader,
        )

        try:
            async with self._provider:
                page = await self._provider.new_page()
                session = CrawlSession(
                    page,
                    self._registry,
                    downloader,
                    self._site_url,
                    mirror_root=self._mirror_root,
                    config=self._settings.browser,
                    request_filter=self._request_filter,
                )
                async with session:
                    for url, link_kind in self.entry_pages():
                        result.pages.append(await session.save_page(url, link_kind))
        finally:
            if self._downloader is None:
                await downloader.close()

        result.outcomes = self._registry.summary()
        logger.info(
            "Backup finished",
            failures=result.failures,
            outcomes=result.outcomes,
        )
        return result
