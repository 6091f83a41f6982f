"""
sitemirror crawler module.

Provides browser-driven capture, concurrent asset download and the mirror
path/link conventions shared by both.
"""

from sitemirror.crawler.browser_provider import (
    BaseBrowserPage,
    BaseBrowserProvider,
    BrowserEvent,
    CapturedResponse,
    InterceptedRequest,
)
from sitemirror.crawler.dedup import DedupRegistry, FetchOutcome, FetchRecord
from sitemirror.crawler.downloader import ConcurrentDownloader
from sitemirror.crawler.files import has_content, move_file, write_file_atomic
from sitemirror.crawler.link_rewriter import rewrite_document
from sitemirror.crawler.orchestrator import BackupOrchestrator, BackupResult
from sitemirror.crawler.path_mapper import map_path
from sitemirror.crawler.session import (
    CrawlSession,
    LinkKind,
    PageResult,
    PathPrefixFilter,
    RequestFilter,
    SessionState,
)

__all__ = [
    # Browser capability
    "BaseBrowserPage",
    "BaseBrowserProvider",
    "BrowserEvent",
    "CapturedResponse",
    "InterceptedRequest",
    # Dedup
    "DedupRegistry",
    "FetchOutcome",
    "FetchRecord",
    # Download
    "ConcurrentDownloader",
    "has_content",
    "move_file",
    "write_file_atomic",
    # Mirror conventions
    "map_path",
    "rewrite_document",
    # Session / orchestration
    "CrawlSession",
    "LinkKind",
    "PageResult",
    "PathPrefixFilter",
    "RequestFilter",
    "SessionState",
    "BackupOrchestrator",
    "BackupResult",
]
