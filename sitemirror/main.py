"""
Main entry point for sitemirror.
"""

import argparse
import asyncio
import re
import sys

from sitemirror.utils.config import get_default_site, get_settings
from sitemirror.utils.errors import BrowserLaunchError, InvalidCliArgumentError
from sitemirror.utils.logging import configure_logging, get_logger

SITE_URL_PATTERN = re.compile(r"^https?://")


def resolve_site(arg: str | None) -> str:
    """Validate the site argument, falling back to the default site.

    Raises:
        InvalidCliArgumentError: If the argument is not an http(s) URL.
    """
    if not arg:
        return get_default_site()
    if not SITE_URL_PATTERN.match(arg):
        raise InvalidCliArgumentError(
            f"{arg} is not a valid website. Must start with 'http://' or 'https://'",
            details={"argument": arg},
        )
    return arg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitemirror",
        description="Mirror a website into a local, browsable static copy.",
    )
    parser.add_argument(
        "url",
        nargs="?",
        help="Site to mirror, e.g. https://example.com (default: built-in site)",
    )
    parser.add_argument(
        "--output", "-o",
        help="Mirror directory (default: mirror.output_dir setting)",
    )
    parser.add_argument(
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--headful",
        action="store_true",
        help="Show the browser window while crawling",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON logs instead of console output",
    )
    return parser


async def run_backup(site: str, output: str | None, headful: bool) -> int:
    """Run one backup and print the summary line.

    Returns:
        Process exit status.
    """
    from sitemirror.crawler.orchestrator import BackupOrchestrator
    from sitemirror.crawler.playwright_provider import PlaywrightProvider

    logger = get_logger(__name__)
    settings = get_settings()

    browser_config = settings.browser
    if headful:
        browser_config = browser_config.model_copy(update={"headless": False})

    orchestrator = BackupOrchestrator(
        site,
        PlaywrightProvider(browser_config),
        settings=settings,
        mirror_root=output,
    )

    try:
        result = await orchestrator.run()
    except BrowserLaunchError as e:
        logger.error("Backup aborted", **e.to_dict())
        print(f"Error: {e.message}")
        return 1

    print(result.summary_line())
    return 0 if result.ok else 1


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        site = resolve_site(args.url)
    except InvalidCliArgumentError as e:
        print(e.message)
        parser.print_usage()
        return 2

    configure_logging(log_level=args.log_level, json_format=args.json_logs)
    get_logger(__name__).info("Backing up", site=site)
    print(f"Backing up {site}")

    return asyncio.run(run_backup(site, args.output, args.headful))


if __name__ == "__main__":
    sys.exit(main())
