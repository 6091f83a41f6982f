"""
Structured logging for sitemirror.

structlog renders through stdlib logging, so httpx and asyncio records share
the same handlers. Every event carries ``timestamp``, ``level`` and
``logger``. Long URL fields are cut to MAX_URL_LENGTH characters.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import AbstractContextManager
from datetime import date
from pathlib import Path

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from sitemirror.utils.config import get_settings

URL_FIELDS = ("url", "target", "site", "entry_page")
MAX_URL_LENGTH = 160


def shorten_urls(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Trim URL-valued fields to MAX_URL_LENGTH characters."""
    for key in URL_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_URL_LENGTH:
            event_dict[key] = value[: MAX_URL_LENGTH - 3] + "..."
    return event_dict


def log_file_for(logs_dir: str | Path, day: date | None = None) -> Path:
    """Dated log file under logs_dir, one per day."""
    day = day or date.today()
    return Path(logs_dir) / f"sitemirror_{day:%Y%m%d}.log"


def _handlers(log_file: str | Path | None) -> Iterator[logging.Handler]:
    yield logging.StreamHandler(sys.stderr)
    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        yield logging.FileHandler(log_file, encoding="utf-8")


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool = True,
) -> None:
    """Route structlog events to stderr and, optionally, a log file.

    Args:
        log_level: Minimum level name. Defaults to ``general.log_level``.
        log_file: Explicit log file. Defaults to a dated file under
            ``general.logs_dir``; no file when that setting is empty.
        json_format: One JSON object per line (True) or console output (False).
    """
    general = get_settings().general
    level_name = (log_level or general.log_level).upper()
    if log_file is None and general.logs_dir:
        log_file = log_file_for(general.logs_dir)

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level_name, logging.INFO),
        handlers=list(_handlers(log_file)),
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        shorten_urls,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def entry_page_context(url: str) -> AbstractContextManager[None]:
    """Tag every event logged inside the block with ``entry_page``."""
    return structlog.contextvars.bound_contextvars(entry_page=url)
