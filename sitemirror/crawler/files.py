"""
Crash-safe file placement for the mirror.

Content is always staged in a temporary file and promoted with a single
atomic rename, so readers never see a partially written mirror file.
Promoted files get the permissions a plain ``open()`` would have given them
(0o666 minus the process umask), whichever path the move takes.
"""

import errno
import os
import shutil
import tempfile
import uuid
from pathlib import Path

from sitemirror.utils.logging import get_logger

logger = get_logger(__name__)

TEMP_PREFIX = ".sitemirror-"


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


FILE_MODE = 0o666 & ~_current_umask()


def has_content(path: Path) -> bool:
    """Return True if a non-empty regular file exists at path."""
    try:
        return path.is_file() and path.stat().st_size > 0
    except FileNotFoundError:
        return False


def create_temp_file(temp_dir: str | Path | None = None) -> tuple[int, Path]:
    """Create a staging file.

    Args:
        temp_dir: Directory for staging files (system temp if None).

    Returns:
        Tuple of (open file descriptor, path).
    """
    if temp_dir is not None:
        Path(temp_dir).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=".part", dir=temp_dir)
    return fd, Path(name)


def move_file(src: Path, dest: Path) -> None:
    """Atomically move a staged file to its final path.

    Uses os.replace when both paths share a filesystem. Across filesystems the
    content is copied next to the destination first and then renamed into
    place, keeping the final step atomic.

    Args:
        src: Staged file.
        dest: Final path (parent directories are created).
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(src, FILE_MODE)
        os.replace(src, dest)
        return
    except OSError as e:
        if e.errno != errno.EXDEV:
            raise

    sibling = dest.with_name(f"{TEMP_PREFIX}{dest.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        shutil.copyfile(src, sibling)
        os.chmod(sibling, FILE_MODE)
        os.replace(sibling, dest)
    except BaseException:
        sibling.unlink(missing_ok=True)
        raise
    src.unlink(missing_ok=True)
    logger.debug("Moved across filesystems", dest=str(dest))


def write_file_atomic(dest: Path, content: bytes | str) -> None:
    """Write content to dest via a sibling staging file and atomic rename."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, staged = create_temp_file(dest.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.chmod(staged, FILE_MODE)
        os.replace(staged, dest)
    except BaseException:
        staged.unlink(missing_ok=True)
        raise
